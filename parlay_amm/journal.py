from __future__ import annotations

from typing import Callable, List, Tuple

from .events import Event
from .logging_utils import get_logger

logger = get_logger(__name__)


class Journal:
	"""Undo log for one mutating operation.

	Every effect that succeeds registers its inverse. ``rollback`` runs the
	inverses newest first; events queued during the operation are only
	published by the caller after the operation committed.
	"""

	def __init__(self) -> None:
		self._undo: List[Tuple[str, Callable[[], None]]] = []
		self.events: List[Event] = []

	def record(self, label: str, undo: Callable[[], None]) -> None:
		self._undo.append((label, undo))

	def emit(self, event: Event) -> None:
		self.events.append(event)

	def rollback(self) -> None:
		failed = []
		while self._undo:
			label, undo = self._undo.pop()
			try:
				undo()
			except Exception:
				logger.exception("Undo step %s failed", label)
				failed.append(label)
		self.events.clear()
		if failed:
			logger.error("Rollback incomplete, manual reconciliation needed for: %s", ", ".join(failed))

	def __len__(self) -> int:
		return len(self._undo)
