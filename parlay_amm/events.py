from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .logging_utils import get_logger

logger = get_logger(__name__)


class Event(BaseModel):
	at: int = 0

	@property
	def name(self) -> str:
		return type(self).__name__


class BetCreated(Event):
	bet_id: str
	owner: str
	markets: List[str]
	positions: List[int]
	stake: int
	payout_basis: int
	combined_price: int


class BetResolved(Event):
	bet_id: str
	won: bool


class BetExercised(Event):
	bet_id: str
	owner: str
	payout: int
	returned_to_pool: int
	collateral: Optional[str] = None


class BetExpired(Event):
	bet_id: str
	swept: int
	recipient: str


class ReferrerPaid(Event):
	referrer: str
	trader: str
	amount: int


class FeeSettled(Event):
	bet_id: str
	safe_box: int
	protocol: int


class ParametersChanged(Event):
	caller: str
	changes: Dict[str, Any] = Field(default_factory=dict)


class EventBus:
	def __init__(self) -> None:
		self.events: List[Event] = []
		self._subscribers: List[Callable[[Event], None]] = []
		self._lock = threading.Lock()

	def subscribe(self, callback: Callable[[Event], None]) -> None:
		self._subscribers.append(callback)

	def emit(self, event: Event) -> None:
		with self._lock:
			self.events.append(event)
		logger.debug("%s %s", event.name, event.model_dump())
		for callback in list(self._subscribers):
			callback(event)

	def of_type(self, kind: type) -> List[Event]:
		return [e for e in self.events if isinstance(e, kind)]
