"""Exposure counters for single legs and for combinations of markets.

``exposure[market][position]`` sums the per-leg amounts of every parlay placed
on that leg; ``combination_exposure[key]`` sums the amplification (payout basis
minus net stake) of every parlay over exactly that set of markets. Both only
grow. Settlement does not decrement them; the only way down is undoing an
increment of a buy that is being rolled back.

Mutations for a set of markets must happen inside ``locked(markets)``. Locks
are striped per market and always taken in sorted order.
"""

from __future__ import annotations

import hashlib
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterable, Iterator, List

from .errors import AdmissionError


def combination_key(markets: Iterable[str]) -> str:
	canonical = "|".join(sorted(markets))
	return hashlib.sha256(canonical.encode()).hexdigest()


class RiskLedger:
	def __init__(self) -> None:
		self._exposure: Dict[str, Dict[int, int]] = {}
		self._combinations: Dict[str, int] = {}
		self._stripes: Dict[str, threading.Lock] = {}
		self._stripes_lock = threading.Lock()

	def _stripe(self, market_id: str) -> threading.Lock:
		with self._stripes_lock:
			lock = self._stripes.get(market_id)
			if lock is None:
				lock = self._stripes[market_id] = threading.Lock()
			return lock

	@contextmanager
	def locked(self, markets: Iterable[str]) -> Iterator[None]:
		with ExitStack() as stack:
			for market_id in sorted(set(markets)):
				stack.enter_context(self._stripe(market_id))
			yield

	def exposure_of(self, market_id: str, position: int) -> int:
		return self._exposure.get(market_id, {}).get(position, 0)

	def combination_exposure_of(self, key: str) -> int:
		return self._combinations.get(key, 0)

	def increment(self, market_id: str, position: int, amount: int, cap: int) -> int:
		current = self.exposure_of(market_id, position)
		if current + amount > cap:
			raise AdmissionError(
				"market_cap_exceeded",
				f"{market_id}/{position}: exposure {current} + {amount} > cap {cap}",
			)
		updated = current + amount
		self._exposure.setdefault(market_id, {})[position] = updated
		return updated

	def increment_combination(self, key: str, amount: int, cap: int) -> int:
		current = self.combination_exposure_of(key)
		if current + amount > cap:
			raise AdmissionError(
				"combination_cap_exceeded",
				f"combination {key[:12]}: exposure {current} + {amount} > cap {cap}",
			)
		self._combinations[key] = current + amount
		return current + amount

	def undo(self, market_id: str, position: int, amount: int) -> None:
		by_position = self._exposure[market_id]
		by_position[position] -= amount
		if by_position[position] == 0:
			del by_position[position]
			if not by_position:
				del self._exposure[market_id]

	def undo_combination(self, key: str, amount: int) -> None:
		self._combinations[key] -= amount
		if self._combinations[key] == 0:
			del self._combinations[key]

	def snapshot(self) -> Dict[str, Dict]:
		return {
			"exposure": {m: dict(p) for m, p in self._exposure.items()},
			"combinations": dict(self._combinations),
		}

	def rows(self) -> List[Dict]:
		out = []
		for market_id in sorted(self._exposure):
			for position, amount in sorted(self._exposure[market_id].items()):
				out.append({"market_id": market_id, "position": position, "exposure": amount})
		return out
