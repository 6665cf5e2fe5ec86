from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .config import SgpFeeRow
from .fixed import to_fixed

Key = Tuple[int, int, int, Optional[int], Optional[int]]


class SgpFeeTable:
	"""Fee factors for same-game pairs, keyed by (tag1, tagA, tagB, positionA, positionB).

	A row with positions ``None`` is the fallback for the tag triple. Lookups
	are symmetric in the two legs. A missing or zero fee means the pairing may
	not be parlayed.
	"""

	def __init__(self, rows: Optional[List[SgpFeeRow]] = None) -> None:
		self._fees: Dict[Key, int] = {}
		for row in rows or []:
			self.set(row.tag1, row.tag_a, row.tag_b, row.position_a, row.position_b, to_fixed(row.fee))

	def set(
		self,
		tag1: int,
		tag_a: int,
		tag_b: int,
		position_a: Optional[int],
		position_b: Optional[int],
		fee: int,
	) -> None:
		self._fees[(tag1, tag_a, tag_b, position_a, position_b)] = fee

	def fee(self, tag1: int, tag_a: int, tag_b: int, position_a: int, position_b: int) -> int:
		for key in (
			(tag1, tag_a, tag_b, position_a, position_b),
			(tag1, tag_b, tag_a, position_b, position_a),
			(tag1, tag_a, tag_b, None, None),
			(tag1, tag_b, tag_a, None, None),
		):
			fee = self._fees.get(key)
			if fee is not None:
				return fee
		return 0

	def rows(self) -> List[Tuple[Key, int]]:
		return sorted(self._fees.items(), key=lambda kv: tuple(-1 if k is None else k for k in kv[0]))
