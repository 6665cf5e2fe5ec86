"""Same-game calibration of the SGP fee.

A correlated pair is described by the isolated odds of its two legs and the
line category of the pair. Leg A is the main market (moneyline) when the pair
has one; leg B carries the derived line. When both legs are lines the one with
the lower ``tag2`` is A and the category joins both names, e.g.
``spread+total``.

Rules are evaluated top to bottom and the first match wins. Ranges are
half-open ``[lo, hi)``; an upper bound above 1.0 makes the range inclusive of
1.0. Within one category no two rules may overlap (``check_disjoint``).

Actions:

``plain``  no correlation adjustment, the pair prices as the plain product
``scale``  table fee multiplied by ``value``
``set``    fee replaced by ``value``
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import yaml
from pydantic import BaseModel

from .fixed import ONE, mul, to_fixed


class CalibrationRule(BaseModel):
	line: str
	a_lo: float
	a_hi: float
	b_lo: float
	b_hi: float
	action: str
	value: float = 1.0

	def matches(self, odds_a: int, odds_b: int, line: str) -> bool:
		if line != self.line:
			return False
		return (
			to_fixed(self.a_lo) <= odds_a < to_fixed(self.a_hi)
			and to_fixed(self.b_lo) <= odds_b < to_fixed(self.b_hi)
		)

	def apply(self, fee: int) -> int:
		if self.action == "plain":
			return ONE
		if self.action == "set":
			return to_fixed(self.value)
		if self.action == "scale":
			return mul(fee, to_fixed(self.value))
		raise ValueError(f"unknown calibration action {self.action!r}")


#  line            A range         B range         action   value
_ROWS: List[Tuple[str, float, float, float, float, str, float]] = [
	# moneyline + total
	("total", 0.00, 0.20, 0.00, 1.01, "plain", 1.0),
	("total", 0.20, 0.35, 0.00, 0.45, "scale", 1.03),
	("total", 0.20, 0.35, 0.45, 0.55, "scale", 1.015),
	("total", 0.20, 0.35, 0.55, 1.01, "scale", 1.0),
	("total", 0.35, 0.50, 0.00, 0.45, "scale", 1.02),
	("total", 0.35, 0.50, 0.45, 0.55, "scale", 1.005),
	("total", 0.35, 0.50, 0.55, 1.01, "scale", 0.995),
	("total", 0.50, 0.65, 0.00, 0.45, "scale", 1.01),
	("total", 0.50, 0.65, 0.45, 0.55, "scale", 0.99),
	("total", 0.50, 0.65, 0.55, 1.01, "scale", 0.98),
	("total", 0.65, 0.80, 0.00, 0.45, "scale", 1.0),
	("total", 0.65, 0.80, 0.45, 0.55, "scale", 0.975),
	("total", 0.65, 0.80, 0.55, 1.01, "set", 0.88),
	("total", 0.80, 1.01, 0.00, 0.30, "plain", 1.0),
	("total", 0.80, 1.01, 0.30, 1.01, "set", 0.92),
	# moneyline + spread
	("spread", 0.00, 0.20, 0.00, 1.01, "plain", 1.0),
	("spread", 0.20, 0.35, 0.00, 0.45, "scale", 1.04),
	("spread", 0.20, 0.35, 0.45, 0.55, "scale", 1.02),
	("spread", 0.20, 0.35, 0.55, 1.01, "scale", 1.005),
	("spread", 0.35, 0.50, 0.00, 0.45, "scale", 1.025),
	("spread", 0.35, 0.50, 0.45, 0.55, "scale", 1.0),
	("spread", 0.35, 0.50, 0.55, 1.01, "scale", 0.985),
	("spread", 0.50, 0.65, 0.00, 0.45, "scale", 1.015),
	("spread", 0.50, 0.65, 0.45, 0.55, "scale", 0.985),
	("spread", 0.50, 0.65, 0.55, 1.01, "scale", 0.97),
	("spread", 0.65, 0.80, 0.00, 0.45, "scale", 1.005),
	("spread", 0.65, 0.80, 0.45, 0.55, "scale", 0.97),
	("spread", 0.65, 0.80, 0.55, 1.01, "set", 0.86),
	("spread", 0.80, 1.01, 0.00, 0.35, "plain", 1.0),
	("spread", 0.80, 1.01, 0.35, 1.01, "set", 0.90),
	# spread + total off the same parent
	("spread+total", 0.00, 0.40, 0.00, 1.01, "scale", 1.02),
	("spread+total", 0.40, 0.60, 0.00, 0.50, "scale", 1.0),
	("spread+total", 0.40, 0.60, 0.50, 1.01, "scale", 0.99),
	("spread+total", 0.60, 1.01, 0.00, 1.01, "scale", 0.98),
]

DEFAULT_RULES: List[CalibrationRule] = [
	CalibrationRule(line=l, a_lo=alo, a_hi=ahi, b_lo=blo, b_hi=bhi, action=act, value=v)
	for (l, alo, ahi, blo, bhi, act, v) in _ROWS
]


def check_disjoint(rules: Iterable[CalibrationRule]) -> None:
	seen: List[CalibrationRule] = []
	for r in rules:
		if r.action not in ("plain", "scale", "set"):
			raise ValueError(f"unknown calibration action {r.action!r}")
		if r.a_lo >= r.a_hi or r.b_lo >= r.b_hi:
			raise ValueError(f"empty range in rule {r}")
		for s in seen:
			if s.line != r.line:
				continue
			if r.a_lo < s.a_hi and s.a_lo < r.a_hi and r.b_lo < s.b_hi and s.b_lo < r.b_hi:
				raise ValueError(f"overlapping calibration rules: {s} / {r}")
		seen.append(r)


class Calibration:
	def __init__(self, rules: Optional[List[CalibrationRule]] = None) -> None:
		self.rules = list(DEFAULT_RULES if rules is None else rules)
		check_disjoint(self.rules)

	def match(self, odds_a: int, odds_b: int, line: str) -> Optional[CalibrationRule]:
		for rule in self.rules:
			if rule.matches(odds_a, odds_b, line):
				return rule
		return None

	def adjust(self, fee: int, odds_a: int, odds_b: int, line: str) -> int:
		rule = self.match(odds_a, odds_b, line)
		if rule is None:
			return fee
		return rule.apply(fee)

	@staticmethod
	def load(path: Optional[str] = None) -> "Calibration":
		if not path or not Path(path).exists():
			return Calibration()
		with open(path, "r", encoding="utf-8") as f:
			data = yaml.safe_load(f) or {}
		return Calibration([CalibrationRule(**row) for row in data.get("rules", [])])
