from __future__ import annotations

from decimal import Decimal
from typing import List, Union

ONE = 10**18

Number = Union[int, float, str, Decimal]


def to_fixed(value: Number) -> int:
	# str() first so 0.1 becomes exactly 1e17, not the binary float
	return int(Decimal(str(value)) * ONE)


def from_fixed(value: int) -> float:
	return float(Decimal(value) / ONE)


def mul(a: int, b: int) -> int:
	return a * b // ONE


def div(a: int, b: int) -> int:
	if b == 0:
		return 0
	return a * ONE // b


def product(values: List[int]) -> int:
	p = ONE
	for v in values:
		p = mul(p, v)
	return p


def decimal_odds(price: int) -> float:
	# price 0.25 pays 4.0x
	if price <= 0:
		return 0.0
	return ONE / price
