from __future__ import annotations

from enum import Enum, IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field


class Side(IntEnum):
	HOME = 0
	AWAY = 1
	DRAW = 2


class Total(IntEnum):
	OVER = 0
	UNDER = 1


class Phase(str, Enum):
	TRADING = "trading"
	MATURITY = "maturity"
	EXPIRY = "expiry"


class MarketInfo(BaseModel):
	market_id: str
	tag1: int
	tag2: int = 0
	parent_id: Optional[str] = None
	outcome_count: int = 2
	maturity: int = 0

	@property
	def is_child(self) -> bool:
		return self.parent_id is not None


class LegResolution(BaseModel):
	resolved: bool = False
	cancelled: bool = False
	winning_outcome: Optional[int] = None


class Leg(BaseModel):
	market_id: str
	position: int


class PricedLeg(BaseModel):
	market_id: str
	position: int
	odds: int
	adjusted_odds: int
	amount: int = 0


class Pricing(BaseModel):
	"""Result of pricing a candidate set of legs.

	``raw_price`` is the product of adjusted per-leg odds before the platform
	floor is re-applied; ``combined_price`` is what the bettor is charged.
	A zero ``combined_price`` means the parlay is not priceable and ``reason``
	says why.
	"""

	legs: List[PricedLeg] = Field(default_factory=list)
	raw_price: int = 0
	combined_price: int = 0
	reason: Optional[str] = None


class Quote(BaseModel):
	stake: int = 0
	net_stake: int = 0
	combined_price: int = 0
	raw_price: int = 0
	payout_basis: int = 0
	amplification: int = 0
	legs: List[PricedLeg] = Field(default_factory=list)
	combination_key: Optional[str] = None
	admissible: bool = False
	reason: Optional[str] = None

	@property
	def leg_amounts(self) -> List[int]:
		return [l.amount for l in self.legs]


def zero_quote(stake: int, reason: str) -> Quote:
	return Quote(stake=stake, admissible=False, reason=reason)
