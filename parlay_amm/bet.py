from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from .fixed import div
from .models import LegResolution, Phase


class LegStatus(str, Enum):
	PENDING = "pending"
	WON = "won"
	LOST = "lost"
	VOID = "void"


class BetLeg(BaseModel):
	market_id: str
	position: int
	odds: int
	adjusted_odds: int
	amount: int
	status: LegStatus = LegStatus.PENDING


def leg_status(position: int, res: LegResolution) -> LegStatus:
	if not res.resolved:
		return LegStatus.PENDING
	if res.cancelled:
		return LegStatus.VOID
	if res.winning_outcome == position:
		return LegStatus.WON
	return LegStatus.LOST


class ParlayBet(BaseModel):
	"""One placed parlay: fixed terms plus its settlement state.

	Lifecycle::

	    TRADING --(one leg lost, or every leg settled)--> MATURITY
	    MATURITY --(not exercised by expiry)--> EXPIRY

	``resolved`` flips once, on exercise or force-expiry, and from then on the
	record is frozen. A single losing leg makes the whole bet lost even while
	other legs are still pending; cancelled legs count as void pass-throughs.
	"""

	bet_id: str
	owner: str
	legs: List[BetLeg]
	stake: int
	net_stake: int
	combined_price: int
	payout_basis: int
	amplification: int
	combination_key: str
	created_at: int
	expiry: int
	paused: bool = False
	resolved: bool = False
	resolved_lost: bool = False
	expired: bool = False
	payout: int = 0
	settled_at: Optional[int] = None

	@property
	def escrow(self) -> str:
		return f"bet:{self.bet_id}"

	@property
	def markets(self) -> List[str]:
		return [l.market_id for l in self.legs]

	def update(self, resolutions: List[LegResolution]) -> None:
		if self.resolved:
			return
		for leg, res in zip(self.legs, resolutions):
			leg.status = leg_status(leg.position, res)

	@property
	def lost(self) -> bool:
		return any(l.status == LegStatus.LOST for l in self.legs)

	@property
	def resolvable(self) -> bool:
		if self.lost:
			return True
		return all(l.status != LegStatus.PENDING for l in self.legs)

	@property
	def won(self) -> bool:
		return self.resolvable and not self.lost

	def phase(self, now: int) -> Phase:
		if self.expired:
			return Phase.EXPIRY
		if self.resolved or not self.resolvable:
			return Phase.MATURITY if self.resolved else Phase.TRADING
		if now >= self.expiry:
			return Phase.EXPIRY
		return Phase.MATURITY

	def winning_payout(self) -> int:
		amount = self.stake
		for leg in self.legs:
			if leg.status == LegStatus.WON:
				amount = div(amount, leg.adjusted_odds)
		return amount

	def summary(self) -> dict:
		return {
			"bet_id": self.bet_id,
			"owner": self.owner,
			"legs": ",".join(f"{l.market_id}:{l.position}" for l in self.legs),
			"stake": self.stake,
			"payout_basis": self.payout_basis,
			"combined_price": self.combined_price,
			"resolved": self.resolved,
			"lost": self.resolved_lost,
			"payout": self.payout,
		}
