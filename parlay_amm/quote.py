from __future__ import annotations

from typing import Dict, List, Optional

from .config import EngineConfig
from .fixed import ONE, div
from .models import Leg, Quote, zero_quote
from .odds_policy import OddsPolicy
from .ports import Venue
from .risk_ledger import RiskLedger, combination_key


class QuoteEngine:
	"""Read-only pricing and admission check for a candidate parlay.

	Never mutates anything, so any number of threads may quote at once.
	A parlay is admitted whole or not at all: any failing leg zeroes the quote.
	"""

	def __init__(
		self,
		config: EngineConfig,
		policy: OddsPolicy,
		ledger: RiskLedger,
		venue: Venue,
		fee_overrides: Optional[Dict[str, int]] = None,
	) -> None:
		self.config = config
		self.policy = policy
		self.ledger = ledger
		self.venue = venue
		self.fee_overrides = fee_overrides if fee_overrides is not None else {}

	def safe_box_rate(self, caller: Optional[str] = None) -> int:
		if caller is not None and caller in self.fee_overrides:
			return self.fee_overrides[caller]
		return self.config.fixed("safe_box_impact")

	def net_stake(self, stake: int, caller: Optional[str] = None) -> int:
		fees = self.safe_box_rate(caller) + self.config.fixed("protocol_fee")
		return stake * (ONE - fees) // ONE

	def quote(self, legs: List[Leg], stake: int, caller: Optional[str] = None) -> Quote:
		if stake <= 0:
			return zero_quote(stake, "stake_below_minimum")
		pricing = self.policy.price(legs)
		if pricing.reason is not None or pricing.combined_price == 0:
			return zero_quote(stake, pricing.reason or "price_unavailable")

		net = self.net_stake(stake, caller)
		for leg in pricing.legs:
			leg.amount = div(net, leg.adjusted_odds)
		payout_basis = div(stake, pricing.combined_price)
		amplification = payout_basis - net
		key = combination_key([l.market_id for l in legs])

		quote = Quote(
			stake=stake,
			net_stake=net,
			combined_price=pricing.combined_price,
			raw_price=pricing.raw_price,
			payout_basis=payout_basis,
			amplification=amplification,
			legs=pricing.legs,
			combination_key=key,
			admissible=True,
		)
		reason = self.admission_failure(quote)
		if reason is not None:
			return zero_quote(stake, reason)
		return quote

	def admission_failure(self, quote: Quote) -> Optional[str]:
		"""Return why ``quote`` cannot be admitted against current exposure, or None."""
		for leg in quote.legs:
			limit = self.config.cap_multiplier * self.venue.cap(leg.market_id)
			if self.ledger.exposure_of(leg.market_id, leg.position) + leg.amount > limit:
				return "market_cap_exceeded"
		if self.tracks_combination(len(quote.legs)):
			current = self.ledger.combination_exposure_of(quote.combination_key or "")
			if current + quote.amplification > self.config.fixed("max_combination_exposure"):
				return "combination_cap_exceeded"
		return None

	def tracks_combination(self, size: int) -> bool:
		return 2 <= size <= self.config.max_parlay_size

	def can_admit(self, legs: List[Leg], stake: int, caller: Optional[str] = None) -> bool:
		return self.quote(legs, stake, caller).admissible
