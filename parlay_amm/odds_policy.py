from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .calibration import Calibration
from .config import EngineConfig
from .fixed import ONE, div, mul, product
from .models import Leg, MarketInfo, PricedLeg, Pricing
from .ports import Venue
from .sgp import SgpFeeTable


class OddsPolicy:
	"""Prices a set of legs, applying same-game adjustments to correlated pairs."""

	def __init__(
		self,
		venue: Venue,
		config: EngineConfig,
		fees: Optional[SgpFeeTable] = None,
		calibration: Optional[Calibration] = None,
	) -> None:
		self.venue = venue
		self.config = config
		self.fees = fees if fees is not None else SgpFeeTable(config.sgp_fees)
		self.calibration = calibration if calibration is not None else Calibration.load(config.calibration_file)

	def leg_odds(self, market_id: str, position: int) -> int:
		info = self.venue.market(market_id)
		if info is None or not 0 <= position < info.outcome_count:
			return 0
		return self.venue.odds(market_id, position)

	def sgp_fee(self, tag1: int, tag_a: int, tag_b: int, position_a: int, position_b: int) -> int:
		return self.fees.fee(tag1, tag_a, tag_b, position_a, position_b)

	@staticmethod
	def correlated(a: MarketInfo, b: MarketInfo) -> bool:
		if a.tag1 != b.tag1:
			return False
		if a.parent_id == b.market_id or b.parent_id == a.market_id:
			return True
		return a.tag2 != 0 and b.tag2 != 0 and a.parent_id is not None and a.parent_id == b.parent_id

	def line_category(self, a: MarketInfo, b: MarketInfo) -> str:
		names = self.config.line_tags
		if a.tag2 == 0:
			return names.get(b.tag2, str(b.tag2))
		return f"{names.get(a.tag2, str(a.tag2))}+{names.get(b.tag2, str(b.tag2))}"

	def pair_price(self, odds_a: int, odds_b: int, fee: int) -> int:
		plain = mul(odds_a, odds_b)
		if fee <= 0:
			return 0
		adjusted = div(plain, fee)
		floor = mul(plain, self.config.fixed("sgp_floor_ratio"))
		ceiling = min(ONE, max(odds_a, odds_b) + self.config.fixed("sgp_ceiling_epsilon"))
		return max(floor, min(adjusted, ceiling))

	@staticmethod
	def split_pair(pair: int, odds_a: int) -> Tuple[int, int]:
		"""Per-leg odds for a correlated pair whose product is exactly `pair`."""
		if pair >= odds_a:
			return pair, ONE
		# rounded up so mul(odds_a, b) lands back on pair
		return odds_a, -(-pair * ONE // odds_a)

	def price(self, legs: List[Leg]) -> Pricing:
		infos: List[MarketInfo] = []
		odds: List[int] = []
		seen = set()
		for leg in legs:
			if leg.market_id in seen:
				return Pricing(reason="duplicate_market")
			seen.add(leg.market_id)
			info = self.venue.market(leg.market_id)
			if info is None:
				return Pricing(reason="unknown_market")
			if not 0 <= leg.position < info.outcome_count:
				return Pricing(reason="invalid_position")
			o = self.venue.odds(leg.market_id, leg.position)
			if o <= 0:
				return Pricing(reason="price_unavailable")
			infos.append(info)
			odds.append(o)

		adjusted = list(odds)
		partner: Dict[int, int] = {}
		for i in range(len(legs)):
			for j in range(i + 1, len(legs)):
				if not self.correlated(infos[i], infos[j]):
					continue
				# one correlated partner per leg
				if i in partner or j in partner:
					return Pricing(reason="ineligible_pairing")
				partner[i] = j
				partner[j] = i
				a, b = self._order(i, j, infos)
				fee = self.sgp_fee(infos[a].tag1, infos[a].tag2, infos[b].tag2, legs[a].position, legs[b].position)
				if fee == 0:
					return Pricing(reason="ineligible_pairing")
				fee = self.calibration.adjust(fee, odds[a], odds[b], self.line_category(infos[a], infos[b]))
				pair = self.pair_price(odds[a], odds[b], fee)
				adjusted[a], adjusted[b] = self.split_pair(pair, odds[a])

		raw = product(adjusted)
		combined = max(raw, self.config.fixed("max_supported_odds"))
		priced = [
			PricedLeg(market_id=leg.market_id, position=leg.position, odds=o, adjusted_odds=adj)
			for leg, o, adj in zip(legs, odds, adjusted)
		]
		return Pricing(legs=priced, raw_price=raw, combined_price=combined)

	@staticmethod
	def _order(i: int, j: int, infos: List[MarketInfo]) -> Tuple[int, int]:
		# main market first, otherwise lower tag2 first
		if (infos[j].tag2, infos[j].market_id) < (infos[i].tag2, infos[i].market_id):
			return j, i
		return i, j
