from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import yaml

from .config import EngineConfig
from .engine import ParlayEngine
from .errors import ExternalDependencyError
from .fixed import ONE, mul, to_fixed
from .logging_utils import get_logger
from .models import LegResolution, MarketInfo

logger = get_logger(__name__)


class InMemoryVenue:
	def __init__(self) -> None:
		self._markets: Dict[str, MarketInfo] = {}
		self._odds: Dict[Tuple[str, int], int] = {}
		self._caps: Dict[str, int] = {}
		self._results: Dict[str, LegResolution] = {}

	def add_market(self, info: MarketInfo, odds: List[float], cap: float = 1000.0) -> MarketInfo:
		if len(odds) != info.outcome_count:
			raise ValueError(f"{info.market_id}: expected {info.outcome_count} odds, got {len(odds)}")
		self._markets[info.market_id] = info
		for position, o in enumerate(odds):
			self._odds[(info.market_id, position)] = to_fixed(o)
		self._caps[info.market_id] = to_fixed(cap)
		self._results[info.market_id] = LegResolution()
		return info

	def set_odds(self, market_id: str, position: int, odds: float) -> None:
		self._odds[(market_id, position)] = to_fixed(odds)

	def set_cap(self, market_id: str, cap: float) -> None:
		self._caps[market_id] = to_fixed(cap)

	def resolve(self, market_id: str, winning_outcome: int) -> None:
		self._results[market_id] = LegResolution(resolved=True, winning_outcome=winning_outcome)

	def cancel(self, market_id: str) -> None:
		self._results[market_id] = LegResolution(resolved=True, cancelled=True)

	def markets(self) -> List[MarketInfo]:
		return list(self._markets.values())

	# Venue port
	def market(self, market_id: str) -> Optional[MarketInfo]:
		return self._markets.get(market_id)

	def odds(self, market_id: str, position: int) -> int:
		return self._odds.get((market_id, position), 0)

	def cap(self, market_id: str) -> int:
		return self._caps.get(market_id, 0)

	def resolution(self, market_id: str) -> LegResolution:
		return self._results.get(market_id, LegResolution())

	@staticmethod
	def from_yaml(path: str | Path) -> "InMemoryVenue":
		"""Build a venue from a fixture file.

		Expected shape::

		  markets:
		    - market_id: g1
		      tag1: 9004
		      outcome_count: 3
		      odds: [0.45, 0.35, 0.20]
		      cap: 1000
		    - market_id: g1-total
		      parent_id: g1
		      tag1: 9004
		      tag2: 10002
		      odds: [0.5, 0.5]
		      result: 0        # optional: winning outcome, or "cancelled"
		"""
		with open(path, "r", encoding="utf-8") as f:
			data = yaml.safe_load(f) or {}
		venue = InMemoryVenue()
		for raw in data.get("markets", []):
			raw = dict(raw)
			odds = raw.pop("odds")
			cap = raw.pop("cap", 1000.0)
			result = raw.pop("result", None)
			raw.setdefault("outcome_count", len(odds))
			info = venue.add_market(MarketInfo(**raw), odds, cap)
			if result == "cancelled":
				venue.cancel(info.market_id)
			elif result is not None:
				venue.resolve(info.market_id, int(result))
		logger.info("Loaded %d markets from %s", len(venue.markets()), path)
		return venue


class InMemoryToken:
	def __init__(self, symbol: str = "USDC") -> None:
		self.symbol = symbol
		self._balances: Dict[str, int] = {}
		self._lock = threading.Lock()

	def mint(self, account: str, amount: int) -> None:
		with self._lock:
			self._balances[account] = self._balances.get(account, 0) + amount

	def balance_of(self, account: str) -> int:
		return self._balances.get(account, 0)

	def balances(self) -> Dict[str, int]:
		return {k: v for k, v in self._balances.items() if v}

	def transfer(self, src: str, dst: str, amount: int) -> None:
		if amount < 0:
			raise ExternalDependencyError("transfer_failed", f"negative transfer {amount}")
		if amount == 0:
			return
		with self._lock:
			have = self._balances.get(src, 0)
			if have < amount:
				raise ExternalDependencyError(
					"transfer_failed",
					f"{self.symbol}: {src} holds {have}, needs {amount}",
				)
			self._balances[src] = have - amount
			self._balances[dst] = self._balances.get(dst, 0) + amount


class InMemoryPool:
	def __init__(self, token: InMemoryToken, account: str = "liquidity_pool") -> None:
		self.token = token
		self.account = account
		self.reserved: Dict[str, int] = {}

	def reserve(self, bet_id: str, escrow: str, amount: int) -> None:
		if self.token.balance_of(self.account) < amount:
			raise ExternalDependencyError("pool_insufficient", f"pool cannot reserve {amount} for {bet_id}")
		self.token.transfer(self.account, escrow, amount)
		self.reserved[bet_id] = self.reserved.get(bet_id, 0) + amount

	def release(self, bet_id: str, escrow: str, amount: int) -> None:
		self.token.transfer(escrow, self.account, amount)
		self.reserved.pop(bet_id, None)

	def balance(self) -> int:
		return self.token.balance_of(self.account)


class InMemoryReferrals:
	def __init__(self) -> None:
		self._referrers: Dict[str, str] = {}

	def referrer_of(self, trader: str) -> Optional[str]:
		return self._referrers.get(trader)

	def set_referrer(self, referrer: str, trader: str) -> None:
		# first referrer sticks
		if referrer and referrer != trader and trader not in self._referrers:
			self._referrers[trader] = referrer


class FixedRateRamp:
	"""On/off-ramp quoting each alternate asset at a fixed rate.

	``rates[asset]`` is asset units per settlement unit (fixed-point).
	``haircut`` shaves the settlement amount a route delivers; the caller
	gets back what actually arrived and decides whether it is enough.
	"""

	def __init__(
		self,
		settlement: InMemoryToken,
		assets: Dict[str, InMemoryToken],
		rates: Dict[str, int],
		account: str = "ramp",
		haircut: int = 0,
	) -> None:
		self.settlement = settlement
		self.assets = assets
		self.rates = rates
		self.account = account
		self.haircut = haircut

	def _asset(self, asset: str) -> InMemoryToken:
		if asset not in self.assets:
			raise ExternalDependencyError("unsupported_collateral", f"no route for {asset}")
		return self.assets[asset]

	def convert_in(self, asset: str, payer: str, dst: str, amount: int) -> int:
		token = self._asset(asset)
		delivered = amount * (ONE - self.haircut) // ONE
		token.transfer(payer, self.account, mul(amount, self.rates[asset]))
		self.settlement.transfer(self.account, dst, delivered)
		return delivered

	def convert_out(self, asset: str, src: str, recipient: str, amount: int) -> int:
		token = self._asset(asset)
		out = mul(amount, self.rates[asset])
		if token.balance_of(self.account) < out:
			raise ExternalDependencyError("ramp_insufficient", f"{asset} route cannot pay out {out}")
		self.settlement.transfer(src, self.account, amount)
		token.transfer(self.account, recipient, out)
		return out


@dataclass
class MemoryBook:
	engine: ParlayEngine
	venue: InMemoryVenue
	token: InMemoryToken
	pool: InMemoryPool
	referrals: InMemoryReferrals
	ramp: FixedRateRamp


def memory_book(
	config: Optional[EngineConfig] = None,
	venue: Optional[InMemoryVenue] = None,
	pool_funds: float = 1_000_000.0,
	clock: Optional[Callable[[], int]] = None,
	alt_assets: Optional[Dict[str, float]] = None,
) -> MemoryBook:
	"""Wire an engine to fresh in-memory collaborators.

	``alt_assets`` maps alternate collateral symbols to their rate in asset
	units per settlement unit.
	"""
	config = config or EngineConfig()
	venue = venue or InMemoryVenue()
	token = InMemoryToken()
	pool = InMemoryPool(token)
	token.mint(pool.account, to_fixed(pool_funds))
	referrals = InMemoryReferrals()
	alt_assets = alt_assets or {"USDT": 1.0, "DAI": 1.0}
	assets = {symbol: InMemoryToken(symbol) for symbol in alt_assets}
	ramp = FixedRateRamp(token, assets, {s: to_fixed(r) for s, r in alt_assets.items()})
	# the ramp holds liquidity on both sides to pay out conversions
	token.mint(ramp.account, to_fixed(pool_funds))
	for symbol, rate in alt_assets.items():
		assets[symbol].mint(ramp.account, to_fixed(pool_funds * rate))
	engine = ParlayEngine(config, venue, token, pool, referrals=referrals, ramp=ramp, clock=clock)
	return MemoryBook(engine=engine, venue=venue, token=token, pool=pool, referrals=referrals, ramp=ramp)
