from __future__ import annotations

import pytest

from parlay_amm.config import EngineConfig
from parlay_amm.fixed import to_fixed
from parlay_amm.memory import InMemoryVenue, memory_book
from parlay_amm.models import MarketInfo


class FakeClock:
	def __init__(self, now: int = 1_700_000_000) -> None:
		self.now = now

	def __call__(self) -> int:
		return self.now

	def advance(self, seconds: int) -> None:
		self.now += seconds


def make_venue() -> InMemoryVenue:
	v = InMemoryVenue()
	v.add_market(MarketInfo(market_id="g1", tag1=9004), [0.5, 0.5], cap=1000)
	v.add_market(MarketInfo(market_id="g2", tag1=9004), [0.4, 0.6], cap=1000)
	v.add_market(MarketInfo(market_id="g3", tag1=9011, outcome_count=3), [0.45, 0.30, 0.25], cap=1000)
	v.add_market(MarketInfo(market_id="g1-total", tag1=9004, tag2=10002, parent_id="g1"), [0.5, 0.5], cap=1000)
	v.add_market(MarketInfo(market_id="g1-spread", tag1=9004, tag2=10001, parent_id="g1"), [0.52, 0.48], cap=1000)
	# league without SGP fee rows
	v.add_market(MarketInfo(market_id="s1", tag1=9011, outcome_count=3), [0.45, 0.30, 0.25], cap=1000)
	v.add_market(MarketInfo(market_id="s1-total", tag1=9011, tag2=10002, parent_id="s1"), [0.5, 0.5], cap=1000)
	return v


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def venue() -> InMemoryVenue:
	return make_venue()


@pytest.fixture
def config() -> EngineConfig:
	return EngineConfig()


@pytest.fixture
def book(config, venue, clock):
	b = memory_book(config, venue, clock=clock)
	for who in ("alice", "bob"):
		b.token.mint(who, to_fixed(10000))
	b.ramp.assets["USDT"].mint("carol", to_fixed(300))
	return b


@pytest.fixture
def engine(book):
	return book.engine


@pytest.fixture
def place(engine):
	"""Buy a parlay at the currently quoted payout; legs are (market, position) pairs."""

	def _place(caller, legs, stake=100.0, slippage=0.02, **kwargs):
		markets = [m for m, _ in legs]
		positions = [p for _, p in legs]
		q = engine.quote(markets, positions, to_fixed(stake), caller)
		return engine.buy(
			caller,
			markets,
			positions,
			to_fixed(stake),
			slippage=to_fixed(slippage),
			expected_payout=q.payout_basis,
			**kwargs,
		)

	return _place
