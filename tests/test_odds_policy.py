from __future__ import annotations

import pytest

from parlay_amm.calibration import Calibration, CalibrationRule
from parlay_amm.config import EngineConfig
from parlay_amm.fixed import ONE, mul, to_fixed
from parlay_amm.models import Leg
from parlay_amm.odds_policy import OddsPolicy


def _legs(*pairs):
	return [Leg(market_id=m, position=p) for m, p in pairs]


def test_uncorrelated_legs_multiply(venue):
	policy = OddsPolicy(venue, EngineConfig())
	pricing = policy.price(_legs(("g1", 0), ("g2", 0)))
	assert pricing.reason is None
	assert pricing.raw_price == mul(to_fixed(0.5), to_fixed(0.4))
	assert pricing.combined_price == to_fixed(0.2)
	assert [l.adjusted_odds for l in pricing.legs] == [to_fixed(0.5), to_fixed(0.4)]


def test_uncorrelated_three_legs_within_one_unit(venue):
	policy = OddsPolicy(venue, EngineConfig())
	pricing = policy.price(_legs(("g1", 1), ("g2", 1), ("g3", 2)))
	expected = 5 * 10**17 * 6 * 10**17 * 25 * 10**16 // ONE // ONE
	assert abs(pricing.raw_price - expected) <= 1


def test_floor_raises_combined_price(venue):
	policy = OddsPolicy(venue, EngineConfig(max_supported_odds=0.25))
	pricing = policy.price(_legs(("g1", 0), ("g2", 0)))
	assert pricing.raw_price == to_fixed(0.2)
	assert pricing.combined_price == to_fixed(0.25)


@pytest.mark.parametrize(
	"legs,reason",
	[
		((("g1", 0), ("g1", 1)), "duplicate_market"),
		((("g1", 2), ("g2", 0)), "invalid_position"),
		((("g1", 0), ("nope", 0)), "unknown_market"),
		((("s1", 0), ("s1-total", 0)), "ineligible_pairing"),
		((("g1", 0), ("g1-total", 0), ("g1-spread", 0)), "ineligible_pairing"),
	],
)
def test_rejected_parlays_price_zero(venue, legs, reason):
	policy = OddsPolicy(venue, EngineConfig())
	pricing = policy.price(_legs(*legs))
	assert pricing.combined_price == 0
	assert pricing.reason == reason


def test_unavailable_leg_rejects_whole_parlay(venue):
	venue.set_odds("g2", 0, 0)
	pricing = OddsPolicy(venue, EngineConfig()).price(_legs(("g1", 0), ("g2", 0)))
	assert pricing.combined_price == 0
	assert pricing.reason == "price_unavailable"


def test_correlation_detection(venue):
	policy = OddsPolicy(venue, EngineConfig())
	g1, total, spread, g2 = (venue.market(m) for m in ("g1", "g1-total", "g1-spread", "g2"))
	assert policy.correlated(g1, total)
	assert policy.correlated(total, g1)
	assert policy.correlated(total, spread)
	assert not policy.correlated(g1, g2)
	assert policy.line_category(g1, total) == "total"
	assert policy.line_category(spread, total) == "spread+total"


def test_same_game_pair_is_repriced_inside_band(venue):
	config = EngineConfig()
	policy = OddsPolicy(venue, config)
	pricing = policy.price(_legs(("g1", 0), ("g1-total", 0)))
	plain = mul(to_fixed(0.5), to_fixed(0.5))
	assert pricing.reason is None
	# positively correlated legs cost more than the naive product
	assert pricing.raw_price > plain
	assert pricing.raw_price >= mul(plain, to_fixed(0.1))
	assert pricing.raw_price <= to_fixed(0.5) + to_fixed(0.01)
	# fee 0.90 scaled by 0.99 for this odds region
	fee = mul(to_fixed(0.9), to_fixed(0.99))
	assert abs(pricing.raw_price - plain * ONE // fee) <= 1
	# the main leg keeps its isolated odds
	assert pricing.legs[0].adjusted_odds == to_fixed(0.5)


def test_pair_order_does_not_change_price(venue):
	policy = OddsPolicy(venue, EngineConfig())
	a = policy.price(_legs(("g1", 0), ("g1-total", 1)))
	b = policy.price(_legs(("g1-total", 1), ("g1", 0)))
	assert a.raw_price == b.raw_price


def test_pair_legs_multiply_back_to_pair_price(venue):
	policy = OddsPolicy(venue, EngineConfig())
	grid = [x / 100 for x in range(5, 100, 5)]
	for a in grid:
		for b in grid:
			venue.set_odds("g1", 0, a)
			venue.set_odds("g1-total", 0, b)
			pricing = policy.price(_legs(("g1", 0), ("g1-total", 0)))
			odds_a, odds_b = to_fixed(a), to_fixed(b)
			fee = policy.calibration.adjust(policy.sgp_fee(9004, 0, 10002, 0, 0), odds_a, odds_b, "total")
			assert pricing.raw_price == policy.pair_price(odds_a, odds_b, fee), (a, b)


def test_pair_dearer_than_main_leg(venue):
	venue.set_odds("g1", 0, 0.7)
	venue.set_odds("g1-total", 0, 0.9)
	policy = OddsPolicy(venue, EngineConfig())
	pricing = policy.price(_legs(("g1", 0), ("g1-total", 0)))
	pair = policy.pair_price(to_fixed(0.7), to_fixed(0.9), to_fixed(0.88))
	assert pair == 715909090909090909
	assert pricing.raw_price == pair
	assert pricing.raw_price > to_fixed(0.7)
	assert [l.adjusted_odds for l in pricing.legs] == [pair, ONE]


def test_pair_price_clamps(venue):
	policy = OddsPolicy(venue, EngineConfig())
	half = to_fixed(0.5)
	# huge correlation fee is capped just above the dearer leg
	assert policy.pair_price(half, half, to_fixed(0.01)) == to_fixed(0.51)
	# a discounting fee cannot push below 10% of the product
	assert policy.pair_price(half, half, to_fixed(100)) == to_fixed(0.025)
	assert policy.pair_price(half, half, 0) == 0


def test_adjustment_never_leaves_band():
	config = EngineConfig()
	policy = OddsPolicy(None, config, calibration=Calibration())
	grid = [to_fixed(x / 100) for x in range(5, 100, 5)]
	for line in ("total", "spread"):
		for a in grid:
			for b in grid:
				fee = policy.calibration.adjust(to_fixed(0.9), a, b, line)
				pair = policy.pair_price(a, b, fee)
				plain = mul(a, b)
				assert pair >= mul(plain, to_fixed(0.1))
				assert pair <= min(ONE, max(a, b) + to_fixed(0.01))


def test_calibration_actions():
	cal = Calibration()
	fee = to_fixed(0.9)
	# long-shot moneyline: no correlation adjustment
	assert cal.adjust(fee, to_fixed(0.1), to_fixed(0.5), "total") == ONE
	assert cal.adjust(fee, to_fixed(0.55), to_fixed(0.5), "total") == mul(fee, to_fixed(0.99))
	assert cal.adjust(fee, to_fixed(0.7), to_fixed(0.6), "total") == to_fixed(0.88)
	# unknown category keeps the table fee
	assert cal.adjust(fee, to_fixed(0.5), to_fixed(0.5), "player-props") == fee


def test_calibration_first_match_wins():
	rules = [
		CalibrationRule(line="total", a_lo=0.0, a_hi=0.5, b_lo=0.0, b_hi=1.01, action="set", value=0.8),
		CalibrationRule(line="spread", a_lo=0.0, a_hi=0.5, b_lo=0.0, b_hi=1.01, action="set", value=0.7),
	]
	cal = Calibration(rules)
	assert cal.match(to_fixed(0.3), to_fixed(0.3), "total") is rules[0]
	assert cal.match(to_fixed(0.3), to_fixed(0.3), "spread") is rules[1]
	assert cal.match(to_fixed(0.6), to_fixed(0.3), "total") is None


def test_overlapping_rules_rejected():
	rules = [
		CalibrationRule(line="total", a_lo=0.0, a_hi=0.5, b_lo=0.0, b_hi=0.5, action="plain"),
		CalibrationRule(line="total", a_lo=0.4, a_hi=0.6, b_lo=0.4, b_hi=0.6, action="plain"),
	]
	with pytest.raises(ValueError):
		Calibration(rules)


def test_default_table_is_disjoint():
	assert len(Calibration().rules) > 30


def test_calibration_loads_from_yaml(tmp_path):
	p = tmp_path / "cal.yaml"
	p.write_text(
		"rules:\n"
		"  - {line: total, a_lo: 0.0, a_hi: 1.01, b_lo: 0.0, b_hi: 1.01, action: set, value: 0.5}\n",
		encoding="utf-8",
	)
	cal = Calibration.load(str(p))
	assert len(cal.rules) == 1
	assert cal.adjust(to_fixed(0.9), to_fixed(0.3), to_fixed(0.3), "total") == to_fixed(0.5)
