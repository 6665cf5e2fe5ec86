from __future__ import annotations

import pytest

from parlay_amm.bet import LegStatus, leg_status
from parlay_amm.errors import AuthorizationError, ExternalDependencyError, MarketStateError
from parlay_amm.events import BetExercised, BetExpired, BetResolved
from parlay_amm.fixed import to_fixed
from parlay_amm.models import LegResolution, Phase

WEEK = 7 * 24 * 3600


def test_leg_status():
	assert leg_status(0, LegResolution()) == LegStatus.PENDING
	assert leg_status(0, LegResolution(resolved=True, cancelled=True)) == LegStatus.VOID
	assert leg_status(1, LegResolution(resolved=True, winning_outcome=1)) == LegStatus.WON
	assert leg_status(0, LegResolution(resolved=True, winning_outcome=1)) == LegStatus.LOST


def test_winning_bet_pays_full_basis(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)

	assert engine.exercisable_bets() == [bet_id]
	assert engine.exercise(bet_id) == to_fixed(500)

	bet = engine.bet(bet_id)
	assert bet.resolved and not bet.resolved_lost
	assert bet.payout == to_fixed(500)
	assert book.token.balance_of("alice") == to_fixed(10400)
	assert book.token.balance_of(bet.escrow) == 0
	assert book.pool.balance() == to_fixed(1_000_000 - 405)
	assert engine.active_bets() == []
	assert [e.name for e in engine.bus.events[-2:]] == ["BetResolved", "BetExercised"]
	assert engine.bus.of_type(BetResolved)[0].won


def test_exercise_is_idempotent(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)
	engine.exercise(bet_id)
	balance = book.token.balance_of("alice")

	assert engine.exercise(bet_id) == 0
	assert book.token.balance_of("alice") == balance
	assert len(engine.bus.of_type(BetExercised)) == 1


def test_one_lost_leg_settles_bet_early(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0), ("g3", 0)])
	# g1 and g3 still pending
	book.venue.resolve("g2", 1)

	assert engine.phase(bet_id) == Phase.MATURITY
	assert engine.exercise(bet_id) == 0
	bet = engine.bet(bet_id)
	assert bet.resolved_lost
	assert book.token.balance_of(bet.escrow) == 0
	# pool gets its reservation back plus the net stake
	assert book.pool.balance() == to_fixed(1_000_095)
	assert book.token.balance_of("alice") == to_fixed(9900)
	exercised = engine.bus.of_type(BetExercised)[0]
	assert exercised.payout == 0
	assert exercised.returned_to_pool == bet.payout_basis
	assert not engine.bus.of_type(BetResolved)[0].won


def test_void_leg_passes_through(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.cancel("g1")
	book.venue.resolve("g2", 0)

	assert engine.exercise(bet_id) == to_fixed(250)
	assert book.token.balance_of("alice") == to_fixed(10150)
	assert book.pool.balance() == to_fixed(1_000_000 - 405 + 250)


def test_all_legs_void_refunds_gross_stake(book, place):
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.cancel("g1")
	book.venue.cancel("g2")
	assert book.engine.exercise(bet_id) == to_fixed(100)


def test_pending_bet_cannot_be_exercised(book, place):
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	with pytest.raises(MarketStateError) as exc:
		book.engine.exercise(bet_id)
	assert exc.value.reason == "not_resolvable"
	assert book.engine.phase(bet_id) == Phase.TRADING
	assert book.engine.exercisable_bets() == []


def test_unknown_bet(engine):
	with pytest.raises(MarketStateError) as exc:
		engine.exercise("P999999")
	assert exc.value.reason == "unknown_bet"


def test_phases(book, place, clock):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	assert engine.phase(bet_id) == Phase.TRADING
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)
	assert engine.phase(bet_id) == Phase.MATURITY
	clock.advance(WEEK)
	assert engine.phase(bet_id) == Phase.EXPIRY
	# still exercisable until swept
	assert engine.exercise(bet_id) == to_fixed(500)
	assert engine.phase(bet_id) == Phase.MATURITY


def test_offramp_exercise(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)

	with pytest.raises(AuthorizationError) as exc:
		engine.exercise_with_offramp("bob", bet_id, "USDT")
	assert exc.value.reason == "not_owner"

	assert engine.exercise_with_offramp("alice", bet_id, "USDT") == to_fixed(500)
	assert book.ramp.assets["USDT"].balance_of("alice") == to_fixed(500)
	assert book.token.balance_of("alice") == to_fixed(9900)
	assert engine.bus.of_type(BetExercised)[0].collateral == "USDT"


def test_failed_offramp_rolls_back_exercise(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	# void leg: 250 goes back to the pool before the payout
	book.venue.cancel("g1")
	book.venue.resolve("g2", 0)
	usdt = book.ramp.assets["USDT"]
	usdt.transfer("ramp", "treasury", usdt.balance_of("ramp"))
	pool_before = book.pool.balance()

	with pytest.raises(ExternalDependencyError) as exc:
		engine.exercise_with_offramp("alice", bet_id, "USDT")
	assert exc.value.reason == "ramp_insufficient"

	bet = engine.bet(bet_id)
	assert bet.resolved is False
	assert book.token.balance_of(bet.escrow) == to_fixed(500)
	assert book.pool.balance() == pool_before
	assert usdt.balance_of("alice") == 0
	assert engine.bus.of_type(BetExercised) == []
	assert [b.bet_id for b in engine.active_bets()] == [bet_id]

	# paying out in the settlement token still works
	assert engine.exercise(bet_id) == to_fixed(250)


def test_trading_bet_is_never_expired(book, place, clock):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	clock.advance(WEEK)
	assert engine.phase(bet_id) == Phase.TRADING

	with pytest.raises(MarketStateError) as exc:
		engine.expire("owner", [bet_id])
	assert exc.value.reason == "not_resolvable"
	assert book.token.balance_of(engine.bet(bet_id).escrow) == to_fixed(500)

	# late results still pay the bettor
	book.venue.resolve("g2", 0)
	assert engine.exercise(bet_id) == to_fixed(500)


def test_expire_sweeps_to_fallback(book, place, clock):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)

	with pytest.raises(MarketStateError) as exc:
		engine.expire("owner", [bet_id])
	assert exc.value.reason == "not_expired"
	assert not engine.bet(bet_id).resolved

	with pytest.raises(AuthorizationError):
		engine.expire("alice", [bet_id])

	clock.advance(WEEK)
	assert engine.expire("owner", [bet_id]) == [bet_id]
	bet = engine.bet(bet_id)
	assert bet.expired and bet.resolved
	assert book.token.balance_of(bet.escrow) == 0
	# 2 from the fee split plus the swept 500
	assert book.token.balance_of("safe_box") == to_fixed(502)
	assert engine.bus.of_type(BetExpired)[0].swept == to_fixed(500)
	assert engine.phase(bet_id) == Phase.EXPIRY
	assert engine.active_bets() == []
	assert engine.exercise(bet_id) == 0


def test_expire_checks_every_bet_first(book, place, clock):
	engine = book.engine
	old = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)
	clock.advance(WEEK)
	fresh = place("bob", [("g3", 0), ("s1", 1)])

	with pytest.raises(MarketStateError) as exc:
		engine.expire("owner", [old, fresh])
	assert exc.value.reason == "not_resolvable"
	assert not engine.bet(old).resolved

	with pytest.raises(MarketStateError) as exc:
		engine.expire("owner", [old, "P999999"])
	assert exc.value.reason == "unknown_bet"
	assert not engine.bet(old).resolved


def test_expire_skips_settled_bets(book, place, clock):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 1)
	engine.exercise(bet_id)
	clock.advance(WEEK)
	assert engine.expire("owner", [bet_id]) == []
	assert not engine.bet(bet_id).expired


def test_paused_bet_cannot_be_exercised(book, place):
	engine = book.engine
	bet_id = place("alice", [("g1", 0), ("g2", 0)])
	book.venue.resolve("g1", 0)
	book.venue.resolve("g2", 0)

	with pytest.raises(AuthorizationError):
		engine.pause_bet("alice", bet_id)
	engine.pause_bet("owner", bet_id)
	assert engine.exercisable_bets() == []
	with pytest.raises(MarketStateError) as exc:
		engine.exercise(bet_id)
	assert exc.value.reason == "paused"

	engine.unpause_bet("owner", bet_id)
	assert engine.exercise(bet_id) == to_fixed(500)
	with pytest.raises(MarketStateError) as exc:
		engine.pause_bet("owner", bet_id)
	assert exc.value.reason == "already_settled"
