from __future__ import annotations

import itertools
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from .bet import BetLeg, ParlayBet
from .calibration import Calibration
from .config import EngineConfig
from .errors import (
	AdmissionError,
	AuthorizationError,
	ExternalDependencyError,
	MarketStateError,
	ParlayError,
	ParlayValidationError,
)
from .events import (
	BetCreated,
	BetExercised,
	BetExpired,
	BetResolved,
	EventBus,
	FeeSettled,
	ParametersChanged,
	ReferrerPaid,
)
from .fixed import ONE, div
from .journal import Journal
from .logging_utils import get_logger
from .models import Leg, LegResolution, Phase, Quote
from .odds_policy import OddsPolicy
from .ports import CollateralPool, Ramp, ReferralLedger, SettlementToken, Venue
from .quote import QuoteEngine
from .risk_ledger import RiskLedger
from .sgp import SgpFeeTable

logger = get_logger(__name__)

_VALIDATION_REASONS = {"duplicate_market", "unknown_market", "invalid_position", "stake_below_minimum"}


def _rejection(reason: Optional[str]) -> ParlayError:
	reason = reason or "price_unavailable"
	if reason in _VALIDATION_REASONS:
		return ParlayValidationError(reason)
	return AdmissionError(reason)


class ParlayEngine:
	"""Buys, settles and administers parlays.

	The engine owns the risk ledger, the parameter tables and the arena of
	bet records (``bet_id -> ParlayBet``). Funds only move through the
	injected token, pool and ramp ports. A buy either commits every effect
	(exposure, fees, escrow, pool reservation, bet record) or none of them.
	"""

	def __init__(
		self,
		config: EngineConfig,
		venue: Venue,
		token: SettlementToken,
		pool: CollateralPool,
		referrals: Optional[ReferralLedger] = None,
		ramp: Optional[Ramp] = None,
		clock: Optional[Callable[[], int]] = None,
		ledger: Optional[RiskLedger] = None,
		fees: Optional[SgpFeeTable] = None,
		calibration: Optional[Calibration] = None,
		bus: Optional[EventBus] = None,
	) -> None:
		self.config = config
		self.venue = venue
		self.token = token
		self.pool = pool
		self.referrals = referrals
		self.ramp = ramp
		self.clock = clock or (lambda: int(time.time()))
		self.ledger = ledger or RiskLedger()
		self.bus = bus or EventBus()
		self.fee_overrides: Dict[str, int] = {}
		self.policy = OddsPolicy(venue, config, fees, calibration)
		self.quotes = QuoteEngine(config, self.policy, self.ledger, venue, self.fee_overrides)
		self._bets: Dict[str, ParlayBet] = {}
		self._active: Set[str] = set()
		self._ids = itertools.count(1)
		self._lock = threading.Lock()
		self._bet_locks: Dict[str, threading.Lock] = {}

	# ------------------------------------------------------------------
	# Read side
	# ------------------------------------------------------------------

	@staticmethod
	def legs(markets: List[str], positions: List[int]) -> List[Leg]:
		if len(markets) != len(positions):
			raise ParlayValidationError(
				"length_mismatch", f"{len(markets)} markets but {len(positions)} positions"
			)
		return [Leg(market_id=m, position=int(p)) for m, p in zip(markets, positions)]

	def quote(self, markets: List[str], positions: List[int], stake: int, caller: Optional[str] = None) -> Quote:
		return self.quotes.quote(self.legs(markets, positions), stake, caller)

	def can_admit(self, markets: List[str], positions: List[int], stake: int, caller: Optional[str] = None) -> bool:
		try:
			legs = self.legs(markets, positions)
			self._validate(legs, stake)
		except ParlayValidationError:
			return False
		return self.quotes.can_admit(legs, stake, caller)

	def bet(self, bet_id: str) -> ParlayBet:
		bet = self._bets.get(bet_id)
		if bet is None:
			raise MarketStateError("unknown_bet", f"no bet {bet_id}")
		return bet

	def bets(self) -> List[ParlayBet]:
		return list(self._bets.values())

	def active_bets(self) -> List[ParlayBet]:
		with self._lock:
			return [self._bets[i] for i in sorted(self._active)]

	def phase(self, bet_id: str) -> Phase:
		bet = self.bet(bet_id)
		if not bet.resolved:
			bet.update(self._resolutions(bet))
		return bet.phase(self.clock())

	def exercisable_bets(self) -> List[str]:
		out = []
		for bet in self.active_bets():
			bet.update(self._resolutions(bet))
			if bet.resolvable and not bet.paused:
				out.append(bet.bet_id)
		return out

	# ------------------------------------------------------------------
	# Buy
	# ------------------------------------------------------------------

	def _validate(self, legs: List[Leg], stake: int) -> None:
		cfg = self.config
		if not cfg.min_parlay_size <= len(legs) <= cfg.max_parlay_size:
			raise ParlayValidationError(
				"parlay_size", f"{len(legs)} legs, allowed {cfg.min_parlay_size}..{cfg.max_parlay_size}"
			)
		if stake < cfg.fixed("min_stake"):
			raise ParlayValidationError("stake_below_minimum", f"stake {stake} below {cfg.fixed('min_stake')}")
		if stake > cfg.fixed("max_stake"):
			raise ParlayValidationError("stake_above_maximum", f"stake {stake} above {cfg.fixed('max_stake')}")
		seen = set()
		for leg in legs:
			if leg.market_id in seen:
				raise ParlayValidationError("duplicate_market", f"{leg.market_id} appears twice")
			seen.add(leg.market_id)
			info = self.venue.market(leg.market_id)
			if info is None:
				raise ParlayValidationError("unknown_market", leg.market_id)
			if not 0 <= leg.position < info.outcome_count:
				raise ParlayValidationError(
					"invalid_position", f"{leg.market_id}: position {leg.position} of {info.outcome_count}"
				)

	def _check_terms(self, quote: Quote, stake: int, slippage: int, expected_payout: int) -> None:
		if not quote.admissible:
			raise _rejection(quote.reason)
		if quote.payout_basis - stake > self.config.fixed("max_supported_amount"):
			raise AdmissionError(
				"max_supported_amount", f"amplified amount {quote.payout_basis - stake} over the limit"
			)
		ratio = div(expected_payout, quote.payout_basis)
		if not ONE <= ratio <= ONE + slippage:
			raise AdmissionError(
				"slippage", f"expected {expected_payout}, executable payout {quote.payout_basis}"
			)

	def buy(
		self,
		caller: str,
		markets: List[str],
		positions: List[int],
		stake: int,
		slippage: int,
		expected_payout: int,
		recipient: Optional[str] = None,
		referrer: Optional[str] = None,
		collateral: Optional[str] = None,
	) -> str:
		legs = self.legs(markets, positions)
		self._validate(legs, stake)
		if collateral is not None and self.ramp is None:
			raise ParlayValidationError("unsupported_collateral", f"no ramp configured for {collateral}")

		# venue reads before taking any lock; repeated under the lock below
		advisory = self.quotes.quote(legs, stake, caller)
		if not advisory.admissible:
			logger.info("Buy rejected for %s: %s", caller, advisory.reason)
			raise _rejection(advisory.reason)

		journal = Journal()
		with self.ledger.locked(markets):
			quote = self.quotes.quote(legs, stake, caller)
			try:
				self._check_terms(quote, stake, slippage, expected_payout)
				bet = self._commit(journal, caller, recipient or caller, quote, referrer, collateral)
			except ParlayError as exc:
				if len(journal):
					logger.warning("Rolling back buy for %s: %s", caller, exc.reason)
				journal.rollback()
				logger.info("Buy rejected for %s: %s", caller, exc)
				raise
			except Exception as exc:
				logger.warning("Rolling back buy for %s after collaborator failure: %s", caller, exc)
				journal.rollback()
				raise ExternalDependencyError("external_failure", str(exc)) from exc

		for event in journal.events:
			self.bus.emit(event)
		logger.info(
			"Bet %s created: %d legs, stake %d, price %d, payout %d",
			bet.bet_id, len(bet.legs), bet.stake, bet.combined_price, bet.payout_basis,
		)
		return bet.bet_id

	def buy_with_alternate_collateral(
		self,
		caller: str,
		markets: List[str],
		positions: List[int],
		stake: int,
		slippage: int,
		expected_payout: int,
		collateral: str,
		recipient: Optional[str] = None,
		referrer: Optional[str] = None,
	) -> str:
		return self.buy(
			caller, markets, positions, stake, slippage, expected_payout,
			recipient=recipient, referrer=referrer, collateral=collateral,
		)

	def _commit(
		self,
		journal: Journal,
		caller: str,
		owner: str,
		quote: Quote,
		referrer: Optional[str],
		collateral: Optional[str],
	) -> ParlayBet:
		cfg = self.config
		now = self.clock()
		engine = cfg.engine_account

		# exposure
		for leg in quote.legs:
			cap = cfg.cap_multiplier * self.venue.cap(leg.market_id)
			self.ledger.increment(leg.market_id, leg.position, leg.amount, cap)
			journal.record(
				f"exposure {leg.market_id}/{leg.position}",
				lambda l=leg: self.ledger.undo(l.market_id, l.position, l.amount),
			)
		key = quote.combination_key or ""
		if self.quotes.tracks_combination(len(quote.legs)):
			self.ledger.increment_combination(key, quote.amplification, cfg.fixed("max_combination_exposure"))
			journal.record("combination exposure", lambda: self.ledger.undo_combination(key, quote.amplification))

		# stake
		stake = quote.stake
		if collateral is not None:
			delivered = self.ramp.convert_in(collateral, caller, engine, stake)
			journal.record(
				f"on-ramp {collateral}",
				lambda: self.ramp.convert_out(collateral, engine, caller, delivered),
			)
			if delivered < stake:
				raise ExternalDependencyError(
					"conversion_short", f"{collateral} conversion delivered {delivered} of {stake}"
				)
		else:
			self._move(journal, caller, engine, stake, "stake")

		# fees
		bet_id = self._allocate_id()
		safe_box = stake * self.quotes.safe_box_rate(caller) // ONE
		protocol = stake - quote.net_stake - safe_box
		referrer = referrer or (self.referrals.referrer_of(caller) if self.referrals else None)
		referral = 0
		if referrer and referrer != caller:
			referral = min(stake * cfg.fixed("referrer_fee") // ONE, protocol)
			self._move(journal, engine, referrer, referral, "referral")
			journal.emit(ReferrerPaid(at=now, referrer=referrer, trader=caller, amount=referral))
		self._move(journal, engine, cfg.safe_box_account, safe_box, "safe box")
		self._move(journal, engine, cfg.fee_account, protocol - referral, "protocol fee")
		journal.emit(FeeSettled(at=now, bet_id=bet_id, safe_box=safe_box, protocol=protocol - referral))

		# escrow
		bet = ParlayBet(
			bet_id=bet_id,
			owner=owner,
			legs=[BetLeg(**l.model_dump()) for l in quote.legs],
			stake=stake,
			net_stake=quote.net_stake,
			combined_price=quote.combined_price,
			payout_basis=quote.payout_basis,
			amplification=quote.amplification,
			combination_key=key,
			created_at=now,
			expiry=now + cfg.settlement_window_seconds,
		)
		self._move(journal, engine, bet.escrow, quote.net_stake, "escrow")
		self.pool.reserve(bet_id, bet.escrow, quote.amplification)
		journal.record("pool reserve", lambda: self.pool.release(bet_id, bet.escrow, quote.amplification))

		with self._lock:
			self._bets[bet_id] = bet
			self._active.add(bet_id)
			self._bet_locks[bet_id] = threading.Lock()
		journal.record("bet record", lambda: self._forget(bet_id))

		if referrer and self.referrals is not None:
			self.referrals.set_referrer(referrer, caller)

		journal.emit(
			BetCreated(
				at=now,
				bet_id=bet_id,
				owner=owner,
				markets=bet.markets,
				positions=[l.position for l in bet.legs],
				stake=stake,
				payout_basis=bet.payout_basis,
				combined_price=bet.combined_price,
			)
		)
		return bet

	def _move(self, journal: Journal, src: str, dst: str, amount: int, label: str) -> None:
		if amount <= 0:
			return
		self.token.transfer(src, dst, amount)
		journal.record(label, lambda: self.token.transfer(dst, src, amount))

	def _allocate_id(self) -> str:
		with self._lock:
			return f"P{next(self._ids):06d}"

	def _forget(self, bet_id: str) -> None:
		with self._lock:
			self._bets.pop(bet_id, None)
			self._active.discard(bet_id)
			self._bet_locks.pop(bet_id, None)

	# ------------------------------------------------------------------
	# Settlement
	# ------------------------------------------------------------------

	def _resolutions(self, bet: ParlayBet) -> List[LegResolution]:
		return [self.venue.resolution(l.market_id) for l in bet.legs]

	def exercise(self, bet_id: str) -> int:
		"""Settle a resolvable bet. Returns the payout, 0 for a lost or already settled bet."""
		return self._exercise(bet_id, None)

	def exercise_with_offramp(self, caller: str, bet_id: str, collateral: str) -> int:
		bet = self.bet(bet_id)
		if caller != bet.owner:
			raise AuthorizationError("not_owner", f"{caller} does not own {bet_id}")
		if self.ramp is None:
			raise ParlayValidationError("unsupported_collateral", f"no ramp configured for {collateral}")
		return self._exercise(bet_id, collateral)

	def _exercise(self, bet_id: str, collateral: Optional[str]) -> int:
		bet = self.bet(bet_id)
		resolutions = self._resolutions(bet)
		with self._bet_locks[bet_id]:
			if bet.resolved:
				logger.info("Bet %s already settled, nothing to do", bet_id)
				return 0
			if bet.paused:
				raise MarketStateError("paused", f"bet {bet_id} is paused")
			bet.update(resolutions)
			if not bet.resolvable:
				raise MarketStateError("not_resolvable", f"bet {bet_id} still has pending legs")

			journal = Journal()
			now = self.clock()
			balance = self.token.balance_of(bet.escrow)
			payout = 0 if bet.lost else min(bet.winning_payout(), balance)
			remainder = balance - payout
			try:
				if remainder > 0:
					self.pool.release(bet_id, bet.escrow, remainder)
					journal.record("pool release", lambda: self.pool.reserve(bet_id, bet.escrow, remainder))
				if payout > 0:
					if collateral is not None:
						self.ramp.convert_out(collateral, bet.escrow, bet.owner, payout)
					else:
						self.token.transfer(bet.escrow, bet.owner, payout)
			except Exception as exc:
				logger.warning("Rolling back exercise of %s: %s", bet_id, exc)
				journal.rollback()
				if isinstance(exc, ParlayError):
					raise
				raise ExternalDependencyError("external_failure", str(exc)) from exc

			bet.resolved = True
			bet.resolved_lost = bet.lost
			bet.payout = payout
			bet.settled_at = now
			with self._lock:
				self._active.discard(bet_id)

		self.bus.emit(BetResolved(at=now, bet_id=bet_id, won=not bet.resolved_lost))
		self.bus.emit(
			BetExercised(
				at=now, bet_id=bet_id, owner=bet.owner, payout=payout,
				returned_to_pool=remainder, collateral=collateral,
			)
		)
		logger.info("Bet %s exercised: %s, payout %d", bet_id, "lost" if bet.resolved_lost else "won", payout)
		return payout

	def expire(self, caller: str, bet_ids: List[str]) -> List[str]:
		"""Sweep matured bets nobody exercised before expiry to the fallback account.

		Every id is checked before anything moves: one unknown, still trading
		or unexpired bet rejects the whole call. Already settled bets are
		skipped.
		"""
		self._authorize(caller)
		now = self.clock()
		bets = [self.bet(i) for i in bet_ids]
		for bet in bets:
			if bet.resolved:
				continue
			bet.update(self._resolutions(bet))
			if not bet.resolvable:
				raise MarketStateError("not_resolvable", f"bet {bet.bet_id} still has pending legs")
			if now < bet.expiry:
				raise MarketStateError("not_expired", f"bet {bet.bet_id} expires at {bet.expiry}")

		expired = []
		for bet in bets:
			with self._bet_locks[bet.bet_id]:
				if bet.resolved:
					continue
				swept = self.token.balance_of(bet.escrow)
				if swept > 0:
					self.token.transfer(bet.escrow, self.config.fallback_account, swept)
				bet.resolved = True
				bet.expired = True
				bet.settled_at = now
				with self._lock:
					self._active.discard(bet.bet_id)
			expired.append(bet.bet_id)
			self.bus.emit(BetExpired(at=now, bet_id=bet.bet_id, swept=swept, recipient=self.config.fallback_account))
			logger.info("Bet %s expired, %d swept to %s", bet.bet_id, swept, self.config.fallback_account)
		return expired

	# ------------------------------------------------------------------
	# Administration
	# ------------------------------------------------------------------

	def _authorize(self, caller: str) -> None:
		if caller not in self.config.operators:
			raise AuthorizationError("not_operator", f"{caller} is not an operator")

	def set_parameters(self, caller: str, **changes: Any) -> None:
		self._authorize(caller)
		unknown = [k for k in changes if k not in EngineConfig.model_fields]
		if unknown:
			raise ParlayValidationError("unknown_parameter", ", ".join(sorted(unknown)))
		try:
			validated = EngineConfig(**{**self.config.model_dump(), **changes})
		except PydanticValidationError as e:
			raise ParlayValidationError("invalid_parameter", str(e)) from e
		with self._lock:
			for name in changes:
				setattr(self.config, name, getattr(validated, name))
			if "sgp_fees" in changes:
				self.policy.fees = SgpFeeTable(self.config.sgp_fees)
			if "calibration_file" in changes:
				self.policy.calibration = Calibration.load(self.config.calibration_file)
		self.bus.emit(ParametersChanged(at=self.clock(), caller=caller, changes=changes))
		logger.info("Parameters changed by %s: %s", caller, changes)

	def set_sgp_fee_entry(
		self,
		caller: str,
		tag1: int,
		tag_a: int,
		tag_b: int,
		position_a: Optional[int],
		position_b: Optional[int],
		fee: int,
	) -> None:
		self._authorize(caller)
		if fee < 0:
			raise ParlayValidationError("invalid_fee", str(fee))
		with self._lock:
			self.policy.fees.set(tag1, tag_a, tag_b, position_a, position_b, fee)
		self.bus.emit(
			ParametersChanged(
				at=self.clock(),
				caller=caller,
				changes={"sgp_fee": [tag1, tag_a, tag_b, position_a, position_b, fee]},
			)
		)

	def set_fee_override(self, caller: str, address: str, fee: Optional[int]) -> None:
		"""Override the safe-box rate for ``address``; ``None`` restores the default."""
		self._authorize(caller)
		with self._lock:
			if fee is None:
				self.fee_overrides.pop(address, None)
			else:
				if not 0 <= fee + self.config.fixed("protocol_fee") < ONE:
					raise ParlayValidationError("invalid_fee", str(fee))
				self.fee_overrides[address] = fee
		self.bus.emit(ParametersChanged(at=self.clock(), caller=caller, changes={"fee_override": [address, fee]}))

	def pause_bet(self, caller: str, bet_id: str, paused: bool = True) -> None:
		self._authorize(caller)
		bet = self.bet(bet_id)
		with self._bet_locks[bet_id]:
			if bet.resolved:
				raise MarketStateError("already_settled", f"bet {bet_id} is settled")
			bet.paused = paused
		logger.info("Bet %s %s by %s", bet_id, "paused" if paused else "unpaused", caller)

	def unpause_bet(self, caller: str, bet_id: str) -> None:
		self.pause_bet(caller, bet_id, paused=False)
