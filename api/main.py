from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
import os

from parlay_amm.config import EngineConfig
from parlay_amm.engine import ParlayEngine
from parlay_amm.errors import (
	AdmissionError,
	AuthorizationError,
	ExternalDependencyError,
	MarketStateError,
	ParlayError,
)
from parlay_amm.fixed import from_fixed, to_fixed
from parlay_amm.memory import InMemoryVenue, memory_book
from parlay_amm.parser import parse_legs


def _status(e: ParlayError) -> int:
	if isinstance(e, AuthorizationError):
		return 403
	if isinstance(e, MarketStateError):
		return 404 if e.reason == "unknown_bet" else 409
	if isinstance(e, ExternalDependencyError):
		return 502
	if isinstance(e, AdmissionError):
		return 409
	return 400


def _fail(e: ParlayError) -> HTTPException:
	return HTTPException(status_code=_status(e), detail={"reason": e.reason, "message": str(e)})


class LegsRequest(BaseModel):
	legs: Optional[str] = None
	markets: List[str] = []
	positions: List[int] = []
	stake: float
	caller: Optional[str] = None

	def resolve_legs(self):
		if self.legs:
			try:
				return parse_legs(self.legs)
			except ValueError as e:
				raise HTTPException(status_code=400, detail={"reason": "bad_legs", "message": str(e)})
		return self.markets, self.positions


class BuyRequest(LegsRequest):
	caller: str
	slippage: float = 0.02
	expected_payout: float
	recipient: Optional[str] = None
	referrer: Optional[str] = None
	collateral: Optional[str] = None


class ExerciseRequest(BaseModel):
	caller: Optional[str] = None
	collateral: Optional[str] = None


class ExpireRequest(BaseModel):
	caller: str
	bet_ids: List[str]


class ParametersRequest(BaseModel):
	caller: str
	changes: Dict[str, Any]


class SgpFeeRequest(BaseModel):
	caller: str
	tag1: int
	tag_a: int
	tag_b: int
	position_a: Optional[int] = None
	position_b: Optional[int] = None
	fee: float


class FeeOverrideRequest(BaseModel):
	caller: str
	address: str
	fee: Optional[float] = None


def _default_engine() -> ParlayEngine:
	config = EngineConfig.load(os.getenv("PARLAY_CONFIG"))
	venue_file = os.getenv("PARLAY_VENUE_FILE")
	if config.venue_url:
		from parlay_amm.venue_http import HttpVenue

		venue = HttpVenue(config)
	elif venue_file:
		venue = InMemoryVenue.from_yaml(venue_file)
	else:
		venue = InMemoryVenue()
	return memory_book(config, venue).engine


def create_app(engine: Optional[ParlayEngine] = None) -> FastAPI:
	engine = engine or _default_engine()
	app = FastAPI(title="Parlay AMM API")
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.state.engine = engine

	@app.post("/api/quote")
	def api_quote(req: LegsRequest):
		try:
			markets, positions = req.resolve_legs()
			q = engine.quote(markets, positions, to_fixed(req.stake), req.caller)
		except ParlayError as e:
			raise _fail(e)
		return {
			"admissible": q.admissible,
			"reason": q.reason,
			"net_stake": q.net_stake,
			"combined_price": q.combined_price,
			"payout": q.payout_basis,
			"leg_amounts": q.leg_amounts,
			"decimal": from_fixed(q.payout_basis) / req.stake if q.payout_basis else 0.0,
		}

	@app.post("/api/can_admit")
	def api_can_admit(req: LegsRequest):
		markets, positions = req.resolve_legs()
		return {"admissible": engine.can_admit(markets, positions, to_fixed(req.stake), req.caller)}

	@app.post("/api/buy")
	def api_buy(req: BuyRequest):
		markets, positions = req.resolve_legs()
		try:
			bet_id = engine.buy(
				req.caller,
				markets,
				positions,
				to_fixed(req.stake),
				slippage=to_fixed(req.slippage),
				expected_payout=to_fixed(req.expected_payout),
				recipient=req.recipient,
				referrer=req.referrer,
				collateral=req.collateral,
			)
		except ParlayError as e:
			raise _fail(e)
		return {"bet_id": bet_id}

	@app.post("/api/exercise/{bet_id}")
	def api_exercise(bet_id: str, req: Optional[ExerciseRequest] = None):
		try:
			if req is not None and req.collateral:
				payout = engine.exercise_with_offramp(req.caller or "", bet_id, req.collateral)
			else:
				payout = engine.exercise(bet_id)
		except ParlayError as e:
			raise _fail(e)
		return {"bet_id": bet_id, "payout": payout}

	@app.post("/api/expire")
	def api_expire(req: ExpireRequest):
		try:
			expired = engine.expire(req.caller, req.bet_ids)
		except ParlayError as e:
			raise _fail(e)
		return {"expired": expired}

	@app.get("/api/bets")
	def api_bets(active: bool = False):
		bets = engine.active_bets() if active else engine.bets()
		return {"bets": [b.model_dump() for b in bets]}

	@app.get("/api/bets/{bet_id}")
	def api_bet(bet_id: str):
		try:
			bet = engine.bet(bet_id)
			phase = engine.phase(bet_id)
		except ParlayError as e:
			raise _fail(e)
		return {**bet.model_dump(), "phase": phase.value}

	@app.get("/api/exposure")
	def api_exposure():
		return engine.ledger.snapshot()

	@app.post("/api/admin/parameters")
	def api_parameters(req: ParametersRequest):
		try:
			engine.set_parameters(req.caller, **req.changes)
		except ParlayError as e:
			raise _fail(e)
		return {"ok": True}

	@app.post("/api/admin/sgp_fee")
	def api_sgp_fee(req: SgpFeeRequest):
		try:
			engine.set_sgp_fee_entry(
				req.caller, req.tag1, req.tag_a, req.tag_b, req.position_a, req.position_b, to_fixed(req.fee)
			)
		except ParlayError as e:
			raise _fail(e)
		return {"ok": True}

	@app.post("/api/admin/fee_override")
	def api_fee_override(req: FeeOverrideRequest):
		try:
			fee = None if req.fee is None else to_fixed(req.fee)
			engine.set_fee_override(req.caller, req.address, fee)
		except ParlayError as e:
			raise _fail(e)
		return {"ok": True}

	return app


app = create_app()
