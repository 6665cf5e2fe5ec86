from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import os
import yaml
from pydantic import BaseModel, Field

from .fixed import to_fixed


class SgpFeeRow(BaseModel):
	tag1: int
	tag_a: int
	tag_b: int
	position_a: Optional[int] = None
	position_b: Optional[int] = None
	fee: float


def _default_sgp_fees() -> List[SgpFeeRow]:
	# moneyline + total, moneyline + spread, spread + total per league
	rows: List[SgpFeeRow] = []
	for league in (9002, 9003, 9004, 9006, 9016):
		rows.append(SgpFeeRow(tag1=league, tag_a=0, tag_b=10002, fee=0.90))
		rows.append(SgpFeeRow(tag1=league, tag_a=0, tag_b=10001, fee=0.93))
		rows.append(SgpFeeRow(tag1=league, tag_a=10001, tag_b=10002, fee=0.95))
	return rows


class EngineConfig(BaseModel):
	# Fees
	protocol_fee: float = 0.03
	safe_box_impact: float = 0.02
	referrer_fee: float = 0.005
	# Size / stake bounds
	min_parlay_size: int = 2
	max_parlay_size: int = 10
	min_stake: float = 10.0
	max_stake: float = 10000.0
	# Risk
	max_supported_odds: float = 0.005  # platform floor price, caps payout at 200x
	max_supported_amount: float = 20000.0
	max_combination_exposure: float = 20000.0
	cap_multiplier: int = 2
	settlement_window_seconds: int = 7 * 24 * 3600
	# SGP clamp band
	sgp_floor_ratio: float = 0.10
	sgp_ceiling_epsilon: float = 0.01
	line_tags: Dict[int, str] = Field(default_factory=lambda: {10001: "spread", 10002: "total"})
	sgp_fees: List[SgpFeeRow] = Field(default_factory=_default_sgp_fees)
	calibration_file: Optional[str] = None
	# Accounts
	operators: List[str] = Field(default_factory=lambda: ["owner"])
	engine_account: str = "parlay_amm"
	fee_account: str = "protocol"
	safe_box_account: str = "safe_box"
	fallback_account: str = "safe_box"
	# HTTP venue adapter
	venue_url: Optional[str] = Field(default_factory=lambda: os.getenv("PARLAY_VENUE_URL"))
	venue_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("PARLAY_VENUE_API_KEY"))
	ttl_seconds: int = 30
	cache_file: str = ".venue_cache.json"

	def fixed(self, name: str) -> int:
		return to_fixed(getattr(self, name))

	@staticmethod
	def load(config_path: Optional[str] = None) -> "EngineConfig":
		data = {}
		if config_path and Path(config_path).exists():
			with open(config_path, "r", encoding="utf-8") as f:
				data = yaml.safe_load(f) or {}
		return EngineConfig(**data)
