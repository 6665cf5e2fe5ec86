from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Dict, List, Optional

import requests

from .config import EngineConfig
from .fixed import to_fixed
from .logging_utils import get_logger
from .models import LegResolution, MarketInfo

logger = get_logger(__name__)


def _cache_valid(path: Path, ttl_seconds: int) -> bool:
	if not path.exists():
		return False
	age = time.time() - path.stat().st_mtime
	return age <= ttl_seconds


def fetch_markets(config: EngineConfig, cache_override: Optional[str] = None) -> List[Dict]:
	cache_file = Path(cache_override or config.cache_file)
	if _cache_valid(cache_file, config.ttl_seconds):
		logger.debug("Using cached venue snapshot from %s", cache_file)
		return json.loads(cache_file.read_text(encoding="utf-8"))

	if not config.venue_url:
		raise RuntimeError("PARLAY_VENUE_URL is not set. Set env var or config.")
	headers = {}
	if config.venue_api_key:
		headers["Authorization"] = f"Bearer {config.venue_api_key}"

	logger.info("Fetching markets from %s ...", config.venue_url)
	resp = requests.get(f"{config.venue_url.rstrip('/')}/markets", headers=headers, timeout=20)
	resp.raise_for_status()
	data = resp.json()
	if isinstance(data, dict):
		data = data.get("markets", [])
	cache_file.write_text(json.dumps(data), encoding="utf-8")
	logger.info("Saved venue snapshot to %s", cache_file)
	return data


class HttpVenue:
	"""Venue port backed by a REST snapshot of the single-leg markets.

	Each market row carries ``market_id``, ``tag1``, ``tag2``, ``parent_id``,
	``odds`` (one decimal price per outcome), ``cap`` and optionally
	``result`` (winning outcome index or ``"cancelled"``). The snapshot is
	refreshed at most every ``ttl_seconds``.
	"""

	def __init__(self, config: EngineConfig) -> None:
		self.config = config
		self._rows: Dict[str, Dict] = {}
		self._loaded_at = 0.0

	def _snapshot(self) -> Dict[str, Dict]:
		if not self._rows or time.time() - self._loaded_at > self.config.ttl_seconds:
			self._rows = {str(r["market_id"]): r for r in fetch_markets(self.config)}
			self._loaded_at = time.time()
		return self._rows

	def market(self, market_id: str) -> Optional[MarketInfo]:
		row = self._snapshot().get(market_id)
		if row is None:
			return None
		odds = row.get("odds") or []
		return MarketInfo(
			market_id=market_id,
			tag1=int(row.get("tag1", 0)),
			tag2=int(row.get("tag2", 0)),
			parent_id=row.get("parent_id"),
			outcome_count=int(row.get("outcome_count", len(odds))),
			maturity=int(row.get("maturity", 0)),
		)

	def odds(self, market_id: str, position: int) -> int:
		row = self._snapshot().get(market_id)
		if row is None:
			return 0
		odds = row.get("odds") or []
		if not 0 <= position < len(odds):
			return 0
		try:
			return to_fixed(odds[position])
		except Exception:
			logger.warning("Bad odds %r for %s/%d", odds[position], market_id, position)
			return 0

	def cap(self, market_id: str) -> int:
		row = self._snapshot().get(market_id)
		return to_fixed(row.get("cap", 0)) if row else 0

	def resolution(self, market_id: str) -> LegResolution:
		row = self._snapshot().get(market_id)
		if row is None or row.get("result") is None:
			return LegResolution()
		if row["result"] == "cancelled":
			return LegResolution(resolved=True, cancelled=True)
		return LegResolution(resolved=True, winning_outcome=int(row["result"]))
