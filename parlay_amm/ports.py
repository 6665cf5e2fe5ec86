"""Interfaces to the collaborators the engine does not own.

The single-leg venue supplies market metadata, isolated odds, per-market caps
and results. The settlement token, collateral pool, referral ledger and
on/off-ramp move and record funds. Tests and the CLI use the in-memory
implementations in ``memory.py``; ``venue_http.py`` talks to a live venue.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .models import LegResolution, MarketInfo


class Venue(Protocol):
	def market(self, market_id: str) -> Optional[MarketInfo]:
		...

	def odds(self, market_id: str, position: int) -> int:
		...

	def cap(self, market_id: str) -> int:
		...

	def resolution(self, market_id: str) -> LegResolution:
		...


class SettlementToken(Protocol):
	def balance_of(self, account: str) -> int:
		...

	def transfer(self, src: str, dst: str, amount: int) -> None:
		...


class CollateralPool(Protocol):
	def reserve(self, bet_id: str, escrow: str, amount: int) -> None:
		...

	def release(self, bet_id: str, escrow: str, amount: int) -> None:
		...

	def balance(self) -> int:
		...


class ReferralLedger(Protocol):
	def referrer_of(self, trader: str) -> Optional[str]:
		...

	def set_referrer(self, referrer: str, trader: str) -> None:
		...


class Ramp(Protocol):
	def convert_in(self, asset: str, payer: str, dst: str, amount: int) -> int:
		"""Take ``asset`` from ``payer`` and deliver ``amount`` settlement units to ``dst``.

		Returns the settlement amount actually delivered.
		"""
		...

	def convert_out(self, asset: str, src: str, recipient: str, amount: int) -> int:
		"""Convert ``amount`` settlement units held by ``src`` into ``asset`` for ``recipient``."""
		...
