from __future__ import annotations


class ParlayError(Exception):
	"""Base for every rejection raised by the engine.

	``reason`` is a short machine-readable code (``duplicate_market``,
	``market_cap_exceeded`` ...) that callers and the HTTP layer switch on.
	"""

	def __init__(self, reason: str, message: str = "") -> None:
		self.reason = reason
		super().__init__(message or reason)


class ParlayValidationError(ParlayError):
	pass


class AdmissionError(ParlayError):
	pass


class MarketStateError(ParlayError):
	pass


class ExternalDependencyError(ParlayError):
	pass


class AuthorizationError(ParlayError):
	pass
