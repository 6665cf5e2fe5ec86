from __future__ import annotations

import re
from typing import List, Tuple

from .models import Side, Total

LEG_RE = re.compile(r"^\s*(?P<market>[A-Za-z0-9_.\-]+)\s*[:@=]\s*(?P<outcome>[A-Za-z]+|[0-9]+)\s*$")

OUTCOME_ALIASES = {
	"home": Side.HOME,
	"h": Side.HOME,
	"away": Side.AWAY,
	"a": Side.AWAY,
	"draw": Side.DRAW,
	"x": Side.DRAW,
	"over": Total.OVER,
	"o": Total.OVER,
	"under": Total.UNDER,
	"u": Total.UNDER,
}


def parse_leg(text: str) -> Tuple[str, int]:
	"""Parse one leg such as ``g1:home``, ``g1-total:under`` or ``g7:2``.

	Named outcomes map to positions (home/over 0, away/under 1, draw 2); a bare
	number is taken as the position index itself.
	"""
	m = LEG_RE.match(text)
	if not m:
		raise ValueError(f"cannot parse leg {text!r}, expected MARKET:OUTCOME")
	outcome = m.group("outcome").lower()
	if outcome.isdigit():
		position = int(outcome)
	elif outcome in OUTCOME_ALIASES:
		position = int(OUTCOME_ALIASES[outcome])
	else:
		raise ValueError(f"unknown outcome {outcome!r} in leg {text!r}")
	return m.group("market"), position


def parse_legs(text: str) -> Tuple[List[str], List[int]]:
	markets: List[str] = []
	positions: List[int] = []
	for raw in re.split(r"[,\n]", text):
		if not raw.strip():
			continue
		market, position = parse_leg(raw)
		markets.append(market)
		positions.append(position)
	return markets, positions
