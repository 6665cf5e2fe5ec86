from __future__ import annotations

from typing import Dict, List

import numpy as np

from .bet import ParlayBet
from .fixed import from_fixed
from .ports import Venue


def venue_probabilities(venue: Venue, markets: List[str]) -> Dict[str, List[float]]:
	# isolated odds read as fair outcome probabilities
	probs: Dict[str, List[float]] = {}
	for m in markets:
		info = venue.market(m)
		if info is None:
			continue
		probs[m] = [from_fixed(venue.odds(m, i)) for i in range(info.outcome_count)]
	return probs


def simulate_pool(
	bets: List[ParlayBet],
	outcome_probs: Dict[str, List[float]],
	trials: int = 50000,
	random_seed: int = 42,
) -> Dict[str, float]:
	"""Monte-Carlo P&L of the liquidity pool over open bets.

	Markets are drawn independently, so same-game correlation is not modelled.
	Per bet the pool keeps the net stake and pays the payout basis on a win.
	"""
	rng = np.random.default_rng(random_seed)
	open_bets = [b for b in bets if not b.resolved]
	markets = sorted({m for b in open_bets for m in b.markets})
	draws: Dict[str, np.ndarray] = {}
	for m in markets:
		p = np.asarray(outcome_probs[m], dtype=float)
		draws[m] = rng.choice(len(p), size=trials, p=p / p.sum())
	pnl = np.zeros(trials)
	for b in open_bets:
		won = np.ones(trials, dtype=bool)
		for leg in b.legs:
			won &= draws[leg.market_id] == leg.position
		pnl += from_fixed(b.net_stake) - won * from_fixed(b.payout_basis)
	if not open_bets:
		return {"mean": 0.0, "median": 0.0, "p05": 0.0, "p95": 0.0, "p_loss": 0.0}
	return {
		"mean": float(np.mean(pnl)),
		"median": float(np.median(pnl)),
		"p05": float(np.percentile(pnl, 5)),
		"p95": float(np.percentile(pnl, 95)),
		"p_loss": float(np.mean(pnl < 0)),
	}
