from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

import json
import pandas as pd

from .bet import ParlayBet
from .fixed import decimal_odds, from_fixed
from .models import Quote


@dataclass
class BookSummary:
	count: int
	active: int
	total_stake: float
	total_payout_basis: float
	total_paid: float
	pool_balance: float
	exposure: Dict[str, float]


def print_quote(quote: Quote) -> None:
	from rich.console import Console  # type: ignore
	from rich.table import Table  # type: ignore

	console = Console()
	console.rule("Legs")
	t = Table("Market", "Pos", "Odds", "Adjusted", "Leg amount")
	for l in quote.legs:
		t.add_row(l.market_id, str(l.position), f"{from_fixed(l.odds):.4f}", f"{from_fixed(l.adjusted_odds):.4f}", f"{from_fixed(l.amount):.2f}")
	console.print(t)

	console.rule("Quote")
	t2 = Table("Stake", "Net stake", "Price", "Dec", "Payout", "Admissible")
	t2.add_row(
		f"{from_fixed(quote.stake):.2f}",
		f"{from_fixed(quote.net_stake):.2f}",
		f"{from_fixed(quote.combined_price):.6f}",
		f"{decimal_odds(quote.combined_price):.2f}",
		f"{from_fixed(quote.payout_basis):.2f}",
		"yes" if quote.admissible else f"no ({quote.reason})",
	)
	console.print(t2)


def print_book(bets: List[ParlayBet], exposure_rows: List[Dict]) -> None:
	from rich.console import Console  # type: ignore
	from rich.table import Table  # type: ignore

	console = Console()
	console.rule("Bets")
	t = Table("Bet", "Owner", "Legs", "Stake", "Price", "Payout basis", "State")
	for b in bets:
		if b.expired:
			state = "expired"
		elif b.resolved:
			state = "lost" if b.resolved_lost else f"paid {from_fixed(b.payout):.2f}"
		else:
			state = "open"
		t.add_row(
			b.bet_id,
			b.owner,
			",".join(f"{l.market_id}:{l.position}" for l in b.legs),
			f"{from_fixed(b.stake):.2f}",
			f"{from_fixed(b.combined_price):.4f}",
			f"{from_fixed(b.payout_basis):.2f}",
			state,
		)
	console.print(t)

	console.rule("Exposure")
	t2 = Table("Market", "Pos", "Exposure")
	for row in exposure_rows:
		t2.add_row(row["market_id"], str(row["position"]), f"{from_fixed(row['exposure']):.2f}")
	console.print(t2)


def write_artifacts(outdir: str | Path, bets: List[ParlayBet], exposure_rows: List[Dict], pool_balance: int = 0) -> BookSummary:
	Path(outdir).mkdir(parents=True, exist_ok=True)
	rows = []
	for b in bets:
		row = b.summary()
		for k in ("stake", "payout_basis", "payout"):
			row[k] = round(from_fixed(row[k]), 6)
		row["combined_price"] = round(from_fixed(row["combined_price"]), 8)
		rows.append(row)
	bets_path = Path(outdir) / "bets.csv"
	pd.DataFrame(rows).to_csv(bets_path, index=False)

	exposure_df = pd.DataFrame(exposure_rows, columns=["market_id", "position", "exposure"])
	exposure_df["exposure"] = exposure_df["exposure"].map(from_fixed)
	exposure_path = Path(outdir) / "exposure.csv"
	exposure_df.to_csv(exposure_path, index=False)

	by_market = exposure_df.groupby("market_id")["exposure"].sum().to_dict() if len(exposure_df) else {}
	summary = BookSummary(
		count=len(bets),
		active=sum(1 for b in bets if not b.resolved),
		total_stake=sum(from_fixed(b.stake) for b in bets),
		total_payout_basis=sum(from_fixed(b.payout_basis) for b in bets),
		total_paid=sum(from_fixed(b.payout) for b in bets),
		pool_balance=from_fixed(pool_balance),
		exposure={k: float(v) for k, v in by_market.items()},
	)
	summary_path = Path(outdir) / "summary.json"
	summary_path.write_text(json.dumps(summary.__dict__, indent=2), encoding="utf-8")
	return summary
