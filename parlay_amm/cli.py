from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import json
import typer
import yaml

from .calibration import Calibration
from .config import EngineConfig
from .errors import ParlayError
from .fixed import to_fixed
from .logging_utils import get_logger
from .memory import InMemoryVenue, MemoryBook, memory_book
from .parser import parse_legs
from .reporting import print_book, print_quote, write_artifacts
from .simulate import simulate_pool, venue_probabilities

app = typer.Typer(help="Parlay AMM: parlay pricing and risk engine")
logger = get_logger(__name__)


class _Clock:
	def __init__(self, start: int = 1_700_000_000) -> None:
		self.now = start

	def __call__(self) -> int:
		return self.now


def _apply(book: MemoryBook, clock: _Clock, action: Dict) -> None:
	engine = book.engine
	(kind, args), = action.items()
	if kind == "fund":
		for account, amount in args.items():
			book.token.mint(account, to_fixed(amount))
	elif kind == "fund_asset":
		for symbol, accounts in args.items():
			for account, amount in accounts.items():
				book.ramp.assets[symbol].mint(account, to_fixed(amount))
	elif kind == "buy":
		markets, positions = parse_legs(args["legs"])
		stake = to_fixed(args["stake"])
		caller = args["caller"]
		quote = engine.quote(markets, positions, stake, caller)
		bet_id = engine.buy(
			caller,
			markets,
			positions,
			stake,
			slippage=to_fixed(args.get("slippage", 0.02)),
			expected_payout=quote.payout_basis,
			referrer=args.get("referrer"),
			collateral=args.get("collateral"),
		)
		logger.info("%s bought %s as %s", caller, args["legs"], bet_id)
	elif kind == "resolve":
		for market_id, outcome in args.items():
			if outcome == "cancelled":
				book.venue.cancel(market_id)
			else:
				book.venue.resolve(market_id, int(outcome))
	elif kind == "advance":
		clock.now += int(args)
	elif kind == "exercise":
		ids = engine.exercisable_bets() if args == "all" else list(args)
		for bet_id in ids:
			engine.exercise(bet_id)
	elif kind == "expire":
		ids = [b.bet_id for b in engine.active_bets()] if args == "all" else list(args)
		engine.expire(engine.config.operators[0], ids)
	else:
		raise typer.BadParameter(f"unknown action {kind!r}")


@app.command()
def quote(
	venue_file: str = typer.Option(..., "--venue", help="Path to venue fixture YAML"),
	legs: str = typer.Option(..., "--legs", help="Comma-separated legs, e.g. g1:home,g2:over"),
	stake: float = typer.Option(100.0, "--stake", help="Stake in settlement units"),
	config_path: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml"),
	as_json: bool = typer.Option(False, "--json", help="Print the quote as JSON"),
):
	config = EngineConfig.load(config_path)
	book = memory_book(config, InMemoryVenue.from_yaml(venue_file))
	markets, positions = parse_legs(legs)
	try:
		q = book.engine.quote(markets, positions, to_fixed(stake))
	except ParlayError as e:
		typer.echo(f"Rejected: {e.reason} {e}")
		raise typer.Exit(code=1)
	if as_json:
		typer.echo(json.dumps(q.model_dump(), indent=2, default=str))
	else:
		print_quote(q)
	if not q.admissible:
		typer.echo(f"Rejected: {q.reason}")
		raise typer.Exit(code=1)


@app.command()
def replay(
	venue_file: str = typer.Option(..., "--venue", help="Path to venue fixture YAML"),
	script: str = typer.Option(..., "--script", help="YAML list of actions to run against the engine"),
	config_path: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml"),
	pool_funds: float = typer.Option(1_000_000.0, "--pool", help="Initial liquidity pool balance"),
	outdir: str = typer.Option("outputs", "--outdir", help="Output directory"),
	trials: int = typer.Option(0, "--simulate", help="Monte-Carlo trials over open bets (0 = skip)"),
	stop_on_error: bool = typer.Option(False, "--strict", help="Abort on the first rejected action"),
):
	"""Run a scripted session (fund, buy, resolve, advance, exercise, expire) and report the book."""
	config = EngineConfig.load(config_path)
	clock = _Clock()
	book = memory_book(config, InMemoryVenue.from_yaml(venue_file), pool_funds=pool_funds, clock=clock)
	actions = yaml.safe_load(Path(script).read_text(encoding="utf-8")) or []
	rejected = 0
	for action in actions:
		try:
			_apply(book, clock, action)
		except ParlayError as e:
			rejected += 1
			logger.warning("Action %s rejected: %s", action, e)
			if stop_on_error:
				raise typer.Exit(code=1)

	engine = book.engine
	print_book(engine.bets(), engine.ledger.rows())
	summary = write_artifacts(outdir, engine.bets(), engine.ledger.rows(), book.pool.balance())
	typer.echo(f"{summary.count} bets, {summary.active} open, {rejected} rejected actions")
	if trials > 0:
		markets = sorted({m for b in engine.active_bets() for m in b.markets})
		stats = simulate_pool(engine.bets(), venue_probabilities(book.venue, markets), trials=trials)
		typer.echo(json.dumps(stats, indent=2))


@app.command()
def calibration(
	calibration_file: Optional[str] = typer.Option(None, "--file", help="Calibration YAML (default table if omitted)"),
	line: Optional[str] = typer.Option(None, "--line", help="Only show one line category"),
):
	from rich.console import Console  # type: ignore
	from rich.table import Table  # type: ignore

	cal = Calibration.load(calibration_file)
	t = Table("#", "Line", "A range", "B range", "Action", "Value")
	for i, r in enumerate(cal.rules):
		if line and r.line != line:
			continue
		t.add_row(str(i), r.line, f"[{r.a_lo:.2f}, {r.a_hi:.2f})", f"[{r.b_lo:.2f}, {r.b_hi:.2f})", r.action, f"{r.value:g}")
	Console().print(t)


def main():
	app()


if __name__ == "__main__":
	main()
