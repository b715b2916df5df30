"""Typer CLI entry point for running seeded werewolf matches."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import List, Optional

import orjson
import structlog
import typer
from dotenv import load_dotenv

from ..config.settings import default_config_path, load_match_config
from ..core.errors import GameValidationError
from ..core.packs import Pack, build_roles, get_preset, validate_packs
from ..core.state import MatchConfig
from .simulation import run_batch, simulate_match

LOGGER = structlog.get_logger(__name__)

app = typer.Typer(help="Run deterministic 11-player werewolf matches.", invoke_without_command=False)
_configured_logging = False


def configure_logging(level: str = "INFO") -> None:
    global _configured_logging
    if _configured_logging:
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        cache_logger_on_first_use=True,
    )
    _configured_logging = True


def _parse_packs(raw: Optional[str], preset: Optional[str]) -> Optional[List[Pack]]:
    if raw and preset:
        typer.echo("Error: use either --packs or --preset")
        raise typer.Exit(code=1)
    if preset:
        try:
            return list(get_preset(preset))
        except ValueError as exc:
            typer.echo(f"Error: {exc}")
            raise typer.Exit(code=1)
    if not raw:
        return None
    try:
        return [Pack(name.strip().upper()) for name in raw.split(",") if name.strip()]
    except ValueError as exc:
        typer.echo(f"Error: unknown pack ({exc})")
        raise typer.Exit(code=1)


def _build_config(config: Path, packs: Optional[str], preset: Optional[str], random_start: bool) -> MatchConfig:
    try:
        base = load_match_config(config)
    except GameValidationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)

    selected = _parse_packs(packs, preset)
    if selected is not None:
        validation = validate_packs(selected)
        if not validation.valid:
            typer.echo(f"Error: {'; '.join(validation.errors)}")
            raise typer.Exit(code=1)
        return base.model_copy(update={"packs": selected, "random_start": False})
    if random_start:
        return base.model_copy(update={"random_start": True})
    return base


@app.command("simulate")
def simulate(
    seed: int = typer.Option(1000, help="Base seed; the five match seeds are seed+0..4"),
    config: Path = typer.Option(default_config_path(), help="Path to match configuration JSON"),
    packs: Optional[str] = typer.Option(None, help="Comma separated packs, e.g. FOX,HUNTER"),
    preset: Optional[str] = typer.Option(None, help="Named pack preset (BASIC, C_COUNTRY, G_COUNTRY)"),
    random_start: bool = typer.Option(True, "--random-start/--fixed-start", help="Draw packs from the seed"),
    output: Optional[Path] = typer.Option(None, help="Write the final state as JSON"),
    log_level: str = typer.Option("INFO", help="Log level"),
) -> None:
    """Play one fully autonomous match and print the outcome."""

    load_dotenv()
    configure_logging(log_level)

    match_config = _build_config(config, packs, preset, random_start)
    LOGGER.info("simulation.start", seed=seed, config=str(config))
    result, state = simulate_match(seed, config=match_config)

    typer.echo(f"Winner: {result.winner or 'none'} after {result.days} day(s), {result.transitions} transitions")
    typer.echo(f"Packs: {', '.join(result.packs) or 'base game'}{' (fallback)' if result.pack_fallback else ''}")
    for error in result.errors:
        typer.echo(f"  ! {error}")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(orjson.dumps(state.to_dict(), option=orjson.OPT_INDENT_2))
        typer.echo(f"State written to {output}")


@app.command("batch")
def batch(
    games: int = typer.Option(10, min=1, help="Number of matches"),
    start_seed: int = typer.Option(1000, help="Seed of the first match"),
    config: Path = typer.Option(default_config_path(), help="Path to match configuration JSON"),
    output: Optional[Path] = typer.Option(None, help="Write stats and per-match results as JSON"),
    log_level: str = typer.Option("WARNING", help="Log level"),
) -> None:
    """Simulate many matches and report win rates."""

    load_dotenv()
    configure_logging(log_level)

    match_config = _build_config(config, None, None, True)
    stats, results = run_batch(games, start_seed=start_seed, config=match_config)

    typer.echo(f"Games: {stats.total_games}  completed: {stats.completed}  crashed: {stats.crashed}")
    for faction, wins in stats.wins.items():
        typer.echo(f"  {faction}: {wins}")
    typer.echo(f"Average days: {stats.avg_days:.2f}  pack fallbacks: {stats.pack_fallbacks}")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        payload = {"stats": stats.to_dict(), "results": [vars(result) for result in results]}
        output.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        typer.echo(f"Results written to {output}")


@app.command("roles")
def roles(
    packs: Optional[str] = typer.Option(None, help="Comma separated packs"),
    preset: Optional[str] = typer.Option(None, help="Named pack preset"),
) -> None:
    """Print the role composition for a pack selection."""

    selected = _parse_packs(packs, preset) or []
    try:
        composition = build_roles(selected)
    except GameValidationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)

    for warning in validate_packs(selected).warnings:
        typer.echo(f"Warning: {warning}")
    for role, count in sorted(Counter(composition).items(), key=lambda item: item[0].value):
        typer.echo(f"{role.value}: {count}")


def main() -> None:  # pragma: no cover - console entry point
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
