#!/usr/bin/env python3
"""Command line access to a stored game library."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from domain.aggregation import match_date_label
from domain.config import load_app_config
from domain.exchange import ImportFormatError, build_export, encode_share_string, parse_import_text, plan_import
from domain.library import GameLibrary, UnmappedPlayersError, ValidationError
from domain.scoring import FormulaError, evaluation_order
from domain.statistics import Period, PeriodKind, RankingSort, game_champion, library_summary, player_game_stats
from repositories.store_repository import SqlKeyValueStore

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Inspect, export and import board game matches.",
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="TOML settings file. Defaults to configs/app.toml."),
]
DbUrlOption = Annotated[
    str | None,
    typer.Option("--db-url", help="Database URL. Defaults to [storage].db_url from the config."),
]
UserOption = Annotated[
    str | None,
    typer.Option("--user", help="Handle of the user to act as. Defaults to the stored session."),
]


def _open_library(config_path: Path | None, db_url: str | None, user: str | None) -> GameLibrary:
    try:
        config = load_app_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc

    library = GameLibrary(SqlKeyValueStore.from_url(db_url or config.db_url), config)
    if user is not None and not library.login(user):
        raise typer.BadParameter(f"No user with handle '{user}'", param_hint="--user")
    return library


@app.command()
def games(
    config: ConfigOption = None,
    db_url: DbUrlOption = None,
    user: UserOption = None,
    favorites: Annotated[bool, typer.Option("--favorites", help="Only list favorite games.")] = False,
) -> None:
    """List the catalog with play counts for the current user."""
    library = _open_library(config, db_url, user)
    views = [view for view in library.games if view.game.is_favorite or not favorites]
    if not views:
        typer.echo("no games")
        return

    typer.echo(f"user={library.current_user.handle} games={len(views)}")
    for view in views:
        marker = "*" if view.game.is_favorite else " "
        typer.echo(f"{marker} {view.id:>14} {view.title:<30} plays={view.play_count:3d} last={view.last_played}")


@app.command()
def matches(
    game_id: Annotated[int, typer.Argument(help="Game id.")],
    config: ConfigOption = None,
    db_url: DbUrlOption = None,
    user: UserOption = None,
) -> None:
    """List visible matches for one game, most recent first."""
    library = _open_library(config, db_url, user)
    view = library.get_game_by_id(game_id)
    if view is None:
        raise typer.BadParameter(f"Unknown game id {game_id}", param_hint="game_id")

    players_by_id = {player.id: player for player in library.players}
    rows = library.get_matches_by_game_id(game_id)
    typer.echo(f"game='{view.title}' matches={len(rows)}")
    for match in rows:
        results = ", ".join(
            f"{players_by_id[result.player_id].name if result.player_id in players_by_id else result.player_id}"
            f"={result.score}{' (W)' if result.is_winner else ''}"
            for result in match.results
        )
        typer.echo(f"{match.id:>14} {match_date_label(match):<12} {results}")


@app.command()
def stats(
    config: ConfigOption = None,
    db_url: DbUrlOption = None,
    user: UserOption = None,
    year: Annotated[int | None, typer.Option("--year", help="Restrict to one year.")] = None,
    month: Annotated[int | None, typer.Option("--month", help="Restrict to one month (needs --year).")] = None,
    game_id: Annotated[
        int | None,
        typer.Option("--game-id", help="Show the player ranking for one game instead."),
    ] = None,
    sort: Annotated[RankingSort, typer.Option("--sort", help="Ranking order for --game-id.")] = RankingSort.WIN_RATE,
) -> None:
    """Print library statistics for the visible matches."""
    if month is not None and year is None:
        raise typer.BadParameter("--month requires --year")
    if month is not None and not 1 <= month <= 12:
        raise typer.BadParameter("--month must be between 1 and 12")

    library = _open_library(config, db_url, user)

    if game_id is not None:
        view = library.get_game_by_id(game_id)
        if view is None:
            raise typer.BadParameter(f"Unknown game id {game_id}", param_hint="--game-id")
        ranking = player_game_stats(view.game, library.get_matches_by_game_id(game_id), library.players, sort=sort)
        champion = game_champion(ranking)
        typer.echo(f"game='{view.title}' champion={champion.player.name if champion else '-'}")
        for index, row in enumerate(ranking, start=1):
            typer.echo(
                f"{index:2d}. {row.player.name:<20} played={row.played:3d} wins={row.wins:3d} "
                f"win_rate={row.win_rate:3d}% best={row.best_score:g} avg={row.avg_score:g}"
            )
        return

    if month is not None:
        period = Period(kind=PeriodKind.MONTH, year=year, month=month)
    elif year is not None:
        period = Period(kind=PeriodKind.YEAR, year=year)
    else:
        period = Period()

    summary = library_summary(library.all_games, library.matches, library.players, period)
    typer.echo(
        f"matches={summary.total_matches} play_time={summary.play_time_label} "
        f"games_played={summary.unique_games_played} library_utilization={summary.library_utilization}% "
        f"extension_utilization={summary.extension_utilization}%"
    )
    typer.echo(" ".join(f"{status}={count}" for status, count in summary.ownership.items()))
    for winner in summary.top_winners[:10]:
        name = winner.player.name if winner.player else winner.player_id
        typer.echo(f"{winner.rank:2d}. {name:<20} wins={winner.wins}")
    for item in summary.game_breakdown:
        champions = ", ".join(player.name for player in item.champions) or "-"
        typer.echo(f"   {item.game.title:<30} count={item.count:3d} champions={champions}")


@app.command()
def export(
    config: ConfigOption = None,
    db_url: DbUrlOption = None,
    user: UserOption = None,
    game_id: Annotated[
        int | None,
        typer.Option("--game-id", help="Only export this game's matches."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", help="Write the share string to this file instead of stdout."),
    ] = None,
) -> None:
    """Print a share string for the visible matches."""
    library = _open_library(config, db_url, user)
    selected = library.get_matches_by_game_id(game_id) if game_id is not None else library.matches
    if not selected:
        raise typer.BadParameter("No matches to export")

    share = encode_share_string(build_export(selected, library.all_games, library.players))
    if output is None:
        typer.echo(share)
        return
    output.write_text(share, encoding="utf-8")
    typer.echo(f"exported matches={len(selected)} path={output}")


@app.command("import")
def import_matches(
    source: Annotated[Path, typer.Argument(help="File holding a share string, share link, JSON export or BG Stats backup.")],
    config: ConfigOption = None,
    db_url: DbUrlOption = None,
    user: UserOption = None,
    game_id: Annotated[
        int | None,
        typer.Option("--game-id", help="Import into this game instead of matching by title."),
    ] = None,
    refuse_new_players: Annotated[
        bool,
        typer.Option("--refuse-new-players", help="Fail instead of creating players that have no local match."),
    ] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show the mapping without importing.")] = False,
) -> None:
    """Import matches, mapping players, extensions and locations by name."""
    library = _open_library(config, db_url, user)
    try:
        exports = parse_import_text(source.read_text(encoding="utf-8"))
    except ImportFormatError as exc:
        raise typer.BadParameter(str(exc), param_hint="source") from exc
    if game_id is not None and len(exports) > 1:
        raise typer.BadParameter("--game-id only applies to a single-game import", param_hint="--game-id")

    for item in exports:
        try:
            plan = plan_import(item, library.all_games, library.players, library.locations, target_game_id=game_id)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--game-id") from exc

        unmapped = ", ".join(player.name for player in plan.unmapped_players) or "-"
        typer.echo(
            f"source='{item.source_game_title}' matches={len(item.matches)} "
            f"target_game_id={plan.target_game_id} unmapped_players={unmapped}"
        )
        if dry_run:
            continue

        try:
            result = library.apply_import(plan, create_missing_players=not refuse_new_players)
        except (UnmappedPlayersError, ValidationError) as exc:
            raise typer.BadParameter(str(exc)) from exc
        typer.echo(
            f"imported matches={len(result.matches)} game_id={result.game_id} "
            f"new_players={len(result.created_players)} new_locations={len(result.added_locations)}"
        )


@app.command("check-formulas")
def check_formulas(
    config: ConfigOption = None,
    db_url: DbUrlOption = None,
) -> None:
    """Validate every calculated column of every game and extension."""
    library = _open_library(config, db_url, None)
    failures = 0
    for game in library.all_games:
        sheets = [(game.title, game.custom_columns)]
        sheets.extend(
            (f"{game.title} / {extension.title}", game.custom_columns + extension.custom_columns)
            for extension in game.extensions
            if extension.custom_columns
        )
        for label, columns in sheets:
            if not any(column.is_calculated for column in columns):
                continue
            try:
                order = evaluation_order(columns)
            except FormulaError as exc:
                failures += 1
                typer.echo(f"FAIL {label}: {exc}")
                continue
            typer.echo(f"ok   {label}: {' -> '.join(order)}")

    if failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app()
