from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Settings, load_config
from .logging_utils import configure_logging
from .models import MatchedEpisodeInfo, MovieMatchResult, MovieRecord, Ruleset
from .search import SearchResult, SearchService, build_search_service
from .validation import ValidationReport, validate_config_file
from .version import __version__

LOGGER = logging.getLogger(__name__)


def _format_minutes(seconds: int) -> str:
    return f"{seconds // 60} min"


def render_matches(console: Console, result: SearchResult) -> None:
    title = "Matches"
    if result.show is not None:
        title = f"Matches for {result.show.display_name}"
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Episode", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Channel")
    table.add_column("Catalog title")
    table.add_column("Duration", justify="right")
    table.add_column("Aired")

    for match in result.matches:
        table.add_row(*_match_row(match))
    console.print(table)

    if result.timed_out:
        console.print("[yellow]The search timed out; results may be incomplete.[/yellow]")
    else:
        console.print(f"{len(result.matches)} match(es) from {result.hits} catalog hit(s)")


def _match_row(match: MatchedEpisodeInfo) -> tuple[str, str, str, str, str, str]:
    episode = match.episode
    return (
        f"S{episode.season_number:02d}E{episode.episode_number:02d}",
        episode.name,
        match.hit.channel,
        match.hit.title,
        _format_minutes(match.hit.duration),
        match.hit.catalog_date.isoformat(),
    )


def render_movie_results(console: Console, movie: MovieRecord, results: Sequence[MovieMatchResult]) -> None:
    table = Table(title=f"Catalog entries for {movie.local_title or movie.title}", show_header=True, header_style="bold")
    table.add_column("Score", justify="right", style="cyan")
    table.add_column("Match")
    table.add_column("Channel")
    table.add_column("Topic")
    table.add_column("Title")
    table.add_column("Runtime diff", justify="right")
    for result in results:
        table.add_row(
            f"{result.score:.1f}",
            result.title_match.value,
            result.hit.channel,
            result.hit.topic,
            result.hit.title,
            f"{result.duration_diff} min",
        )
    console.print(table)


def render_rulesets(console: Console, rulesets: Sequence[Ruleset]) -> None:
    table = Table(title="Rulesets", show_header=True, header_style="bold")
    table.add_column("Topic", style="cyan")
    table.add_column("Show")
    table.add_column("Show id", justify="right")
    table.add_column("Strategy")
    table.add_column("Priority", justify="right")
    table.add_column("Source")
    for ruleset in rulesets:
        table.add_row(
            ruleset.topic,
            ruleset.show_name,
            str(ruleset.show_id),
            ruleset.strategy.value,
            str(ruleset.priority),
            "generated" if ruleset.generated else "curated",
        )
    console.print(table)


def render_validation(console: Console, path: Path, report: ValidationReport) -> None:
    if report.is_valid and not report.warnings:
        console.print(f"[green]✓[/green] {path} is valid")
        return
    table = Table(title=f"Validation of {path}", show_header=True, header_style="bold")
    table.add_column("Severity")
    table.add_column("Path", style="cyan")
    table.add_column("Message")
    table.add_column("Suggestion", style="dim")
    for issue in [*report.errors, *report.warnings]:
        color = "red" if issue.severity == "error" else "yellow"
        table.add_row(
            f"[{color}]{issue.severity}[/{color}]",
            escape(issue.path),
            escape(issue.message),
            escape(issue.fix_suggestion or ""),
        )
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rundfunkarr",
        description="Match MediathekView catalog entries to show episodes and movies.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="Path to the YAML configuration file")
    parser.add_argument("--log-level", help="Override the configured log level (DEBUG, INFO, ...)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search the catalog for a show or free text")
    target = search.add_mutually_exclusive_group(required=True)
    target.add_argument("--show-id", type=int, help="TVDB id of the show")
    target.add_argument("--query", help="Free-text catalog query")
    target.add_argument("--recent", action="store_true", help="Match the newest catalog entries")
    search.add_argument("--season", help="Season number, or a year for dated shows")
    search.add_argument("--episode", help="Episode number, or MM/DD for daily shows")

    generate = subparsers.add_parser("generate", help="Generate a ruleset for a show without one")
    generate.add_argument("show_id", type=int, help="TVDB id of the show")

    rulesets = subparsers.add_parser("rulesets", help="List the loaded rulesets")
    rulesets.add_argument("--topic", help="Only show rulesets for this catalog topic")
    rulesets.add_argument("--show-id", type=int, help="Only show rulesets for this show")

    movie = subparsers.add_parser("movie", help="Rank catalog entries for a movie")
    movie.add_argument("title", help="Original movie title")
    movie.add_argument("--local-title", help="German title, when it differs")
    movie.add_argument("--runtime", type=int, help="Runtime in minutes")

    validate = subparsers.add_parser("validate", help="Validate a configuration file")
    validate.add_argument("path", type=Path, nargs="?", help="Configuration file (defaults to --config)")

    return parser


def _run_search(console: Console, service: SearchService, args: argparse.Namespace) -> int:
    if args.show_id is not None:
        result = service.search_by_show(args.show_id, args.season, args.episode)
    elif args.recent:
        result = service.recent()
    else:
        result = service.search_by_text(args.query, args.season)
    render_matches(console, result)
    return 0


def _run_generate(console: Console, service: SearchService, args: argparse.Namespace) -> int:
    result = service.generate(args.show_id)
    if result.show is None:
        console.print(f"[red]Unknown show {args.show_id}[/red]")
        return 1
    rulesets = [ruleset for ruleset in service.store.snapshot.all_rulesets() if ruleset.show_id == args.show_id]
    if not rulesets:
        console.print(f"[yellow]No ruleset could be generated for {result.show.display_name}[/yellow]")
        return 1
    render_rulesets(console, rulesets)
    return 0


def _run_rulesets(console: Console, service: SearchService, args: argparse.Namespace) -> int:
    service.store.ensure_loaded()
    if args.topic:
        rulesets = service.store.rulesets_for_topic(args.topic)
    else:
        rulesets = service.store.snapshot.all_rulesets()
    if args.show_id is not None:
        rulesets = [ruleset for ruleset in rulesets if ruleset.show_id == args.show_id]
    render_rulesets(console, rulesets)
    return 0


def _run_movie(console: Console, service: SearchService, args: argparse.Namespace) -> int:
    movie = MovieRecord(title=args.title, local_title=args.local_title or args.title, runtime=args.runtime)
    render_movie_results(console, movie, service.search_movie(movie))
    return 0


def _run_validate(console: Console, args: argparse.Namespace) -> int:
    path = args.path or args.config
    if path is None:
        console.print("[red]No configuration file given[/red]")
        return 1
    report = validate_config_file(path)
    render_validation(console, path, report)
    return 0 if report.is_valid else 1


_COMMANDS = {
    "search": _run_search,
    "generate": _run_generate,
    "rulesets": _run_rulesets,
    "movie": _run_movie,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()

    if args.command == "validate":
        return _run_validate(console, args)

    try:
        settings: Settings = load_config(args.config)
    except FileNotFoundError:
        console.print(f"[red]Configuration file not found: {args.config}[/red]")
        return 1
    except ValueError as exc:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        return 1

    configure_logging(args.log_level or settings.log_level, settings.log_file)
    LOGGER.debug("Running %s with data dir %s", args.command, settings.data_dir)

    with build_search_service(settings) as service:
        return _COMMANDS[args.command](console, service, args)


if __name__ == "__main__":
    sys.exit(main())
