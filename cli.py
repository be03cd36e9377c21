import argparse
import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from newsrank import database, fetching, pipeline, ranking, registry, rss
from newsrank.config import load_config, save_config
from newsrank.constants import BULK_FETCH_TIMEOUT, CATEGORY_STATS_HOURS, PAGE_SIZE
from newsrank.errors import NewsrankError
from newsrank.logging_config import configure_logging

console = Console()


def _user_id(args) -> Optional[str]:
    """--user, else the id saved from a previous run."""
    user = getattr(args, "user", None)
    if user:
        save_config("user_id", user)
        return user
    saved = load_config().get("user_id")
    return saved if isinstance(saved, str) else None


async def cmd_ingest(args) -> int:
    if args.if_due:
        report = await pipeline.run_if_due()
        if report is None:
            console.print("[dim]Ingestion not due yet.[/]")
            return 0
    else:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(
                f"[cyan]Fetching {args.category or 'all'} feeds...", total=None
            )
            report = await pipeline.run_ingestion(
                args.category, args.owner, per_source_timeout=args.timeout
            )

    console.print(
        f"[bold green]{report.inserted} new[/], {report.skipped} duplicates, "
        f"{report.errors} errors "
        f"[dim]({report.fetched} parsed from {report.sources_total - report.sources_failed}"
        f"/{report.sources_total} sources)[/]"
    )
    return 0


def cmd_feed(args) -> int:
    user = _user_id(args)
    articles, personalized = ranking.discover_feed(user, args.category, args.limit, args.offset)
    if not articles:
        console.print("[yellow]No articles stored yet. Run `cli.py ingest` first.[/]")
        return 0

    label = "Personalized" if personalized else "Latest"
    console.print(f"\n[bold green]{label} {args.category or 'all'} feed[/]\n")

    profile = database.get_preference_profile(user) if user else None
    breakdown = {}
    if args.explain:
        for result in ranking.explain_ranking(articles, profile):
            breakdown[articles[result.index].article_url] = result

    for article in articles:
        console.print(
            f"[dim]{article.id:>5}[/] [bold]{article.title}[/bold] "
            f"[cyan]{article.source}[/] [magenta]{article.category}[/] "
            f"[dim]{article.read_time} min[/]"
        )
        console.print(f"      [dim cyan]{article.article_url}[/]")
        result = breakdown.get(article.article_url)
        if result is not None:
            console.print(
                f"      [dim italic]score {result.score:.2f} = category {result.category_component:.2f}"
                f" + source {result.source_component:.2f} + trending {result.trending_component:.2f}"
                f" + engagement {result.engagement_component:.2f} + recency {result.recency_component:.2f}[/]"
            )
    return 0


def cmd_sources_list(args) -> int:
    table = Table(title="Sources")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Owner")
    table.add_column("Enabled")
    table.add_column("URL", overflow="fold")
    for source in registry.builtin_sources(args.category):
        table.add_row(source.id, source.name, source.category, "built-in", "yes", source.url)
    if args.owner:
        for source in database.list_custom_sources(args.owner):
            if args.category and source.category != args.category:
                continue
            table.add_row(
                source.id,
                source.name,
                source.category,
                source.owner or "",
                "yes" if source.enabled else "no",
                source.url,
            )
    console.print(table)
    return 0


def cmd_sources_add(args) -> int:
    if not args.skip_validation:
        result = asyncio.run(rss.validate_feed(args.url, args.name, args.category))
        if not result.valid:
            console.print(f"[red]Feed rejected: {result.error}[/]")
            return 1
    source = database.add_custom_source(args.owner, args.name, args.url, args.category)
    console.print(f"[green]Added source {source.id}: {source.name} ({source.category})[/]")
    return 0


def cmd_sources_toggle(args) -> int:
    enabled = args.sources_command == "enable"
    source = database.set_custom_source_enabled(args.source_id, args.owner, enabled)
    state = "enabled" if source.enabled else "disabled"
    console.print(f"[green]{source.name} {state}.[/]")
    return 0


def cmd_sources_remove(args) -> int:
    database.delete_custom_source(args.source_id, args.owner)
    console.print(f"[green]Removed source {args.source_id}.[/]")
    return 0


def cmd_sources_validate(args) -> int:
    result = asyncio.run(rss.validate_feed(args.url, args.name, args.category))
    if not result.valid:
        console.print(f"[red]Invalid feed: {result.error}[/]")
        return 1
    console.print(
        f"[bold green]{result.feed_title or args.url}[/] - {result.article_count} items"
    )
    for article in result.articles[:10]:
        console.print(f"  [dim]-[/] {article.title}")
    return 0


def cmd_read(args) -> int:
    try:
        content = asyncio.run(fetching.fetch_article_content(args.url))
    except NewsrankError as e:
        fallback = getattr(e, "fallback_url", args.url)
        console.print(f"[red]{e}[/]")
        console.print(f"[dim]Open the original instead:[/] {fallback}")
        return 1
    if content.title:
        console.print(f"[bold]{content.title}[/bold]")
    meta = " | ".join(x for x in (content.author, content.published_date) if x)
    if meta:
        console.print(f"[dim]{meta}[/]")
    console.print("")
    console.print(content.content)
    return 0


def cmd_correct(args) -> int:
    old, new = database.correct_article_category(args.article_id, args.category)
    console.print(f"[green]Article {args.article_id}: {old} -> {new}[/]")
    return 0


def cmd_reclassify(args) -> int:
    report = pipeline.reclassify_stored(args.category)
    console.print(f"[green]Scanned {report.scanned}, re-filed {report.updated}.[/]")
    for move, count in sorted(report.moves.items(), key=lambda kv: -kv[1]):
        console.print(f"  {move}: {count}")
    return 0


def cmd_stats(args) -> int:
    stats = database.category_stats(args.hours)
    table = Table(title=f"Articles added in the last {args.hours}h")
    table.add_column("Category")
    table.add_column("Count", justify="right")
    for category, count in stats:
        table.add_row(category, str(count))
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="News ingestion and personalized ranking")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ingest", help="Fetch, classify and store articles")
    p.add_argument("--category", help="Only poll sources for this category")
    p.add_argument("--owner", help="Include this user's custom sources")
    p.add_argument(
        "--timeout",
        type=float,
        default=BULK_FETCH_TIMEOUT,
        help=f"Per-source timeout in seconds (default: {BULK_FETCH_TIMEOUT})",
    )
    p.add_argument("--if-due", action="store_true", help="Only run if the schedule says so")

    p = sub.add_parser("feed", help="Show the ranked feed")
    p.add_argument("--user", help="User id (saved for next time)")
    p.add_argument("--category")
    p.add_argument("--limit", type=int, default=PAGE_SIZE)
    p.add_argument("--offset", type=int, default=0)
    p.add_argument("--explain", action="store_true", help="Show score breakdowns")

    p = sub.add_parser("sources", help="Manage feed sources")
    sources = p.add_subparsers(dest="sources_command", required=True)
    sp = sources.add_parser("list")
    sp.add_argument("--owner")
    sp.add_argument("--category")
    sp = sources.add_parser("add")
    sp.add_argument("--owner", required=True)
    sp.add_argument("name")
    sp.add_argument("url")
    sp.add_argument("category")
    sp.add_argument("--skip-validation", action="store_true")
    for action in ("enable", "disable", "remove"):
        sp = sources.add_parser(action)
        sp.add_argument("source_id", type=int)
        sp.add_argument("--owner", required=True)
    sp = sources.add_parser("validate")
    sp.add_argument("url")
    sp.add_argument("--name")
    sp.add_argument("--category")

    p = sub.add_parser("read", help="Fetch an article's full text")
    p.add_argument("url")

    p = sub.add_parser("correct", help="Manually re-file an article")
    p.add_argument("article_id", type=int)
    p.add_argument("category")

    p = sub.add_parser("reclassify", help="Re-run the classifier over stored articles")
    p.add_argument("--category")

    p = sub.add_parser("stats", help="Article counts per category")
    p.add_argument("--hours", type=int, default=CATEGORY_STATS_HOURS)

    return parser


SOURCES_COMMANDS = {
    "list": cmd_sources_list,
    "add": cmd_sources_add,
    "enable": cmd_sources_toggle,
    "disable": cmd_sources_toggle,
    "remove": cmd_sources_remove,
    "validate": cmd_sources_validate,
}

COMMANDS = {
    "feed": cmd_feed,
    "read": cmd_read,
    "correct": cmd_correct,
    "reclassify": cmd_reclassify,
    "stats": cmd_stats,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    database.init_db()

    try:
        if args.command == "ingest":
            return asyncio.run(cmd_ingest(args))
        if args.command == "sources":
            return SOURCES_COMMANDS[args.sources_command](args)
        return COMMANDS[args.command](args)
    except NewsrankError as e:
        console.print(f"[red]Error: {e}[/]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
