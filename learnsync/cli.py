"""
Typer CLI for the learnsync progress engine.

Commands:
    learnsync answer SUBJECT TOPIC -d medium -s 1.0   - Record an answered question
    learnsync recommend SUBJECT TOPIC                 - Difficulty to start at
    learnsync session SUBJECT TOPIC -d hard           - Start a practice session
    learnsync history --subject math --limit 20       - Show question history
    learnsync scores                                  - Show best scores
    learnsync stats                                   - Show progress statistics
    learnsync migrate                                 - Move guest data to the signed-in user
    learnsync sync drain | status | clear             - Offline queue

Identity comes from USER_ID / GUEST_MODE, the remote store from REMOTE_URL.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Annotated, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from learnsync.factory import build_service, close_service
from learnsync.service import LearningProgressService

app = typer.Typer(
    help="learnsync: adaptive learning progress with offline sync",
    no_args_is_help=True,
)

sync_app = typer.Typer(
    name="sync",
    help="Offline queue commands",
    no_args_is_help=True,
)
app.add_typer(sync_app, name="sync")

console = Console()


def configure_logging(settings: Settings) -> None:
    """Route loguru to stderr (and the optional log file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{level: <8}</level> {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="5 MB", retention=3)


async def _with_service(operation):
    service = build_service(get_settings())
    try:
        return await operation(service)
    finally:
        await close_service(service)


def _run(operation):
    return asyncio.run(_with_service(operation))


# =============================================================================
# Mastery Commands
# =============================================================================


@app.command()
def answer(
    subject: Annotated[str, typer.Argument(help="Subject name")],
    topic: Annotated[str, typer.Argument(help="Topic name")],
    difficulty: Annotated[
        str, typer.Option("--difficulty", "-d", help="easy, medium, hard or extreme")
    ] = "medium",
    score: Annotated[float, typer.Option("--score", "-s", help="Score between 0 and 1")] = 1.0,
) -> None:
    """Record an answered question and show the updated mastery."""

    async def operation(service: LearningProgressService):
        return await service.update_mastery(subject, topic, difficulty, score)

    result = _run(operation)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/]")
        raise typer.Exit(code=1)

    state = result.state
    table = Table(title=f"{subject} / {topic}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Current difficulty", state.current_difficulty.display_name)
    table.add_row("Recommended difficulty", state.recommended_difficulty.display_name)
    table.add_row("Rolling accuracy", f"{state.rolling_accuracy:.0%}")
    table.add_row("Questions at difficulty", str(state.questions_at_current_difficulty))
    table.add_row("Total questions", str(state.total_questions))
    table.add_row("Streak eligible", "yes" if state.streak_eligible else "no")
    console.print(table)

    if result.queued:
        console.print("[yellow]Saved offline - will sync when the remote store is reachable.[/]")
    if result.recommendation:
        console.print(f"[bold magenta]➜ {result.recommendation.message}[/]")


@app.command()
def recommend(
    subject: Annotated[str, typer.Argument(help="Subject name")],
    topic: Annotated[str, typer.Argument(help="Topic name")],
) -> None:
    """Show the difficulty to start practice at."""

    async def operation(service: LearningProgressService):
        return await service.get_recommended_difficulty(subject, topic)

    advice = _run(operation)
    marker = "[bold yellow]recommended[/]" if advice.is_recommendation else "[dim]current[/]"
    console.print(f"{advice.difficulty.value} ({marker}) - {advice.reason}")


@app.command()
def session(
    subject: Annotated[str, typer.Argument(help="Subject name")],
    topic: Annotated[str, typer.Argument(help="Topic name")],
    difficulty: Annotated[
        str, typer.Option("--difficulty", "-d", help="Difficulty you are about to use")
    ] = "medium",
) -> None:
    """Start a practice session (resets the session difficulty-change counter)."""

    async def operation(service: LearningProgressService):
        return await service.start_session(subject, topic, difficulty)

    result = _run(operation)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Session started for {subject} / {topic} at {difficulty}[/]")
    if result.recommendation:
        console.print(f"[bold magenta]➜ {result.recommendation.message}[/]")


# =============================================================================
# History & Progress Commands
# =============================================================================


@app.command()
def history(
    subject: Annotated[Optional[str], typer.Option("--subject", help="Filter by subject")] = None,
    topic: Annotated[Optional[str], typer.Option("--topic", help="Filter by topic")] = None,
    result_filter: Annotated[
        Optional[str], typer.Option("--result", help="correct, partial, incorrect or skipped")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max entries")] = 20,
) -> None:
    """Show question history, newest first."""
    filters = {"subject": subject, "topic": topic, "result": result_filter, "limit": limit}

    async def operation(service: LearningProgressService):
        return await service.get_question_history(filters)

    result = _run(operation)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/]")
        raise typer.Exit(code=1)

    if not result.data:
        console.print("[yellow]No history yet.[/]")
        return

    table = Table(title="Question History")
    table.add_column("When", style="dim")
    table.add_column("Subject", style="cyan")
    table.add_column("Topic", style="cyan")
    table.add_column("Difficulty")
    table.add_column("Result", style="green")
    for entry in result.data:
        table.add_row(
            str(entry.get("created_at") or "")[:19],
            entry.get("subject", ""),
            entry.get("topic", ""),
            str(entry.get("difficulty") or ""),
            str(entry.get("result") or ""),
        )
    console.print(table)


@app.command()
def scores() -> None:
    """Show best scores per topic."""

    async def operation(service: LearningProgressService):
        return await service.get_all_scores()

    result = _run(operation)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/]")
        raise typer.Exit(code=1)

    if not result.data:
        console.print("[yellow]No scores yet.[/]")
        return

    table = Table(title="Best Scores")
    table.add_column("Topic", style="cyan")
    table.add_column("Best", style="green")
    table.add_column("Percentage", style="green")
    for key, summary in sorted(result.data.items()):
        table.add_row(key, f"{summary.best}/{summary.total}", f"{summary.percentage}%")
    console.print(table)


@app.command()
def stats() -> None:
    """Show progress statistics."""

    async def operation(service: LearningProgressService):
        return await service.get_progress_stats()

    result = _run(operation)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/]")
        raise typer.Exit(code=1)

    progress = result.data
    table = Table(title="Progress")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Questions answered", str(progress.total_questions))
    table.add_row("Accuracy", f"{progress.accuracy_rate}%")
    table.add_row("Average time", f"{progress.avg_time}s")
    table.add_row("Day streak", str(progress.streak))
    table.add_row("Topics practiced", str(len(progress.topic_stats)))
    console.print(table)


# =============================================================================
# Migration & Sync Commands
# =============================================================================


@app.command()
def migrate() -> None:
    """Move guest data into the signed-in user's remote store (runs once)."""

    async def operation(service: LearningProgressService):
        return await service.migrate_guest_data()

    result = _run(operation)
    if not result.success:
        console.print(f"[red]✗ Migration failed: {result.error}[/]")
        raise typer.Exit(code=1)

    if result.already_migrated:
        console.print("[dim]Guest data was already migrated.[/]")
    elif result.no_data_to_migrate:
        console.print("[dim]No guest data to migrate.[/]")
    else:
        m = result.migrated
        console.print(
            f"[green]✓ Migrated {m['history']} history, {m['scores']} scores, "
            f"{m['mastery']} mastery records[/]"
        )


@sync_app.command("drain")
def sync_drain() -> None:
    """Replay queued offline writes."""

    async def operation(service: LearningProgressService):
        return await service.drain_offline_queue()

    result = _run(operation)
    if result.skipped:
        console.print(f"[yellow]Sync skipped: {result.reason.value}[/]")
        return

    console.print(
        f"[green]✓ {result.processed} synced[/], "
        f"[yellow]{result.failed} failed[/], [red]{result.dropped} dropped[/]"
    )


@sync_app.command("status")
def sync_status() -> None:
    """Show offline queue status."""

    async def operation(service: LearningProgressService):
        return service.get_sync_status()

    status = _run(operation)
    table = Table(title="Sync Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Pending", str(status.pending_count))
    table.add_row("Last sync", status.last_sync_at.isoformat() if status.last_sync_at else "never")
    if status.last_sync_result:
        last = status.last_sync_result
        table.add_row("Last result", f"{last.processed}/{last.total} synced, {last.failed} failed")
    console.print(table)


@sync_app.command("clear")
def sync_clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Discard all queued offline writes."""
    if not yes:
        typer.confirm("Discard all pending offline writes?", abort=True)

    async def operation(service: LearningProgressService):
        if service.queue is not None:
            service.queue.clear()

    _run(operation)
    console.print("[green]✓ Offline queue cleared[/]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main_callback() -> None:
    """Configure logging before any command runs."""
    configure_logging(get_settings())


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
