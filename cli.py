import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from backend.config import settings
from backend.crud import get_due_progress, get_sets, get_stats, get_user_progress
from backend.database import SessionLocal, init_db
from backend.identity import is_guest_id
from backend.models import Flashcard
from backend.ordering import count_due
from backend.seed import seed_sample_set
from backend.sm2 import QUALITY_LABELS, SM2Algorithm, get_mastery_level
from backend.stats import StatsAggregator
from client.api import ConnectivityError, FlashcardsApi, RequestRejectedError
from client.guest import GUEST_ID_KEY, clear_guest_id, get_guest_id
from client.offline_queue import OfflineQueue
from client.session import RatingOutcome, ReviewSession, SessionStatus
from client.storage import LocalStorage

app = typer.Typer(help="Flashcards CLI - spaced repetition study with SM-2 scheduling")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")

@app.command()
def reset_db():
    """Delete all data and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DATA. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    from backend.database import engine, Base
    import backend.models  # noqa: F401
    console.print("[yellow]Dropping all tables...[/yellow]")
    Base.metadata.drop_all(bind=engine)
    console.print("[yellow]Recreating tables...[/yellow]")
    Base.metadata.create_all(bind=engine)
    console.print("[green]✓[/green] Database reset complete! All data deleted.")

@app.command()
def seed():
    """Insert the sample flashcard set"""
    init_db()
    db = SessionLocal()
    try:
        sample = seed_sample_set(db)
        console.print(f"[green]✓[/green] Sample set ready: {sample.name} ({sample.card_count} cards)")
        console.print(f"  Set ID: {sample.id}")
    finally:
        db.close()

@app.command()
def list_sets():
    """List all flashcard sets"""
    db = SessionLocal()
    try:
        sets = get_sets(db)
        if not sets:
            console.print("[yellow]No flashcard sets found. Run 'seed' to add a sample set.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Cards", style="blue", justify="right")
        for s in sets:
            table.add_row(s.id, s.name, str(s.card_count))
        console.print(table)
    finally:
        db.close()

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default from settings)"),
    port: Optional[int] = typer.Option(None, help="Port (default from settings)")
):
    """Run the HTTP API server"""
    import uvicorn

    uvicorn.run(
        "backend.server:app",
        host=host or settings.server_host,
        port=port or settings.server_port,
        log_level=settings.log_level.lower()
    )

def _resolve_user(storage: LocalStorage, user_id: Optional[str]) -> str:
    return user_id or get_guest_id(storage)

@app.command()
def study(
    set_id: str = typer.Option(..., prompt="Set ID"),
    user_id: Optional[str] = typer.Option(None, help="Signed-in user ID. Omit to study as a guest"),
    batch: int = typer.Option(settings.study_batch_size, help="Cards per session (0 = whole set)")
):
    """Study a set interactively; ratings made offline are queued and replayed later"""
    storage = LocalStorage(settings.client_storage_path)
    asyncio.run(_study(storage, set_id, _resolve_user(storage, user_id), batch))

async def _reconnect_if_offline(session: ReviewSession) -> bool:
    """Probe the server after the session dropped offline; a successful probe replays the queue"""
    if session.online:
        return False
    return await session.check_connectivity()

async def _study(storage: LocalStorage, set_id: str, user_id: str, batch: int):
    queue = OfflineQueue(storage)
    async with FlashcardsApi(user_id=user_id) as api:
        session = ReviewSession(api, queue, user_id, batch_size=batch)
        if not await session.check_connectivity():
            console.print("[yellow]Server unreachable - working offline[/yellow]")
        await session.start()

        try:
            await session.select_set(set_id)
        except ConnectivityError:
            console.print(f"[red]✗[/red] Set {set_id} could not be loaded while offline")
            return
        except RequestRejectedError as e:
            console.print(f"[red]✗[/red] Could not open set: {e.message}")
            return

        if session.status == SessionStatus.EMPTY:
            console.print("[yellow]This set has no cards - nothing to study.[/yellow]")
            return

        cards = session.state.cards()
        console.print(f"{count_due(cards)} of {len(cards)} cards due for review")

        while session.status == SessionStatus.ACTIVE:
            if await _reconnect_if_offline(session):
                console.print("[green]✓[/green] Back online, queued ratings synced")
                if session.status != SessionStatus.ACTIVE:
                    break
            card = session.current_card
            console.print(
                f"\n[dim]{session.reviewed_count} reviewed, {session.remaining} remaining "
                f"· {card.mastery}[/dim]"
            )
            console.print(f"[bold cyan]{card.term}[/bold cyan]")
            answer = typer.prompt("Press Enter to reveal (h for hint)", default="", show_default=False)
            if answer.strip().lower() == "h" and card.hint:
                console.print(f"[yellow]Hint:[/yellow] {card.hint}")
                typer.prompt("Press Enter to reveal", default="", show_default=False)
            console.print(f"[green]{card.definition}[/green]")

            for value, (label, description) in QUALITY_LABELS.items():
                console.print(f"  {value} - {label}: [dim]{description}[/dim]")
            quality = typer.prompt("Rate your recall (0-5)", type=int)
            while quality < 0 or quality > 5:
                console.print("[red]✗[/red] Quality rating must be between 0 and 5")
                quality = typer.prompt("Rate your recall (0-5)", type=int)

            try:
                outcome = await session.rate(quality)
            except RequestRejectedError:
                console.print("[red]✗[/red] Failed to save your progress. Please try again.")
                continue
            if outcome == RatingOutcome.QUEUED:
                console.print("[dim]Saved offline, will sync when the server is reachable[/dim]")

        console.print(f"\n[green]✓[/green] [bold]Session complete![/bold] You reviewed {session.reviewed_count} cards.")
        queued = len(queue.entries_for_user(user_id))
        if queued:
            console.print(f"[yellow]{queued} ratings waiting to sync[/yellow]")
        if session.stats:
            console.print(
                f"  Streak: {session.stats.current_streak} days · Accuracy: {session.stats.accuracy}%"
            )

@app.command()
def sync(user_id: Optional[str] = typer.Option(None, help="User ID (default: local guest)")):
    """Replay ratings queued while offline"""
    storage = LocalStorage(settings.client_storage_path)
    asyncio.run(_sync(storage, _resolve_user(storage, user_id)))

async def _sync(storage: LocalStorage, user_id: str):
    queue = OfflineQueue(storage)
    if not queue.entries_for_user(user_id):
        console.print("[green]✓[/green] Nothing to sync")
        return
    async with FlashcardsApi(user_id=user_id) as api:
        result = await queue.drain_for_user(user_id, api.rate)
    console.print(f"[green]✓[/green] Synced {len(result.synced)} ratings")
    if result.rejected:
        console.print(f"[red]✗[/red] {len(result.rejected)} ratings were rejected by the server and dropped")
    if result.stopped:
        console.print(f"[yellow]Server unreachable - {len(queue.entries_for_user(user_id))} ratings still queued[/yellow]")

@app.command()
def view_queue(user_id: Optional[str] = typer.Option(None, help="User ID (default: local guest)")):
    """Show ratings waiting to be synced"""
    storage = LocalStorage(settings.client_storage_path)
    user_id = _resolve_user(storage, user_id)
    entries = OfflineQueue(storage).entries_for_user(user_id)
    if not entries:
        console.print(f"[green]✓[/green] No queued ratings for {user_id}")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Card", style="cyan")
    table.add_column("Quality", style="yellow", justify="right")
    table.add_column("Rating ID", style="dim")
    for entry in entries:
        table.add_row(entry.card_id, str(entry.quality), entry.rating_id)
    console.print(table)

@app.command()
def guest_id(reset: bool = typer.Option(False, "--reset", help="Discard the current guest identity")):
    """Show (or reset) the local guest identity"""
    storage = LocalStorage(settings.client_storage_path)
    if reset:
        old = storage.get_item(GUEST_ID_KEY)
        if old:
            OfflineQueue(storage).clear_user(old)
        clear_guest_id(storage)
        console.print("[green]✓[/green] Guest identity cleared")
        return
    console.print(get_guest_id(storage))

@app.command()
def view_progress(user_id: str):
    """View scheduling progress and cards due for review"""
    db = SessionLocal()
    try:
        all_progress = get_user_progress(db, user_id)
        due = get_due_progress(db, user_id)

        console.print(f"\n[bold]Learning Progress - {user_id}[/bold]\n")
        console.print(f"[cyan]Statistics:[/cyan]")
        console.print(f"  Total cards tracked: {len(all_progress)}")
        console.print(f"  Cards due for review: {len(due)}")

        if all_progress:
            avg_ef = sum(p.easiness_factor for p in all_progress) / len(all_progress)
            console.print(f"  Average easiness: {avg_ef:.2f}")

            mastery = {"new": 0, "learning": 0, "review": 0, "mastered": 0}
            for p in all_progress:
                mastery[get_mastery_level(p.repetitions, p.easiness_factor, p.interval)] += 1
            console.print("  Mastery: " + ", ".join(f"{k} {v}" for k, v in mastery.items()))

        if due:
            console.print(f"\n[yellow]Cards Due for Review:[/yellow]")
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Term", style="green")
            table.add_column("Easiness", style="cyan", justify="right")
            table.add_column("Due", style="yellow")
            table.add_column("Days Overdue", style="red")

            for progress in due[:20]:
                card = db.get(Flashcard, progress.card_id)
                days_overdue = SM2Algorithm.get_days_overdue(progress.next_due_date)
                table.add_row(
                    card.term[:50] if card else progress.card_id,
                    f"{progress.easiness_factor:.2f}",
                    progress.next_due_date.strftime("%Y-%m-%d %H:%M"),
                    str(days_overdue) if days_overdue > 0 else "Today"
                )

            console.print(table)
            if len(due) > 20:
                console.print(f"[dim]... and {len(due) - 20} more cards[/dim]")
    finally:
        db.close()

@app.command()
def view_stats(user_id: str):
    """View review counters and streaks"""
    if is_guest_id(user_id):
        console.print("[yellow]Stats are not tracked for guest users[/yellow]")
        return

    db = SessionLocal()
    try:
        stats = get_stats(db, user_id)
        if not stats:
            console.print(f"[yellow]No reviews recorded for {user_id}[/yellow]")
            return

        console.print(f"\n[bold]Stats - {user_id}[/bold]")
        console.print(f"  Total reviews: {stats.total_reviews}")
        console.print(f"  Correct reviews: {stats.correct_reviews}")
        console.print(f"  Accuracy: {StatsAggregator.accuracy(stats.correct_reviews, stats.total_reviews)}%")
        console.print(f"  Current streak: {stats.current_streak} days")
        console.print(f"  Longest streak: {stats.longest_streak} days")
        if stats.last_review_date:
            console.print(f"  Last review: {stats.last_review_date.strftime('%Y-%m-%d %H:%M')} UTC")
    finally:
        db.close()

if __name__ == "__main__":
    app()
