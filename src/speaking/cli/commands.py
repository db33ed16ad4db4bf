"""CLI commands for the speaking practice service.

Commands:
- init-db: Create the database and seed sample tests
- serve: Run the Web API
- tests: List available tests
- transcribe: Transcribe an audio file
- score: Score a single answer
- results: Show the latest feedback of a user for a test
"""

import json
import mimetypes
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from speaking.core.identity import external_to_uuid
from speaking.core.scorer import ScoringError, get_scoring_client, score_response
from speaking.core.test_flow import PART_NAMES
from speaking.core.transcriber import (
    TranscriptionError,
    get_transcription_client,
    transcribe_bytes,
)
from speaking.db import feedback_repository, tests_repository
from speaking.db.database import get_db_path, init_db

app = typer.Typer(
    name="speak",
    help="Speaking test practice: record, transcribe and score answers.",
    no_args_is_help=True,
)

console = Console()


def _band_table(scores: dict[str, float]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Criterion")
    table.add_column("Band", justify="right")
    for name, value in scores.items():
        table.add_row(name.replace("_", " ").title(), f"{value:.1f}")
    return table


@app.command(name="init-db")
def init_db_command(
    db_path: Path = typer.Option(None, "--db", help="Database file (default from config)"),
    no_seed: bool = typer.Option(False, "--no-seed", help="Skip sample tests"),
) -> None:
    """Create the database schema and sample tests."""
    init_db(db_path, seed=not no_seed)
    console.print(f"[green]✓ Database ready:[/green] {get_db_path()}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
) -> None:
    """Run the Web API with uvicorn."""
    import uvicorn

    console.print(f"[blue]Serving on http://{host}:{port}[/blue]")
    uvicorn.run("speaking.web.api:app", host=host, port=port, reload=reload)


@app.command(name="tests")
def list_tests_command() -> None:
    """List available tests."""
    init_db(get_db_path())
    tests = tests_repository.list_tests()
    if not tests:
        console.print("[yellow]No tests found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Questions", justify="right")
    for test in tests:
        table.add_row(test.id, test.title, str(len(tests_repository.get_questions(test.id))))
    console.print(table)


@app.command()
def transcribe(
    audio_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Audio file"),
    content_type: str = typer.Option(None, "--content-type", help="MIME type (guessed if omitted)"),
) -> None:
    """Transcribe an audio file."""
    if content_type is None:
        content_type = mimetypes.guess_type(audio_file.name)[0] or "audio/webm"

    try:
        result = transcribe_bytes(
            audio_file.read_bytes(),
            filename=audio_file.name,
            content_type=content_type,
            client=get_transcription_client(),
        )
    except TranscriptionError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(result.text)


@app.command()
def score(
    question: str = typer.Option(..., "--question", "-q", help="Question text"),
    part: int = typer.Option(1, "--part", "-p", min=1, max=3, help="Test part (1-3)"),
    transcript: str = typer.Option(None, "--transcript", "-t", help="Answer transcript"),
    transcript_file: Path = typer.Option(None, "--transcript-file", exists=True, help="File with the transcript"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Score one answer without saving it."""
    if transcript_file is not None:
        transcript = transcript_file.read_text(encoding="utf-8")
    if not transcript:
        console.print("[red]✗ Provide --transcript or --transcript-file[/red]")
        raise typer.Exit(code=1)

    try:
        result = score_response(
            "cli",
            question,
            transcript,
            part,
            client=get_scoring_client(),
            persist=False,
        )
    except ScoringError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    console.print(f"[bold]Part {part}: {PART_NAMES[part]}[/bold]")
    console.print(_band_table({**result.criterion_scores, "overall": result.overall_band_score}))
    if result.general_feedback:
        console.print(f"\n{result.general_feedback}")


@app.command()
def results(
    user: str = typer.Argument(..., help="User ID (identity-provider ID or UUID)"),
    test_id: str = typer.Argument(..., help="Test ID"),
) -> None:
    """Show the latest feedback of a user for a test."""
    init_db(get_db_path())
    if tests_repository.get_test(test_id) is None:
        console.print(f"[red]✗ Test not found: {test_id}[/red]")
        raise typer.Exit(code=1)

    feedback = feedback_repository.get_latest_test_feedback(external_to_uuid(user), test_id)
    if feedback is None:
        console.print("[yellow]No feedback yet for this test[/yellow]")
        raise typer.Exit(code=1)

    console.print(_band_table(feedback.get("band_scores", {})))
    for heading, key in (
        ("Strengths", "strengths"),
        ("Areas for improvement", "areas_for_improvement"),
        ("Study advice", "study_advice"),
    ):
        if feedback.get(key):
            console.print(f"\n[bold]{heading}[/bold]\n{feedback[key]}")


if __name__ == "__main__":
    app()
