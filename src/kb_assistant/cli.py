from __future__ import annotations

import asyncio
import mimetypes
import sys
from pathlib import Path

import typer

from kb_assistant.api import KnowledgeBaseClient
from kb_assistant.ask import AskSession
from kb_assistant.config import ConfigError, Settings, load_settings
from kb_assistant.dictation import DictationController, DictationState
from kb_assistant.errors import KnowledgeBaseError
from kb_assistant.library import DocumentLibrary
from kb_assistant.logging_config import configure_logging
from kb_assistant.models import (
    AskPhase,
    FilePayload,
    JobStatus,
    NotePayload,
    Notification,
    SourceKind,
    WatcherUnavailable,
)
from kb_assistant.position import DICTATION_WIDGET, DraggablePositionStore, DragSession, JsonFileStore, Viewport
from kb_assistant.speech import SpeechRecognitionSource
from kb_assistant.transcript import TranscriptBuffer
from kb_assistant.uploads import UploadDispatcher
from kb_assistant.watcher import WatcherStatusPoller, format_scan_time

app = typer.Typer(add_completion=False, help="Knowledge base assistant CLI")

API_BASE_OPTION = typer.Option(None, "--api-base", help="Knowledge base service URL (defaults to KB_API_BASE).")


def _setup(api_base: str | None) -> tuple[Settings, KnowledgeBaseClient]:
    try:
        settings = load_settings(api_base=api_base)
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}")
        raise typer.Exit(code=1)
    configure_logging(settings)
    return settings, KnowledgeBaseClient(settings)


def _echo_notification(notification: Notification) -> None:
    typer.echo(notification.message)


def _run_ingest(client: KnowledgeBaseClient, kind: SourceKind, payload: object) -> None:
    library = DocumentLibrary(client)
    dispatcher = UploadDispatcher(client, library.recent, notify=_echo_notification)
    try:
        job = asyncio.run(dispatcher.dispatch(kind, payload))
    except KnowledgeBaseError as exc:
        typer.echo(f"Ingest failed: {exc}")
        raise typer.Exit(code=1)
    if job.status is JobStatus.FAILED:
        raise typer.Exit(code=1)


@app.command()
def ask(
    question: str = typer.Option(..., "--question", "-q", help="Question to ask the knowledge base."),
    fallback: bool = typer.Option(False, "--fallback", help="Allow general knowledge fallback."),
    source: list[str] = typer.Option([], "--source", help="Restrict the answer to these documents."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Ask a question and print the answer with its citations."""
    _, client = _setup(api_base)
    session = AskSession(client)
    state = asyncio.run(session.submit(question, allow_fallback=fallback, source_filter=source or None))

    if state.phase is AskPhase.IDLE:
        typer.echo("Question is empty.")
        raise typer.Exit(code=1)
    if state.phase is AskPhase.ERROR or state.result is None:
        typer.echo(state.display_text)
        raise typer.Exit(code=1)

    result = state.result
    typer.echo(result.answer)
    typer.echo("")
    typer.echo(f"Confidence: {result.confidence_label} ({result.confidence:.2f})")
    typer.echo("Citations:")
    if result.citations:
        for idx, citation in enumerate(result.citations, start=1):
            typer.echo(f"[{idx}] {citation.document_title} ({citation.location})")
    else:
        typer.echo("- None")
    typer.echo(f"provider={result.provider} trace_id={result.trace_id} latency_ms={result.latency_ms}")


@app.command("ingest-file")
def ingest_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to ingest."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Upload one file into the knowledge base."""
    _, client = _setup(api_base)
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    payload = FilePayload(name=path.name, data=path.read_bytes(), content_type=content_type)
    _run_ingest(client, SourceKind.FILE, payload)


@app.command("ingest-url")
def ingest_url(
    url: str = typer.Argument(..., help="Web page to fetch and ingest."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Ingest the readable content of a web page."""
    _, client = _setup(api_base)
    _run_ingest(client, SourceKind.URL, url)


@app.command()
def note(
    content: str = typer.Option(..., "--content", "-c", help="Note text."),
    title: str | None = typer.Option(None, "--title", "-t", help="Optional note title."),
    tag: list[str] = typer.Option([], "--tag", help="Tag to attach (repeatable)."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Save a pasted text note."""
    _, client = _setup(api_base)
    _run_ingest(client, SourceKind.TEXT_NOTE, NotePayload(content=content, title=title, tags=tuple(tag)))


@app.command()
def recent(
    limit: int = typer.Option(10, "--limit", help="Number of documents to list (1-50)."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """List recently indexed documents."""
    _, client = _setup(api_base)
    library = DocumentLibrary(client, limit=limit)
    try:
        documents = asyncio.run(library.recent_documents())
    except KnowledgeBaseError as exc:
        typer.echo(f"Listing failed: {exc.detail}")
        raise typer.Exit(code=1)

    if not documents:
        typer.echo("No documents yet.")
        return
    for document in documents:
        indexed = (document.indexed_at or "").replace("T", " ")[:19]
        typer.echo(f"{document.id}\t{document.title}\t{document.content_type}\t{indexed}")


@app.command()
def show(
    document_id: int = typer.Argument(..., help="Document id."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Print a document and its chunks in order."""
    _, client = _setup(api_base)
    try:
        found = asyncio.run(DocumentLibrary(client).open(document_id))
    except KnowledgeBaseError as exc:
        typer.echo(f"Fetch failed: {exc.detail}")
        raise typer.Exit(code=1)

    document = found.document
    typer.echo(f"{document.title} ({document.content_type})")
    typer.echo(f"hash={document.content_hash} indexed_at={document.indexed_at}")
    for chunk in found.chunks:
        where = chunk.heading or (f"page {chunk.page_number}" if chunk.page_number else "")
        typer.echo("")
        typer.echo(f"#{chunk.chunk_index} {where} tokens={chunk.token_count}")
        typer.echo(chunk.content)


@app.command()
def delete(
    document_id: int = typer.Argument(..., help="Document id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Delete a document and its chunks."""
    _, client = _setup(api_base)
    if not yes and not typer.confirm("Delete this document?"):
        raise typer.Exit(code=0)
    try:
        asyncio.run(DocumentLibrary(client).delete(document_id))
    except KnowledgeBaseError as exc:
        typer.echo(f"Delete failed: {exc.detail}")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted document {document_id}")


def _echo_watcher(result: object) -> None:
    if isinstance(result, WatcherUnavailable):
        typer.echo(f"Watcher unavailable: {result.message}")
        raise typer.Exit(code=1)
    typer.echo(f"enabled={result.enabled} recursive={result.recursive} interval={result.poll_interval}")
    typer.echo(f"root={result.root or '-'} processed_root={result.processed_root or '-'}")
    typer.echo(f"last_scan_start={format_scan_time(result.last_scan_start)}")
    typer.echo(f"last_scan_end={format_scan_time(result.last_scan_end)}")
    typer.echo(f"scanned={result.scanned} ingested={result.ingested} failed={result.failed}")


@app.command("watcher-status")
def watcher_status(api_base: str | None = API_BASE_OPTION) -> None:
    """Show the folder watcher status."""
    _, client = _setup(api_base)
    _echo_watcher(asyncio.run(WatcherStatusPoller(client).fetch_status()))


@app.command("watcher-scan")
def watcher_scan(api_base: str | None = API_BASE_OPTION) -> None:
    """Ask the folder watcher to scan now, then show its status."""
    _, client = _setup(api_base)
    poller = WatcherStatusPoller(client)

    async def _scan() -> object:
        result = await poller.trigger_scan()
        await poller.settle()
        return result

    _echo_watcher(asyncio.run(_scan()))


async def _record(controller: DictationController, buffer: TranscriptBuffer) -> str:
    def on_fragment(fragment: str) -> None:
        buffer.apply_final(fragment)
        typer.echo(f"  {buffer.text}")

    if controller.start(on_fragment) is DictationState.UNAVAILABLE:
        raise controller.error
    try:
        await asyncio.to_thread(sys.stdin.readline)
    finally:
        controller.stop()
    return buffer.text


@app.command()
def dictate(
    title: str | None = typer.Option(None, "--title", "-t", help="Title for the saved voice note."),
    tag: list[str] = typer.Option(["voice"], "--tag", help="Tag to attach (repeatable)."),
    save: bool = typer.Option(True, "--save/--no-save", help="Ingest the transcript as a note."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Dictate a voice note from the microphone. Press Enter to stop."""
    settings, client = _setup(api_base)
    controller = DictationController(SpeechRecognitionSource(), language=settings.dictation_language)
    buffer = TranscriptBuffer("voice-note")
    typer.echo("Listening... press Enter to stop.")
    try:
        text = asyncio.run(_record(controller, buffer))
    except KnowledgeBaseError as exc:
        typer.echo(f"Dictation failed: {exc}")
        raise typer.Exit(code=1)

    if not text.strip():
        typer.echo("Nothing was transcribed.")
        raise typer.Exit(code=1)
    typer.echo(text)
    if save:
        _run_ingest(client, SourceKind.TEXT_NOTE, NotePayload(content=text, title=title, tags=tuple(tag)))


def _parse_viewport(value: str) -> Viewport:
    try:
        width, height = (float(part) for part in value.lower().split("x"))
    except ValueError as exc:
        raise typer.BadParameter("Use WIDTHxHEIGHT, for example 1280x800.", param_hint="--viewport") from exc
    return Viewport(width, height)


@app.command("widget-position")
def widget_position(
    viewport: str = typer.Option("1280x800", "--viewport", help="Viewport size as WIDTHxHEIGHT."),
    dx: float = typer.Option(0.0, "--dx", help="Drag the dictation widget right by this many pixels."),
    dy: float = typer.Option(0.0, "--dy", help="Drag the dictation widget down by this many pixels."),
    api_base: str | None = API_BASE_OPTION,
) -> None:
    """Show, or drag and save, the dictation widget position."""
    settings, _ = _setup(api_base)
    positions = DraggablePositionStore(
        JsonFileStore(settings.state_file), DICTATION_WIDGET, margin=settings.widget_margin
    )
    drag = DragSession(positions, _parse_viewport(viewport))
    if dx or dy:
        drag.pointer_down(1, 0.0, 0.0)
        drag.pointer_move(1, dx, dy)
        drag.pointer_up(1)
    typer.echo(f"Dictation widget at x={drag.position.x:g}, y={drag.position.y:g}")


@app.command()
def doctor(api_base: str | None = API_BASE_OPTION) -> None:
    """Check configuration and that the service answers."""
    settings, client = _setup(api_base)

    async def _check() -> tuple[int, object]:
        documents = await client.recent_documents(limit=1)
        watcher = await WatcherStatusPoller(client).fetch_status()
        return len(documents), watcher

    try:
        count, watcher = asyncio.run(_check())
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"Doctor failed: {exc}")
        raise typer.Exit(code=1)

    typer.echo("Doctor checks passed")
    typer.echo(f"api_base={settings.api_base}")
    typer.echo(f"api_token={'set' if settings.api_token else 'unset'}")
    typer.echo(f"recent_documents={'yes' if count else 'none'}")
    watcher_state = "unavailable" if isinstance(watcher, WatcherUnavailable) else "available"
    typer.echo(f"watcher={watcher_state}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
