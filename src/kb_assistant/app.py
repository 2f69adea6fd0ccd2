from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from kb_assistant.api import KnowledgeBaseClient
from kb_assistant.ask import DOCUMENT_PROMPT, AskSession, can_submit
from kb_assistant.config import ConfigError, Settings, load_settings
from kb_assistant.errors import KnowledgeBaseError
from kb_assistant.library import DocumentLibrary
from kb_assistant.logging_config import configure_logging
from kb_assistant.models import AskPhase, FilePayload, NotePayload, Notification, SourceKind, WatcherUnavailable
from kb_assistant.uploads import UploadDispatcher, accepts
from kb_assistant.watcher import WatcherStatusPoller, format_scan_time

T = TypeVar("T")


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _queue_notification(notification: Notification) -> None:
    st.session_state.notifications.append(notification)


def _ensure_session_defaults(settings: Settings) -> None:
    if "settings" not in st.session_state:
        st.session_state.settings = settings
    if "client" not in st.session_state:
        st.session_state.client = KnowledgeBaseClient(settings)
    client = st.session_state.client
    if "ask_session" not in st.session_state:
        st.session_state.ask_session = AskSession(client)
    if "library" not in st.session_state:
        st.session_state.library = DocumentLibrary(client, limit=settings.recent_limit)
    if "dispatcher" not in st.session_state:
        st.session_state.dispatcher = UploadDispatcher(
            client, st.session_state.library.recent, notify=_queue_notification
        )
    if "poller" not in st.session_state:
        st.session_state.poller = WatcherStatusPoller(client, interval_seconds=settings.watcher_poll_seconds)
    st.session_state.setdefault("notifications", [])
    st.session_state.setdefault("open_document", None)
    st.session_state.setdefault("pending_delete", None)


def _flush_notifications() -> None:
    for notification in st.session_state.notifications:
        st.toast(notification.message, icon="✅" if notification.level == "success" else "⚠️")
    st.session_state.notifications = []


def _render_ingest_sidebar() -> None:
    dispatcher: UploadDispatcher = st.session_state.dispatcher
    st.sidebar.header("Ingest")

    uploaded = st.sidebar.file_uploader(
        "Click or drop a file to ingest",
        accept_multiple_files=True,
        help="Only the first file of a drop is ingested.",
    )
    if st.sidebar.button("Ingest file", use_container_width=True, disabled=not uploaded):
        files = [
            FilePayload(name=item.name, data=item.getvalue(), content_type=item.type or "application/octet-stream")
            for item in uploaded or []
        ]
        with st.sidebar.status("Uploading..."):
            _run(dispatcher.dispatch_files(files))

    url = st.sidebar.text_input("Web page URL")
    if st.sidebar.button("Ingest URL", use_container_width=True, disabled=not accepts(SourceKind.URL, url)):
        with st.sidebar.status("Fetching page..."):
            _run(dispatcher.dispatch(SourceKind.URL, url))

    st.sidebar.subheader("Quick note")
    title = st.sidebar.text_input("Title", key="note_title")
    content = st.sidebar.text_area("Content", key="note_content", height=120)
    tags = st.sidebar.text_input("Tags (comma separated)", key="note_tags")
    note = NotePayload(
        content=content,
        title=title.strip() or None,
        tags=tuple(tag.strip() for tag in tags.split(",") if tag.strip()),
    )
    if st.sidebar.button("Save note", use_container_width=True, disabled=not accepts(SourceKind.TEXT_NOTE, note)):
        _run(dispatcher.dispatch(SourceKind.TEXT_NOTE, note))


def _ask_about(title: str) -> None:
    # Runs as a button callback, before the question box is created again.
    st.session_state.question = DOCUMENT_PROMPT.format(title=title)
    _run(st.session_state.ask_session.ask_about_document(title, st.session_state.get("allow_fallback", False)))


def _render_recent_documents() -> None:
    library: DocumentLibrary = st.session_state.library
    header, refresh = st.columns([4, 1])
    header.subheader("Recent uploads")
    if refresh.button("Refresh"):
        library.recent.invalidate()

    try:
        documents = _run(library.recent_documents())
    except KnowledgeBaseError as exc:
        st.error(f"Could not load documents: {exc.detail}")
        return
    if not documents:
        st.caption("No documents yet.")
        return

    for document in documents:
        cols = st.columns([4, 2, 3, 1, 1, 1])
        cols[0].write(document.title)
        cols[1].caption(document.content_type)
        cols[2].caption((document.indexed_at or "").replace("T", " ")[:19])
        cols[3].button(
            "Ask", key=f"ask_{document.id}", help="Ask about this file", on_click=_ask_about, args=(document.title,)
        )
        if cols[4].button("Open", key=f"open_{document.id}"):
            st.session_state.open_document = document.id
        if cols[5].button("Delete", key=f"delete_{document.id}"):
            st.session_state.pending_delete = document.id

    pending = st.session_state.pending_delete
    if pending is not None:
        st.warning(f"Delete document {pending}?")
        confirm, cancel = st.columns(2)
        if confirm.button("Delete", type="primary"):
            try:
                _run(library.delete(pending))
            except KnowledgeBaseError as exc:
                st.error(exc.detail)
            st.session_state.pending_delete = None
            st.rerun()
        if cancel.button("Cancel"):
            st.session_state.pending_delete = None
            st.rerun()


def _render_document_viewer() -> None:
    document_id = st.session_state.open_document
    if document_id is None:
        return
    try:
        found = _run(st.session_state.library.open(document_id))
    except KnowledgeBaseError as exc:
        st.error(f"Could not open document: {exc.detail}")
        return
    with st.expander(f"📄 {found.document.title}", expanded=True):
        st.caption(f"{found.document.content_type} | hash {found.document.content_hash[:12]}")
        for chunk in found.chunks:
            where = chunk.heading or (f"page {chunk.page_number}" if chunk.page_number else "")
            st.markdown(f"**#{chunk.chunk_index}** {where} · {chunk.token_count or 0} tokens")
            st.write(chunk.content)
        if st.button("Close document"):
            st.session_state.open_document = None
            st.rerun()


def _watcher_panel() -> None:
    poller: WatcherStatusPoller = st.session_state.poller
    st.subheader("Folder watcher")
    if st.button("Scan now"):
        async def _scan() -> None:
            await poller.trigger_scan()
            await poller.settle()

        _run(_scan())
    else:
        _run(poller.fetch_status())

    latest = poller.latest
    if isinstance(latest, WatcherUnavailable):
        st.info(latest.message)
        return
    st.caption(f"{'Enabled' if latest.enabled else 'Disabled'} · every {latest.poll_interval or '-'}")
    st.code(f"root: {latest.root or '-'}\nprocessed: {latest.processed_root or '-'}", language="text")
    col1, col2, col3 = st.columns(3)
    col1.metric("Scanned", latest.scanned)
    col2.metric("Ingested", latest.ingested)
    col3.metric("Failed", latest.failed)
    st.caption(f"Last scan: {format_scan_time(latest.last_scan_start)} → {format_scan_time(latest.last_scan_end)}")


def _render_watcher() -> None:
    # Reruns only this panel, every poll interval.
    st.fragment(run_every=st.session_state.poller.interval_seconds)(_watcher_panel)()


def _render_answer() -> None:
    state = st.session_state.ask_session.state
    with st.container(border=True):
        if state.phase is AskPhase.ERROR:
            st.error(state.display_text)
        else:
            st.markdown(state.display_text)

    result = state.result
    if state.phase is not AskPhase.SUCCESS or result is None:
        return
    col1, col2 = st.columns(2)
    col1.metric("Confidence", f"{result.confidence:.2f}", result.confidence_label, delta_color="off")
    col2.metric("Latency (ms)", result.latency_ms)
    if result.citations:
        st.subheader("📚 Sources")
        for idx, citation in enumerate(result.citations, start=1):
            st.markdown(f"**[{idx}] {citation.document_title}** · {citation.location}")
            if citation.snippet:
                st.caption(citation.snippet)
    st.caption(f"Provider: {result.provider} · Sensitivity: {result.sensitivity} · Trace: {result.trace_id}")


def main() -> None:
    st.set_page_config(page_title="KB Assistant", layout="wide")
    st.title("🧠 KB Assistant")
    st.caption("Your private knowledge assistant")

    try:
        settings = load_settings()
    except ConfigError as exc:
        st.error(f"Configuration error: {exc}")
        st.stop()
    configure_logging(settings)
    _ensure_session_defaults(settings)

    _render_ingest_sidebar()

    main_col, side_col = st.columns([2, 1])
    with main_col:
        question = st.text_area("Question", key="question", placeholder="Ask a question about your knowledge base...")
        st.checkbox("Allow general knowledge fallback", key="allow_fallback")
        session: AskSession = st.session_state.ask_session
        if st.button("Ask", type="primary", disabled=session.pending or not can_submit(question)):
            _run(session.submit(question, allow_fallback=st.session_state.allow_fallback))
    with side_col:
        _render_recent_documents()
        st.divider()
        _render_watcher()
    with main_col:
        _render_answer()
        _render_document_viewer()

    _flush_notifications()
    st.caption(f"API base: {settings.api_base}")


if __name__ == "__main__":
    main()
