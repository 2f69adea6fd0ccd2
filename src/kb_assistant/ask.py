from __future__ import annotations

import logging
import uuid
from typing import Callable, Protocol, Sequence

from kb_assistant.errors import KnowledgeBaseError, format_ask_error
from kb_assistant.models import AskPhase, AskRequest, AskResult, AskState

logger = logging.getLogger(__name__)

DOCUMENT_PROMPT = 'Summarize the key points of "{title}" and cite the most relevant sections.'


class AskClient(Protocol):
    async def ask(self, request: AskRequest) -> AskResult: ...


def can_submit(question: str) -> bool:
    return bool(question.strip())


class AskSession:
    """Question/answer state machine behind the answer panel.

    Submissions may overlap. Every submission takes a new generation and only
    the response for the latest generation may change the state; responses
    for older ones are logged and dropped. The source filter is a parameter
    of a single submission, so nothing carries over to the next question.
    """

    def __init__(self, client: AskClient, session_id: str | None = None) -> None:
        self._client = client
        self._session_id = session_id or str(uuid.uuid4())
        self._generation = 0
        self._closed = False
        self._listeners: list[Callable[[AskState], None]] = []
        self.state = AskState()
        self.last_request: AskRequest | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def pending(self) -> bool:
        return self.state.phase is AskPhase.PENDING

    def subscribe(self, listener: Callable[[AskState], None]) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: AskState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def build_request(
        self,
        question: str,
        allow_fallback: bool,
        source_filter: Sequence[str] | None = None,
    ) -> AskRequest:
        return AskRequest(
            question=question.strip(),
            source_filter=tuple(source_filter) if source_filter else None,
            allow_fallback=allow_fallback,
            session_id=self._session_id,
        )

    async def submit(
        self,
        question: str,
        allow_fallback: bool = False,
        source_filter: Sequence[str] | None = None,
    ) -> AskState:
        if self._closed or not can_submit(question):
            return self.state

        self._generation += 1
        generation = self._generation
        request = self.build_request(question, allow_fallback, source_filter)
        self.last_request = request
        self._set_state(AskState(AskPhase.PENDING))
        logger.info("ask #%d dispatched (filter=%s, fallback=%s)", generation, request.source_filter, allow_fallback)

        try:
            result = await self._client.ask(request)
        except KnowledgeBaseError as exc:
            logger.warning("ask #%d failed: %s", generation, exc)
            outcome = AskState(AskPhase.ERROR, message=format_ask_error(exc.detail))
        else:
            outcome = AskState(AskPhase.SUCCESS, result=result)

        if self._closed:
            logger.debug("ask #%d resolved after close", generation)
            return self.state
        if generation != self._generation:
            logger.info("ask #%d superseded by #%d, response dropped", generation, self._generation)
            return self.state

        self._set_state(outcome)
        return self.state

    async def ask_about_document(self, title: str, allow_fallback: bool = False) -> AskState:
        return await self.submit(DOCUMENT_PROMPT.format(title=title), allow_fallback, source_filter=[title])

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()
