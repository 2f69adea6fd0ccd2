from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Sequence

from kb_assistant.errors import CapabilityUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    is_final: bool


ResultsCallback = Callable[[Sequence[RecognitionResult]], None]
FragmentSink = Callable[[str], None]


class DictationSource(Protocol):
    """Continuous, interim-enabled, single-language speech recognition."""

    def is_available(self) -> bool: ...

    def start(self, on_results: ResultsCallback, *, language: str) -> None: ...

    def stop(self) -> None: ...


class DictationState(str, Enum):
    IDLE = "Idle"
    LISTENING = "Listening"
    UNAVAILABLE = "Unavailable"


class DictationController:
    """Feeds final recognition fragments to the surface that owns the buffer.

    The controller never touches a buffer itself. Each `start` binds one sink
    (usually `TranscriptBuffer.apply_final`) and only final fragments are
    emitted to it. Results from a stream that was stopped or replaced are
    dropped, so a hidden surface cannot be written to.
    """

    def __init__(self, source: DictationSource, language: str = "en-US") -> None:
        self._source = source
        self.language = language
        self.state = DictationState.IDLE
        self.error: CapabilityUnavailable | None = None
        self._sink: FragmentSink | None = None
        self._stream = 0

    @property
    def listening(self) -> bool:
        return self.state is DictationState.LISTENING

    def _unavailable(self, error: CapabilityUnavailable) -> DictationState:
        self.error = error
        self.state = DictationState.UNAVAILABLE
        logger.info("dictation unavailable: %s", error)
        return self.state

    def start(self, sink: FragmentSink) -> DictationState:
        if not self._source.is_available():
            self.stop()
            return self._unavailable(CapabilityUnavailable("Speech recognition is not available on this device."))

        if self.listening:
            self.stop()

        self._stream += 1
        stream = self._stream
        self._sink = sink
        self.error = None

        def on_results(results: Sequence[RecognitionResult]) -> None:
            self._deliver(stream, results)

        try:
            self._source.start(on_results, language=self.language)
        except CapabilityUnavailable as exc:
            self._sink = None
            self._stream += 1
            return self._unavailable(exc)
        self.state = DictationState.LISTENING
        logger.debug("dictation stream %d started", stream)
        return self.state

    def switch_surface(self, sink: FragmentSink) -> DictationState:
        self.stop()
        return self.start(sink)

    def stop(self) -> None:
        if not self.listening:
            return
        self._stream += 1
        self._sink = None
        self.state = DictationState.IDLE
        self._source.stop()
        logger.debug("dictation stopped")

    def _deliver(self, stream: int, results: Sequence[RecognitionResult]) -> None:
        if stream != self._stream or self._sink is None:
            logger.debug("dropping %d result(s) from stale stream %d", len(results), stream)
            return
        for result in results:
            if result.is_final and result.transcript.strip():
                self._sink(result.transcript)
