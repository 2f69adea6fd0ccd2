"""Microphone dictation source backed by the SpeechRecognition library."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import speech_recognition as sr

from kb_assistant.dictation import RecognitionResult, ResultsCallback
from kb_assistant.errors import CapabilityUnavailable

logger = logging.getLogger(__name__)


class SpeechRecognitionSource:
    def __init__(self, phrase_time_limit: float | None = 8.0) -> None:
        self.phrase_time_limit = phrase_time_limit
        self._recognizer = sr.Recognizer()
        self._stopper: Callable[..., None] | None = None

    def is_available(self) -> bool:
        try:
            return bool(sr.Microphone.list_microphone_names())
        except (AttributeError, OSError) as exc:
            # AttributeError is how SpeechRecognition reports a missing PyAudio.
            logger.info("no microphone backend: %s", exc)
            return False

    def start(self, on_results: ResultsCallback, *, language: str) -> None:
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        def emit(results: list[RecognitionResult]) -> None:
            if loop is None:
                on_results(results)
                return
            try:
                loop.call_soon_threadsafe(on_results, results)
            except RuntimeError:
                # The listener thread can outlive the loop that started it.
                logger.debug("dropping phrase, event loop is closed")

        def on_audio(recognizer: sr.Recognizer, audio: sr.AudioData) -> None:
            try:
                text = recognizer.recognize_google(audio, language=language)
            except sr.UnknownValueError:
                return
            except sr.RequestError as exc:
                logger.warning("speech service error: %s", exc)
                return
            emit([RecognitionResult(transcript=text, is_final=True)])

        try:
            microphone = sr.Microphone()
            with microphone as source:
                self._recognizer.adjust_for_ambient_noise(source, duration=0.5)
        except (AttributeError, OSError) as exc:
            logger.info("microphone could not be opened: %s", exc)
            raise CapabilityUnavailable("No usable microphone on this device.") from exc
        self._stopper = self._recognizer.listen_in_background(
            microphone, on_audio, phrase_time_limit=self.phrase_time_limit
        )

    def stop(self) -> None:
        if self._stopper is None:
            return
        stopper, self._stopper = self._stopper, None
        stopper(wait_for_stop=False)
