from __future__ import annotations

import asyncio

import pytest

from kb_assistant import speech
from kb_assistant.dictation import RecognitionResult
from kb_assistant.errors import CapabilityUnavailable
from kb_assistant.speech import SpeechRecognitionSource


class FakeMicrophone:
    def __enter__(self) -> FakeMicrophone:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


class FakeRecognizer:
    created: list[FakeRecognizer] = []

    def __init__(self) -> None:
        self.callback = None
        self.stopped: list[bool] = []
        FakeRecognizer.created.append(self)

    def adjust_for_ambient_noise(self, source: object, duration: float = 1.0) -> None:
        return None

    def listen_in_background(self, source: object, callback, phrase_time_limit=None):
        self.callback = callback
        return lambda wait_for_stop=True: self.stopped.append(wait_for_stop)

    def recognize_google(self, audio: object, language: str = "en-US") -> str:
        return f"phrase in {language}"


@pytest.fixture
def fake_sr(monkeypatch: pytest.MonkeyPatch) -> list[FakeRecognizer]:
    FakeRecognizer.created = []
    monkeypatch.setattr(speech.sr, "Microphone", FakeMicrophone)
    monkeypatch.setattr(speech.sr, "Recognizer", FakeRecognizer)
    return FakeRecognizer.created


def test_missing_default_input_raises_capability_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def no_default_input() -> None:
        raise OSError("No Default Input Device Available")

    monkeypatch.setattr(speech.sr, "Microphone", no_default_input)

    with pytest.raises(CapabilityUnavailable):
        SpeechRecognitionSource().start(lambda results: None, language="en-US")


def test_phrases_are_delivered_as_final_results(fake_sr: list[FakeRecognizer]) -> None:
    seen: list[list[RecognitionResult]] = []
    source = SpeechRecognitionSource()

    source.start(seen.append, language="fr-FR")
    recognizer = fake_sr[0]
    recognizer.callback(recognizer, object())
    source.stop()
    source.stop()

    assert seen == [[RecognitionResult("phrase in fr-FR", is_final=True)]]
    assert recognizer.stopped == [False]


def test_phrase_after_loop_closed_is_dropped(fake_sr: list[FakeRecognizer]) -> None:
    seen: list[list[RecognitionResult]] = []
    source = SpeechRecognitionSource()

    async def listen() -> None:
        source.start(seen.append, language="en-US")

    asyncio.run(listen())
    recognizer = fake_sr[0]
    recognizer.callback(recognizer, object())

    assert seen == []
