from __future__ import annotations

import json

import allure
import httpx
import pytest

from briefcast.audio.tts import (
    DEFAULT_VOICE,
    VOICES,
    ElevenLabsClient,
    SpeechSynthesizer,
    resolve_voice,
)
from briefcast.config import SpeechSettings
from briefcast.errors import SpeechSynthesisError

from conftest import FakeSpeechClient

pytestmark = [
    allure.epic("Audio"),
    allure.feature("Text to Speech"),
]


def test_client_posts_text_with_voice_settings() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, content=b"ID3audio")

    client = ElevenLabsClient(
        settings=SpeechSettings(api_key="xi-key"),
        transport=httpx.MockTransport(handler),
    )
    audio = client.synthesize("Hello listener.", "voice-123")
    client.close()

    [request] = captured
    body = json.loads(request.content)
    assert audio == b"ID3audio"
    assert request.url.path == "/v1/text-to-speech/voice-123"
    assert request.headers["xi-api-key"] == "xi-key"
    assert body["text"] == "Hello listener."
    assert body["model_id"] == "eleven_turbo_v2_5"
    assert body["voice_settings"]["stability"] == 0.5


def test_client_error_carries_status_code() -> None:
    client = ElevenLabsClient(
        settings=SpeechSettings(api_key="bad"),
        transport=httpx.MockTransport(lambda request: httpx.Response(401, text="invalid key")),
    )

    with pytest.raises(SpeechSynthesisError) as exc_info:
        client.synthesize("Hello.", "voice")
    assert exc_info.value.status_code == 401


def test_synthesizer_concatenates_chunks_in_order() -> None:
    speech = FakeSpeechClient()
    synthesizer = SpeechSynthesizer(client=speech, max_chunk_chars=20, sleep=lambda _: None)

    result = synthesizer.narrate("First paragraph.\n\nSecond paragraph.", "voice")

    assert [text for text, _ in speech.calls] == ["First paragraph.", "Second paragraph."]
    assert result.audio == b"<16><17>"
    assert result.chunks == 2


def test_synthesizer_retries_server_errors_per_chunk() -> None:
    class _FlakyOnce(FakeSpeechClient):
        def synthesize(self, text: str, voice_id: str) -> bytes:
            self.calls.append((text, voice_id))
            if len(self.calls) == 1:
                raise SpeechSynthesisError("overloaded", status_code=503)
            return b"ok"

    sleeps: list[float] = []
    speech = _FlakyOnce()
    synthesizer = SpeechSynthesizer(client=speech, retry_backoff_seconds=2.0, sleep=sleeps.append)

    assert synthesizer.narrate("Hello.", "voice").audio == b"ok"
    assert sleeps == [2.0]


def test_synthesizer_rejects_empty_script() -> None:
    synthesizer = SpeechSynthesizer(client=FakeSpeechClient())

    with pytest.raises(SpeechSynthesisError, match="empty"):
        synthesizer.narrate("   ", "voice")


def test_resolve_voice_falls_back_to_default() -> None:
    assert resolve_voice("harper") == ("harper", VOICES["harper"])
    assert resolve_voice("unknown-voice") == (DEFAULT_VOICE, VOICES[DEFAULT_VOICE])
    assert resolve_voice(None, "ivy") == ("ivy", VOICES["ivy"])
