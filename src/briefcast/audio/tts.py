"""Chunked text-to-speech over the ElevenLabs HTTP API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import httpx

from briefcast.audio.chunker import DEFAULT_MAX_CHARS, chunk_script
from briefcast.config import SpeechSettings
from briefcast.errors import SpeechSynthesisError
from briefcast.retry import with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Voice:
    voice_id: str
    name: str
    description: str


VOICES: dict[str, Voice] = {
    "jon": Voice("Cz0K1kOv9tD8l0b5Qu53", "Jon", "Trustworthy, calm, confident"),
    "ivy": Voice("i4CzbCVWoqvD0P1QJCUL", "Ivy", "Young, confident, dynamic"),
    "harper": Voice("Fihx1nL7DQV0DEuFJSG1", "Harper", "Clear, factual, strong"),
    "gandalf": Voice("goT3UYdM9bhm0n2lmKQx", "Gandalf", "Deep, low, strong"),
}
DEFAULT_VOICE = "jon"


def resolve_voice(voice_key: str | None, default: str = DEFAULT_VOICE) -> tuple[str, Voice]:
    """Known voice for ``voice_key``, else the default voice."""

    if voice_key and voice_key in VOICES:
        return voice_key, VOICES[voice_key]
    if voice_key:
        logger.warning("Unknown voice %r; using %s", voice_key, default)
    key = default if default in VOICES else DEFAULT_VOICE
    return key, VOICES[key]


class SpeechClient(Protocol):
    """Synthesizes one chunk of text into encoded audio."""

    def synthesize(self, text: str, voice_id: str) -> bytes:
        """Return MP3 bytes for ``text``."""


class ElevenLabsClient:
    """Thin httpx client for the text-to-speech endpoint."""

    def __init__(
        self,
        *,
        settings: SpeechSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._client = httpx.Client(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            headers={
                "xi-api-key": settings.api_key,
                "Content-Type": "application/json",
                "Accept": "audio/mpeg",
            },
            transport=transport,
        )

    def synthesize(self, text: str, voice_id: str) -> bytes:
        response = self._client.post(
            f"/v1/text-to-speech/{voice_id}",
            json={
                "text": text,
                "model_id": self.settings.model_id,
                "voice_settings": {
                    "stability": self.settings.stability,
                    "similarity_boost": self.settings.similarity_boost,
                    "style": self.settings.style,
                    "use_speaker_boost": True,
                },
            },
        )
        if response.is_error:
            raise SpeechSynthesisError(
                f"ElevenLabs API error: {response.status_code} - {response.text[:300]}",
                status_code=response.status_code,
            )
        return response.content

    def close(self) -> None:
        self._client.close()


@dataclass(slots=True)
class NarrationResult:
    """Concatenated narration audio and how much text produced it."""

    audio: bytes
    chunks: int
    characters: int


class SpeechSynthesizer:
    """Synthesize a full script chunk by chunk, in order, with per-chunk retry."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: SpeechClient,
        max_chunk_chars: int = DEFAULT_MAX_CHARS,
        attempts: int = 3,
        retry_backoff_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.max_chunk_chars = max_chunk_chars
        self.attempts = attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep

    def narrate(self, script: str, voice_id: str) -> NarrationResult:
        chunks = chunk_script(script, self.max_chunk_chars)
        if not chunks:
            raise SpeechSynthesisError("Nothing to narrate: script is empty.")

        parts: list[bytes] = []
        for index, chunk in enumerate(chunks, start=1):
            logger.info("TTS chunk %d/%d (%d chars)", index, len(chunks), len(chunk))
            parts.append(
                with_retry(
                    lambda chunk=chunk: self.client.synthesize(chunk, voice_id),
                    attempts=self.attempts,
                    delay_seconds=self.retry_backoff_seconds,
                    label=f"TTS chunk {index}/{len(chunks)}",
                    sleep=self._sleep,
                ),
            )
        return NarrationResult(
            audio=b"".join(parts),
            chunks=len(chunks),
            characters=sum(len(chunk) for chunk in chunks),
        )
