"""Shared test fixtures and fakes for external services."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from briefcast.audio.runner import ProcessResult
from briefcast.http.html_extractor import PageContent
from briefcast.storage.repository import BriefcastRepository
from briefcast.synthesis.llm import Completion, CompletionRequest

PUBLIC_ADDRESS = "93.184.216.34"


def public_resolver(host, *_args, **_kwargs):
    """DNS stand-in that maps every host to one public address."""

    return [(2, 1, 6, "", (PUBLIC_ADDRESS, 0))]


def episode_json(*, segments: int = 2, sources: list[dict[str, str]] | None = None) -> str:
    return json.dumps(
        {
            "title": "Chips, Rates and Rivers",
            "intro": "Here's what moved this week.",
            "segments": [
                {
                    "topic": f"Topic {index}",
                    "content": f"Segment {index} talks about something that matters.",
                    "sources": sources or [],
                }
                for index in range(1, segments + 1)
            ],
            "summary": "A short summary.",
            "connections": "Everything is connected.",
            "outro": "See you next week.",
        },
    )


class FakeTextGenerator:
    """Returns queued completions (or raises queued errors) in order."""

    def __init__(self, *responses: Completion | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[CompletionRequest] = []

    def complete(self, request: CompletionRequest) -> Completion:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeSpeechClient:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.error is not None:
            raise self.error
        return f"<{len(text)}>".encode()


class FakeRunner:
    """ffprobe/ffmpeg stand-in: ffprobe reports ``durations``; ffmpeg writes its output file."""

    def __init__(
        self,
        *,
        durations: dict[str, float] | None = None,
        default_duration: float = 60.0,
        fail_ffmpeg: bool = False,
        fail_ffprobe: bool = False,
    ) -> None:
        self.durations = durations or {}
        self.default_duration = default_duration
        self.fail_ffmpeg = fail_ffmpeg
        self.fail_ffprobe = fail_ffprobe
        self.calls: list[list[str]] = []

    def run(self, args: list[str], *, timeout_seconds: float) -> ProcessResult:
        self.calls.append(list(args))
        if args[0] == "ffprobe":
            if self.fail_ffprobe:
                return ProcessResult(exit_code=1, stdout="", stderr="probe failed")
            name = Path(args[-1]).name
            duration = self.durations.get(name, self.default_duration)
            return ProcessResult(
                exit_code=0,
                stdout=json.dumps({"format": {"duration": str(duration)}}),
                stderr="",
            )
        if self.fail_ffmpeg:
            return ProcessResult(exit_code=1, stdout="", stderr="ffmpeg failed")
        Path(args[-1]).write_bytes(b"mixed:" + Path(args[-1]).name.encode())
        return ProcessResult(exit_code=0, stdout="", stderr="")

    def ffmpeg_calls(self) -> list[list[str]]:
        return [call for call in self.calls if call[0] == "ffmpeg"]


class FakePublisher:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.published: dict[str, bytes] = {}

    def publish(self, audio: bytes, episode_id: str) -> str:
        if self.error is not None:
            raise self.error
        self.published[episode_id] = audio
        return f"https://cdn.example.com/episodes/{episode_id}.mp3"


class FakeFetcher:
    def __init__(self, page: PageContent | None = None, *, error: Exception | None = None) -> None:
        self.page = page or PageContent(
            title="Fetched Title",
            source="example.com",
            body_text="Fetched body text.",
        )
        self.error = error
        self.urls: list[str] = []

    def fetch_and_extract(self, url: str) -> PageContent:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.page


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[BriefcastRepository]:
    repo = BriefcastRepository(tmp_path / "briefcast.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def clean_env(monkeypatch):
    """Remove credentials so Settings.from_env stays offline."""

    for name in (
        "ANTHROPIC_API_KEY",
        "ELEVENLABS_API_KEY",
        "BRIEFCAST_DB_PATH",
        "BRIEFCAST_STORAGE_BACKEND",
        "BRIEFCAST_USER_ID",
        "S3_BUCKET",
        "S3_ACCESS_KEY",
        "S3_SECRET_KEY",
        "S3_PUBLIC_URL",
        "BRIEFCAST_WEB_SEARCH",
    ):
        monkeypatch.delenv(name, raising=False)
