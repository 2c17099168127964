from __future__ import annotations

from pathlib import Path

import allure
import pytest

from briefcast.audio.assembler import AudioAssembler, estimate_duration_seconds
from briefcast.audio.mixer import AudioMixer, MusicBeds
from briefcast.audio.tts import SpeechSynthesizer
from briefcast.errors import SpeechSynthesisError

from conftest import FakeRunner, FakeSpeechClient

pytestmark = [
    allure.epic("Audio"),
    allure.feature("Episode Audio Assembly"),
]


def _no_sleep(_: float) -> None:
    return None


class _FlakySpeech(FakeSpeechClient):
    """Fails every request whose text contains ``marker``."""

    def __init__(self, marker: str) -> None:
        super().__init__()
        self.marker = marker

    def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.marker in text:
            raise SpeechSynthesisError("rejected", status_code=422)
        return b"speech"


def _assembler(speech, runner: FakeRunner, beds: MusicBeds | None = None) -> AudioAssembler:
    return AudioAssembler(
        synthesizer=SpeechSynthesizer(client=speech, sleep=_no_sleep),
        mixer=AudioMixer(runner=runner, beds=beds or MusicBeds()),
        sleep=_no_sleep,
    )


def test_main_and_epilogue_are_concatenated(tmp_path: Path) -> None:
    runner = FakeRunner(default_duration=42.4)

    result = _assembler(FakeSpeechClient(), runner).assemble("Main script.", "voice", "Epilogue.")

    assert result.audio == b"mixed:final.mp3"
    assert result.epilogue_included is True
    assert result.duration_seconds == 42
    assert result.characters == len("Main script.") + len("Epilogue.")
    assert result.chunks == 2


def test_epilogue_failure_drops_epilogue_only() -> None:
    speech = _FlakySpeech(marker="Epilogue")

    result = _assembler(speech, FakeRunner()).assemble("Main script.", "voice", "Epilogue.")

    assert result.audio == b"speech"
    assert result.epilogue_included is False
    assert result.characters == len("Main script.")


def test_main_narration_failure_is_fatal() -> None:
    with pytest.raises(SpeechSynthesisError):
        _assembler(_FlakySpeech(marker="Main"), FakeRunner()).assemble("Main script.", "voice")


def test_mix_failure_falls_back_to_narration(tmp_path: Path) -> None:
    intro = tmp_path / "intro.mp3"
    intro.write_bytes(b"bed")
    runner = FakeRunner(fail_ffmpeg=True)

    result = _assembler(FakeSpeechClient(), runner, MusicBeds(intro=intro)).assemble(
        "Main script.",
        "voice",
    )

    assert result.mixed is False
    assert result.audio == b"<12>"
    assert len(runner.ffmpeg_calls()) == 2


def test_unprobeable_audio_uses_duration_estimate() -> None:
    runner = FakeRunner(fail_ffprobe=True)
    script = "word " * 300

    result = _assembler(FakeSpeechClient(), runner).assemble(script, "voice")

    assert result.duration_seconds == estimate_duration_seconds(len(script.strip()))


def test_estimate_duration_assumes_150_words_per_minute() -> None:
    assert estimate_duration_seconds(750) == 60


def test_missing_music_beds_are_reported_as_unmixed() -> None:
    result = _assembler(FakeSpeechClient(), FakeRunner()).assemble("Main script.", "voice")

    assert result.mixed is False
    assert result.audio == b"<12>"


def test_applied_music_beds_are_reported_as_mixed(tmp_path: Path) -> None:
    intro = tmp_path / "intro.mp3"
    intro.write_bytes(b"bed")

    result = _assembler(FakeSpeechClient(), FakeRunner(), MusicBeds(intro=intro)).assemble(
        "Main script.",
        "voice",
    )

    assert result.mixed is True
    assert result.audio == b"mixed:mixed.mp3"
