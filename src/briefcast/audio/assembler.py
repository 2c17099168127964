"""Narrate, mix and concatenate an episode's audio."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from briefcast.audio.mixer import AudioMixer
from briefcast.audio.tts import SpeechSynthesizer
from briefcast.errors import MediaToolError
from briefcast.retry import with_retry

logger = logging.getLogger(__name__)

CHARS_PER_WORD = 5
WORDS_PER_MINUTE = 150


def estimate_duration_seconds(characters: int) -> int:
    """Spoken duration estimate used when the final file cannot be probed."""

    return round((characters / CHARS_PER_WORD) / WORDS_PER_MINUTE * 60)


@dataclass(slots=True)
class AssembledAudio:
    """Final encoded episode audio with its narration statistics."""

    audio: bytes
    duration_seconds: int
    characters: int
    chunks: int
    mixed: bool
    epilogue_included: bool
    tts_seconds: float


class AudioAssembler:
    """Only main narration failure is fatal; mixing problems degrade gracefully."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        synthesizer: SpeechSynthesizer,
        mixer: AudioMixer,
        mix_attempts: int = 2,
        mix_backoff_seconds: float = 3.0,
        epilogue_gap_seconds: float = 1.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.synthesizer = synthesizer
        self.mixer = mixer
        self.mix_attempts = mix_attempts
        self.mix_backoff_seconds = mix_backoff_seconds
        self.epilogue_gap_seconds = epilogue_gap_seconds
        self._sleep = sleep

    def assemble(self, script: str, voice_id: str, epilogue: str | None = None) -> AssembledAudio:
        started = time.monotonic()
        narration = self.synthesizer.narrate(script, voice_id)
        characters = narration.characters
        chunks = narration.chunks

        try:
            mix = with_retry(
                lambda: self.mixer.mix_main(narration.audio),
                attempts=self.mix_attempts,
                delay_seconds=self.mix_backoff_seconds,
                label="Music mixing",
                sleep=self._sleep,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Music mixing failed, using narration only: %s", exc)
            main_audio = narration.audio
            mixed = False
        else:
            main_audio = mix.audio
            mixed = mix.beds_applied

        final_audio = main_audio
        epilogue_included = False
        if epilogue:
            try:
                epilogue_narration = self.synthesizer.narrate(epilogue, voice_id)
                epilogue_audio = self._mix_epilogue(epilogue_narration.audio)
                final_audio = self.mixer.append_with_gap(
                    main_audio,
                    epilogue_audio,
                    gap_seconds=self.epilogue_gap_seconds,
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Epilogue failed, episode will play without it: %s", exc)
            else:
                characters += epilogue_narration.characters
                chunks += epilogue_narration.chunks
                epilogue_included = True

        try:
            duration = round(self.mixer.probe_audio_duration(final_audio))
        except MediaToolError as exc:
            logger.warning("Could not probe final duration (%s); estimating", exc)
            duration = estimate_duration_seconds(characters)

        return AssembledAudio(
            audio=final_audio,
            duration_seconds=duration,
            characters=characters,
            chunks=chunks,
            mixed=mixed,
            epilogue_included=epilogue_included,
            tts_seconds=round(time.monotonic() - started, 3),
        )

    def _mix_epilogue(self, narration: bytes) -> bytes:
        try:
            return with_retry(
                lambda: self.mixer.mix_epilogue(narration),
                attempts=self.mix_attempts,
                delay_seconds=self.mix_backoff_seconds,
                label="Epilogue mixing",
                sleep=self._sleep,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Epilogue mixing failed, using narration only: %s", exc)
            return narration
