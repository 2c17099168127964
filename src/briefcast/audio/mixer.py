"""ffmpeg music-bed mixing with timing offsets and loudness normalization."""

from __future__ import annotations

import json
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from briefcast.audio.runner import ProcessRunner, run_checked
from briefcast.config import MixSettings
from briefcast.errors import MediaToolError

logger = logging.getLogger(__name__)

LOUDNORM = "loudnorm=I=-16:TP=-1.5:LRA=11"


@dataclass(slots=True)
class MusicBeds:
    """Music bed files that exist on disk; missing beds are ``None``."""

    intro: Path | None = None
    outro: Path | None = None
    epilogue: Path | None = None

    @classmethod
    def discover(cls, settings: MixSettings) -> MusicBeds:
        def existing(name: str) -> Path | None:
            path = settings.music_dir / name
            return path if path.is_file() else None

        beds = cls(
            intro=existing(settings.intro_file),
            outro=existing(settings.outro_file),
            epilogue=existing(settings.epilogue_file),
        )
        logger.debug("Music beds: %s", beds)
        return beds


@dataclass(slots=True)
class MainMixPlan:
    """ffmpeg filter graph and timing of the main mix."""

    filter_complex: str
    input_count: int
    narration_delay_seconds: float
    outro_delay_seconds: float | None
    expected_duration_seconds: float


@dataclass(slots=True)
class MixResult:
    audio: bytes
    duration_seconds: float | None
    beds_applied: bool = False


def _ms(seconds: float) -> int:
    return round(seconds * 1000)


def plan_main_mix(  # noqa: PLR0913
    narration_duration: float,
    *,
    intro_present: bool,
    outro_duration: float | None,
    lead_in_seconds: float = 4.0,
    music_volume: float = 0.14,
    music_weight: float = 0.3,
) -> MainMixPlan | None:
    """Plan the main mix; ``None`` when there are no beds to mix.

    Narration is input 0, the intro bed (when present) input 1 and the outro
    bed the next input. The outro is delayed so its midpoint lands on the end
    of narration; the delay is clamped at zero for beds longer than twice the
    episode.
    """

    if not intro_present and outro_duration is None:
        return None

    filters: list[str] = []
    mix_inputs: list[str] = []
    narration_delay = lead_in_seconds if intro_present else 0.0
    if narration_delay > 0:
        delay_ms = _ms(narration_delay)
        filters.append(f"[0:a]adelay={delay_ms}|{delay_ms}[narr_delayed]")
        mix_inputs.append("[narr_delayed]")
    else:
        mix_inputs.append("[0:a]")

    total = narration_duration + narration_delay
    expected = total
    next_input = 1
    if intro_present:
        filters.append(f"[{next_input}:a]volume={music_volume:g}[intro_vol]")
        mix_inputs.append("[intro_vol]")
        next_input += 1

    outro_delay: float | None = None
    if outro_duration is not None:
        outro_delay = max(0.0, total - outro_duration / 2)
        delay_ms = _ms(outro_delay)
        filters.append(
            f"[{next_input}:a]volume={music_volume:g},adelay={delay_ms}|{delay_ms}[outro_vol]",
        )
        mix_inputs.append("[outro_vol]")
        next_input += 1
        expected = max(expected, outro_delay + outro_duration)

    weights = " ".join(["1"] + [f"{music_weight:g}"] * (len(mix_inputs) - 1))
    filters.append(
        f"{''.join(mix_inputs)}amix=inputs={len(mix_inputs)}:duration=longest"
        f":dropout_transition=2:weights={weights},{LOUDNORM}[out]",
    )
    return MainMixPlan(
        filter_complex=";".join(filters),
        input_count=next_input,
        narration_delay_seconds=narration_delay,
        outro_delay_seconds=outro_delay,
        expected_duration_seconds=expected,
    )


class AudioMixer:
    """Mix narration with music beds by driving ffmpeg through a runner.

    Every intermediate file lives in a per-call temporary directory that is
    removed on all exit paths.
    """

    def __init__(
        self,
        *,
        runner: ProcessRunner,
        beds: MusicBeds,
        settings: MixSettings | None = None,
    ) -> None:
        self.runner = runner
        self.beds = beds
        self.settings = settings or MixSettings()

    def probe_duration(self, path: Path) -> float:
        """Duration in seconds reported by ffprobe."""

        result = run_checked(
            self.runner,
            [
                self.settings.ffprobe_binary,
                "-v",
                "quiet",
                "-print_format",
                "json",
                "-show_format",
                str(path),
            ],
            timeout_seconds=self.settings.probe_timeout_seconds,
            label="ffprobe",
        )
        try:
            return float(json.loads(result.stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError) as exc:
            raise MediaToolError(f"ffprobe returned no duration for {path.name}") from exc

    def probe_audio_duration(self, audio: bytes) -> float:
        with tempfile.TemporaryDirectory(prefix="briefcast-probe-") as tmp:
            path = Path(tmp) / "audio.mp3"
            path.write_bytes(audio)
            return self.probe_duration(path)

    def mix_main(self, narration: bytes) -> MixResult:
        """Overlay intro/outro beds; narration is returned unchanged without beds."""

        if self.beds.intro is None and self.beds.outro is None:
            logger.info("No intro/outro music found, skipping mix")
            return MixResult(audio=narration, duration_seconds=None)

        settings = self.settings
        with tempfile.TemporaryDirectory(prefix="briefcast-mix-") as tmp:
            narration_path = Path(tmp) / "narration.mp3"
            output_path = Path(tmp) / "mixed.mp3"
            narration_path.write_bytes(narration)

            narration_duration = self.probe_duration(narration_path)
            outro_duration = (
                self.probe_duration(self.beds.outro) if self.beds.outro is not None else None
            )
            plan = plan_main_mix(
                narration_duration,
                intro_present=self.beds.intro is not None,
                outro_duration=outro_duration,
                lead_in_seconds=settings.intro_lead_in_seconds,
                music_volume=settings.music_volume,
                music_weight=settings.music_weight,
            )
            assert plan is not None

            inputs = ["-i", str(narration_path)]
            for bed in (self.beds.intro, self.beds.outro):
                if bed is not None:
                    inputs.extend(["-i", str(bed)])
            logger.info(
                "Mixing narration (%.1fs) with %s",
                narration_duration,
                " + ".join(
                    name
                    for name, bed in (("intro", self.beds.intro), ("outro", self.beds.outro))
                    if bed is not None
                ),
            )
            run_checked(
                self.runner,
                [
                    settings.ffmpeg_binary,
                    *inputs,
                    "-filter_complex",
                    plan.filter_complex,
                    "-map",
                    "[out]",
                    *self._encode_args(),
                    str(output_path),
                ],
                timeout_seconds=settings.mix_timeout_seconds,
                label="ffmpeg mix",
            )
            mixed = output_path.read_bytes()
            try:
                duration = self.probe_duration(output_path)
            except MediaToolError:
                duration = plan.expected_duration_seconds
            return MixResult(audio=mixed, duration_seconds=duration, beds_applied=True)

    def mix_epilogue(self, narration: bytes) -> bytes:
        """Epilogue narration over its own bed, trimmed to narration plus a short tail."""

        if self.beds.epilogue is None:
            logger.info("No epilogue music found, using narration only")
            return narration

        settings = self.settings
        with tempfile.TemporaryDirectory(prefix="briefcast-epilogue-") as tmp:
            narration_path = Path(tmp) / "epilogue.mp3"
            output_path = Path(tmp) / "epilogue-mixed.mp3"
            narration_path.write_bytes(narration)

            total = self.probe_duration(narration_path) + settings.epilogue_tail_seconds
            run_checked(
                self.runner,
                [
                    settings.ffmpeg_binary,
                    "-i",
                    str(narration_path),
                    "-i",
                    str(self.beds.epilogue),
                    "-filter_complex",
                    f"[1:a]volume={settings.epilogue_music_volume:g}[music];"
                    "[0:a][music]amix=inputs=2:duration=first:dropout_transition=2"
                    f":weights=1 {settings.music_weight:g},{LOUDNORM}[out]",
                    "-map",
                    "[out]",
                    "-t",
                    f"{total:.3f}",
                    *self._encode_args(),
                    str(output_path),
                ],
                timeout_seconds=settings.epilogue_timeout_seconds,
                label="ffmpeg epilogue mix",
            )
            return output_path.read_bytes()

    def append_with_gap(self, main: bytes, epilogue: bytes, *, gap_seconds: float) -> bytes:
        """Place ``epilogue`` after ``main`` plus a silent gap via delay and mix."""

        settings = self.settings
        with tempfile.TemporaryDirectory(prefix="briefcast-concat-") as tmp:
            main_path = Path(tmp) / "main.mp3"
            epilogue_path = Path(tmp) / "epilogue.mp3"
            output_path = Path(tmp) / "final.mp3"
            main_path.write_bytes(main)
            epilogue_path.write_bytes(epilogue)

            delay_ms = _ms(self.probe_duration(main_path) + gap_seconds)
            run_checked(
                self.runner,
                [
                    settings.ffmpeg_binary,
                    "-i",
                    str(main_path),
                    "-i",
                    str(epilogue_path),
                    "-filter_complex",
                    f"[1:a]adelay={delay_ms}|{delay_ms}[epi_delayed];"
                    "[0:a][epi_delayed]amix=inputs=2:duration=longest"
                    ":dropout_transition=0:weights=1 1,volume=2[out]",
                    "-map",
                    "[out]",
                    *self._encode_args(),
                    str(output_path),
                ],
                timeout_seconds=settings.mix_timeout_seconds,
                label="ffmpeg concat",
            )
            return output_path.read_bytes()

    def _encode_args(self) -> list[str]:
        return ["-codec:a", "libmp3lame", "-b:a", self.settings.bitrate, "-y"]
