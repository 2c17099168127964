"""Episode generation: claim signals, synthesize a script, narrate and publish."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from briefcast.audio.assembler import AudioAssembler
from briefcast.audio.publisher import AudioPublisher
from briefcast.audio.tts import DEFAULT_VOICE, resolve_voice
from briefcast.config import SynthesisSettings
from briefcast.errors import BriefcastError, SynthesisTruncatedError
from briefcast.models import (
    EpisodeClaim,
    EpisodeFinalize,
    ScriptWrite,
    SegmentWrite,
    SignalView,
    UserProfile,
)
from briefcast.retry import with_retry
from briefcast.storage.repository import BriefcastRepository
from briefcast.synthesis.document import EpisodeDocument, parse_or_repair
from briefcast.synthesis.llm import Completion, CompletionRequest, TextGenerator
from briefcast.synthesis.prompts import SYSTEM_PROMPT, PromptContext, build_synthesis_prompt
from briefcast.synthesis.script import (
    build_epilogue,
    build_main_script,
    sanitize_for_tts,
)
from briefcast.synthesis.sources import SourceValidator
from briefcast.synthesis.topic_profile import build_topic_profile

logger = logging.getLogger(__name__)


class EpisodeGenerator:
    """Produce exactly one episode per successful claim.

    Any failure after the claim marks the episode ``FAILED`` and releases its
    signals back to ``QUEUED`` before the original exception is re-raised.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: BriefcastRepository,
        generator: TextGenerator,
        assembler: AudioAssembler,
        publisher: AudioPublisher,
        source_validator: SourceValidator | None = None,
        settings: SynthesisSettings | None = None,
        default_voice: str = DEFAULT_VOICE,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.assembler = assembler
        self.publisher = publisher
        self.source_validator = source_validator or SourceValidator()
        self.settings = settings or SynthesisSettings()
        self.default_voice = default_voice
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep

    def generate_episode(
        self,
        user_id: str,
        *,
        signal_ids: Sequence[str] | None = None,
        since: datetime | None = None,
        manual: bool = False,
    ) -> str:
        """Generate an episode and return its id; raises ``NoSignalsError`` when idle."""

        if not signal_ids and since is None:
            since = self._clock() - timedelta(days=self.settings.default_lookback_days)
        claim = self.repository.claim_signals(
            user_id=user_id,
            signal_ids=signal_ids,
            since=None if signal_ids else since,
        )
        episode_id = claim.episode.episode_id
        logger.info(
            "Processing %d signals (locked to episode %s)",
            len(claim.signals),
            episode_id,
        )

        try:
            self._produce(claim, user_id=user_id, manual=manual)
        except Exception as exc:
            logger.exception("Generation failed for episode %s", episode_id)
            message = exc.user_message if isinstance(exc, BriefcastError) else str(exc)
            released = self.repository.fail_episode(
                episode_id=episode_id,
                error=message or type(exc).__name__,
            )
            logger.info("Released %d signal(s) from episode %s", released, episode_id)
            raise
        return episode_id

    def _produce(self, claim: EpisodeClaim, *, user_id: str, manual: bool) -> None:
        episode_id = claim.episode.episode_id
        user = self.repository.get_user(user_id) or UserProfile(
            user_id=user_id,
            display_name=user_id,
        )

        prompt = self._build_prompt(claim.signals, user=user, manual=manual)
        synthesis_started = time.monotonic()
        completion = self._complete(prompt)
        synthesis_seconds = round(time.monotonic() - synthesis_started, 3)
        logger.info(
            "Synthesis: %.1fs, %d in / %d out tokens, %d web search(es), %d citation(s)",
            synthesis_seconds,
            completion.input_tokens,
            completion.output_tokens,
            completion.web_searches,
            len(completion.citations),
        )
        if completion.truncated:
            raise SynthesisTruncatedError()

        document, error = parse_or_repair(
            completion.text,
            max_segments=self.settings.max_segments,
        )
        if error is not None:
            raise error
        assert document is not None
        logger.info('Parsed "%s" with %d segments', document.title, len(document.segments))

        report = self.source_validator.validate(
            document.segments,
            signal_urls=[signal.url for signal in claim.signals if signal.url],
            citations=completion.citations,
        )
        logger.info(
            "Source validation: %d kept (%d verified by search, %d enriched), "
            "%d no-url, %d unreachable, %d unsafe",
            report.kept,
            report.verified,
            report.enriched,
            report.no_url,
            report.unreachable,
            report.unsafe,
        )

        main_script = build_main_script(document)
        epilogue = build_epilogue(document, timezone=user.timezone, now=self._clock())
        if not self.repository.save_script(
            episode_id=episode_id,
            script=_script_write(document, main_script=main_script, epilogue=epilogue),
        ):
            raise RuntimeError(f"Episode {episode_id} is no longer generating")

        voice_key, voice = resolve_voice(user.voice_key, self.default_voice)
        logger.info("Generating audio (voice: %s)", voice.name)
        audio = self.assembler.assemble(
            sanitize_for_tts(main_script),
            voice.voice_id,
            epilogue=sanitize_for_tts(epilogue),
        )
        audio_url = self.publisher.publish(audio.audio, episode_id)

        finalized = self.repository.finalize_episode(
            episode_id=episode_id,
            payload=EpisodeFinalize(
                audio_url=audio_url,
                audio_duration=audio.duration_seconds,
                voice_key=voice_key,
                generation_meta={
                    "model": completion.model,
                    "input_tokens": completion.input_tokens,
                    "output_tokens": completion.output_tokens,
                    "synthesis_seconds": synthesis_seconds,
                    "web_searches": completion.web_searches,
                    "web_citations": len(completion.citations),
                    "continuations": completion.continuations,
                    "web_search_fallback": completion.web_search_fallback,
                    "tts_characters": audio.characters,
                    "tts_chunks": audio.chunks,
                    "tts_seconds": audio.tts_seconds,
                    "music_mixed": audio.mixed,
                    "epilogue_included": audio.epilogue_included,
                    "sources_kept": report.kept,
                    "sources_verified": report.verified,
                    "sources_enriched": report.enriched,
                    "sources_dropped": report.no_url + report.unreachable + report.unsafe,
                },
            ),
        )
        if not finalized:
            raise RuntimeError(f"Episode {episode_id} could not be finalized")
        logger.info("Episode ready: %s (%ss)", document.title, audio.duration_seconds)

    def _build_prompt(self, signals: list[SignalView], *, user: UserProfile, manual: bool) -> str:
        prior = self.repository.list_prior_episodes(
            user_id=user.user_id,
            limit=self.settings.prior_episodes,
        )
        current_topics = [topic for signal in signals for topic in signal.topics]
        profile = build_topic_profile(
            current_topics,
            self.repository.load_topic_history(user_id=user.user_id),
            now=self._clock(),
        )
        if profile is not None:
            logger.info(
                "Topic profile: %d familiar, %d growing, %d new",
                len(profile.familiar),
                len(profile.growing),
                len(profile.new),
            )
        return build_synthesis_prompt(
            signals,
            PromptContext(
                manual=manual,
                user_name=user.display_name,
                name_pronunciation=user.name_pronunciation,
                episode_length=user.episode_length,
                prior_episodes=prior,
                topic_profile=profile,
                briefing_style=user.briefing_style,
                research_depth=user.research_depth,
            ),
        )

    def _complete(self, prompt: str) -> Completion:
        request = CompletionRequest(
            model=self.settings.model,
            system=SYSTEM_PROMPT,
            prompt=prompt,
            max_tokens=self.settings.max_tokens,
            web_search=self.settings.web_search,
            web_search_max_uses=self.settings.web_search_max_uses,
            max_continuations=self.settings.max_continuations,
        )
        return with_retry(
            lambda: self.generator.complete(request),
            attempts=self.settings.attempts,
            delay_seconds=self.settings.retry_backoff_seconds,
            label="Text synthesis",
            sleep=self._sleep,
        )


def _script_write(document: EpisodeDocument, *, main_script: str, epilogue: str) -> ScriptWrite:
    return ScriptWrite(
        title=document.title,
        script=f"{main_script}\n\n{epilogue}" if epilogue else main_script,
        summary=document.summary or None,
        topics_covered=[segment.topic for segment in document.segments],
        segments=[
            SegmentWrite(topic=segment.topic, content=segment.content, sources=list(segment.sources))
            for segment in document.segments
        ],
    )
