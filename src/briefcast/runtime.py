"""Wire settings into the concrete services used by the CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from briefcast.audio.assembler import AudioAssembler
from briefcast.audio.mixer import AudioMixer, MusicBeds
from briefcast.audio.publisher import AudioPublisher, LocalPublisher, S3Publisher
from briefcast.audio.runner import SubprocessRunner
from briefcast.audio.tts import ElevenLabsClient, SpeechSynthesizer
from briefcast.capture.queue import EnrichmentQueue
from briefcast.capture.service import SignalService
from briefcast.capture.tagging import TopicTagger
from briefcast.config import Settings
from briefcast.http.fetcher import SafeFetcher
from briefcast.storage.repository import BriefcastRepository
from briefcast.synthesis.llm import AnthropicTextGenerator
from briefcast.synthesis.orchestrator import EpisodeGenerator
from briefcast.synthesis.sources import HttpUrlProbe, SourceValidator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CaptureRuntime:
    """Repository, fetcher and enrichment pool for signal capture."""

    repository: BriefcastRepository
    fetcher: SafeFetcher
    service: SignalService
    queue: EnrichmentQueue | None
    generator: AnthropicTextGenerator | None

    def close(self) -> None:
        if self.queue is not None:
            self.queue.close()
        self.fetcher.close()
        if self.generator is not None:
            self.generator.close()
        self.repository.close()


@dataclass(slots=True)
class GenerationRuntime:
    """Everything needed to turn claimed signals into a published episode."""

    repository: BriefcastRepository
    episodes: EpisodeGenerator
    generator: AnthropicTextGenerator
    speech_client: ElevenLabsClient
    probe: HttpUrlProbe | None

    def close(self) -> None:
        self.generator.close()
        self.speech_client.close()
        if self.probe is not None:
            self.probe.close()
        self.repository.close()


def open_repository(settings: Settings) -> BriefcastRepository:
    repository = BriefcastRepository(
        settings.db_path,
        user_id=settings.user_context.user_id,
        user_name=settings.user_context.user_name,
    )
    try:
        repository.init_schema()
    except Exception:
        repository.close()
        raise
    return repository


def build_capture_runtime(settings: Settings, *, background: bool = True) -> CaptureRuntime:
    """Signal service with optional topic tagging and background enrichment.

    Tagging is enabled only when an Anthropic key is configured; without
    ``background`` the caller drives ``enrich_signal`` itself.
    """

    settings.validate_for_enrichment()
    repository = open_repository(settings)
    fetcher = SafeFetcher(settings=settings.fetch)
    generator: AnthropicTextGenerator | None = None
    tagger: TopicTagger | None = None
    if settings.synthesis.api_key:
        generator = AnthropicTextGenerator(
            api_key=settings.synthesis.api_key,
            timeout_seconds=settings.synthesis.request_timeout_seconds,
        )
        tagger = TopicTagger(
            generator=generator,
            model=settings.synthesis.tagging_model,
            max_tokens=settings.synthesis.tagging_max_tokens,
        )
    else:
        logger.info("ANTHROPIC_API_KEY not set; topic tagging disabled")

    service = SignalService(repository=repository, fetcher=fetcher, tagger=tagger)
    queue: EnrichmentQueue | None = None
    if background:
        queue = EnrichmentQueue(
            handler=service.enrich_signal,
            workers=settings.enrichment.workers,
            max_size=settings.enrichment.queue_size,
        )
        service.enrichment_queue = queue
    return CaptureRuntime(
        repository=repository,
        fetcher=fetcher,
        service=service,
        queue=queue,
        generator=generator,
    )


def build_publisher(settings: Settings) -> AudioPublisher:
    settings.validate_storage()
    if settings.storage.backend == "s3":
        return S3Publisher(settings=settings.storage)
    return LocalPublisher(root=settings.storage.local_dir)


def build_generation_runtime(settings: Settings) -> GenerationRuntime:
    """Episode generator backed by Anthropic, ElevenLabs, ffmpeg and storage."""

    settings.validate_for_generation()
    publisher = build_publisher(settings)
    repository = open_repository(settings)

    generator = AnthropicTextGenerator(
        api_key=settings.synthesis.api_key,
        timeout_seconds=settings.synthesis.request_timeout_seconds,
    )
    speech_client = ElevenLabsClient(settings=settings.speech)
    synthesizer = SpeechSynthesizer(
        client=speech_client,
        max_chunk_chars=settings.speech.max_chunk_chars,
        attempts=settings.speech.attempts,
        retry_backoff_seconds=settings.speech.retry_backoff_seconds,
    )
    mixer = AudioMixer(
        runner=SubprocessRunner(),
        beds=MusicBeds.discover(settings.mix),
        settings=settings.mix,
    )
    assembler = AudioAssembler(
        synthesizer=synthesizer,
        mixer=mixer,
        epilogue_gap_seconds=settings.mix.epilogue_gap_seconds,
    )
    probe = (
        HttpUrlProbe(timeout_seconds=settings.synthesis.source_probe_timeout_seconds)
        if settings.synthesis.validate_source_urls
        else None
    )
    episodes = EpisodeGenerator(
        repository=repository,
        generator=generator,
        assembler=assembler,
        publisher=publisher,
        source_validator=SourceValidator(
            probe=probe,
            dns_timeout_seconds=settings.synthesis.source_probe_timeout_seconds,
        ),
        settings=settings.synthesis,
        default_voice=settings.speech.default_voice,
    )
    return GenerationRuntime(
        repository=repository,
        episodes=episodes,
        generator=generator,
        speech_client=speech_client,
        probe=probe,
    )
