"""Runtime configuration for capture, synthesis and audio pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; BriefcastBot/1.0; +https://briefcast.app)"


@dataclass(slots=True)
class FetchSettings:
    """Safe page fetcher settings."""

    timeout_seconds: float = 10.0
    max_redirects: int = 5
    max_bytes: int = 2 * 1024 * 1024
    max_words: int = 4_000
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(slots=True)
class SynthesisSettings:
    """Text generation and script assembly settings."""

    api_key: str = ""
    model: str = "claude-sonnet-4-5"
    max_tokens: int = 12_000
    tagging_model: str = "claude-haiku-4-5"
    tagging_max_tokens: int = 300
    request_timeout_seconds: float = 240.0
    attempts: int = 2
    retry_backoff_seconds: float = 3.0
    prior_episodes: int = 3
    max_segments: int = 8
    default_lookback_days: int = 7
    web_search: bool = True
    web_search_max_uses: int = 10
    max_continuations: int = 3
    validate_source_urls: bool = True
    source_probe_timeout_seconds: float = 8.0


@dataclass(slots=True)
class SpeechSettings:
    """Speech synthesis service settings."""

    api_key: str = ""
    base_url: str = "https://api.elevenlabs.io"
    model_id: str = "eleven_turbo_v2_5"
    max_chunk_chars: int = 4_500
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.3
    request_timeout_seconds: float = 120.0
    attempts: int = 3
    retry_backoff_seconds: float = 2.0
    default_voice: str = "jon"


@dataclass(slots=True)
class MixSettings:
    """ffmpeg mixing settings and music bed locations."""

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    music_dir: Path = Path("assets/audio")
    intro_file: str = "intro.mp3"
    outro_file: str = "outro.mp3"
    epilogue_file: str = "epilogue.mp3"
    music_volume: float = 0.14
    epilogue_music_volume: float = 0.18
    music_weight: float = 0.3
    intro_lead_in_seconds: float = 4.0
    epilogue_gap_seconds: float = 1.5
    epilogue_tail_seconds: float = 2.0
    mix_timeout_seconds: float = 60.0
    probe_timeout_seconds: float = 30.0
    epilogue_timeout_seconds: float = 30.0
    bitrate: str = "192k"


@dataclass(slots=True)
class StorageSettings:
    """Published audio storage settings."""

    backend: str = "local"
    bucket: str = "briefcast-audio"
    endpoint_url: str | None = None
    access_key: str = ""
    secret_key: str = ""
    region: str = "auto"
    public_base_url: str = ""
    local_dir: Path = Path(".briefcast_audio")
    attempts: int = 3
    retry_backoff_seconds: float = 2.0


@dataclass(slots=True)
class EnrichmentSettings:
    """Background enrichment worker pool settings."""

    workers: int = 2
    queue_size: int = 100


@dataclass(slots=True)
class UserContextSettings:
    """User context settings."""

    user_id: str = "default_user"
    user_name: str = "Default User"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".briefcast.db")
    fetch: FetchSettings = field(default_factory=FetchSettings)
    synthesis: SynthesisSettings = field(default_factory=SynthesisSettings)
    speech: SpeechSettings = field(default_factory=SpeechSettings)
    mix: MixSettings = field(default_factory=MixSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    enrichment: EnrichmentSettings = field(default_factory=EnrichmentSettings)
    user_context: UserContextSettings = field(default_factory=UserContextSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("BRIEFCAST_DB_PATH", ".briefcast.db")),
            fetch=FetchSettings(
                timeout_seconds=float(os.getenv("BRIEFCAST_FETCH_TIMEOUT_SECONDS", "10.0")),
                max_redirects=int(os.getenv("BRIEFCAST_FETCH_MAX_REDIRECTS", "5")),
                max_bytes=int(os.getenv("BRIEFCAST_FETCH_MAX_BYTES", str(2 * 1024 * 1024))),
                max_words=int(os.getenv("BRIEFCAST_FETCH_MAX_WORDS", "4000")),
                user_agent=os.getenv("BRIEFCAST_FETCH_USER_AGENT", DEFAULT_USER_AGENT),
            ),
            synthesis=SynthesisSettings(
                api_key=os.getenv("ANTHROPIC_API_KEY", ""),
                model=os.getenv("BRIEFCAST_SYNTHESIS_MODEL", "claude-sonnet-4-5"),
                max_tokens=int(os.getenv("BRIEFCAST_SYNTHESIS_MAX_TOKENS", "12000")),
                tagging_model=os.getenv("BRIEFCAST_TAGGING_MODEL", "claude-haiku-4-5"),
                tagging_max_tokens=int(os.getenv("BRIEFCAST_TAGGING_MAX_TOKENS", "300")),
                request_timeout_seconds=float(
                    os.getenv("BRIEFCAST_SYNTHESIS_TIMEOUT_SECONDS", "240.0"),
                ),
                attempts=int(os.getenv("BRIEFCAST_SYNTHESIS_ATTEMPTS", "2")),
                retry_backoff_seconds=float(
                    os.getenv("BRIEFCAST_SYNTHESIS_RETRY_BACKOFF_SECONDS", "3.0"),
                ),
                prior_episodes=int(os.getenv("BRIEFCAST_PRIOR_EPISODES", "3")),
                max_segments=int(os.getenv("BRIEFCAST_MAX_SEGMENTS", "8")),
                default_lookback_days=int(os.getenv("BRIEFCAST_LOOKBACK_DAYS", "7")),
                web_search=_env_bool("BRIEFCAST_WEB_SEARCH", default=True),
                web_search_max_uses=int(os.getenv("BRIEFCAST_WEB_SEARCH_MAX_USES", "10")),
                max_continuations=int(os.getenv("BRIEFCAST_MAX_CONTINUATIONS", "3")),
                validate_source_urls=_env_bool(
                    "BRIEFCAST_VALIDATE_SOURCE_URLS",
                    default=True,
                ),
                source_probe_timeout_seconds=float(
                    os.getenv("BRIEFCAST_SOURCE_PROBE_TIMEOUT_SECONDS", "8.0"),
                ),
            ),
            speech=SpeechSettings(
                api_key=os.getenv("ELEVENLABS_API_KEY", ""),
                base_url=os.getenv("BRIEFCAST_SPEECH_BASE_URL", "https://api.elevenlabs.io"),
                model_id=os.getenv("BRIEFCAST_SPEECH_MODEL_ID", "eleven_turbo_v2_5"),
                max_chunk_chars=int(os.getenv("BRIEFCAST_SPEECH_MAX_CHUNK_CHARS", "4500")),
                request_timeout_seconds=float(
                    os.getenv("BRIEFCAST_SPEECH_TIMEOUT_SECONDS", "120.0"),
                ),
                attempts=int(os.getenv("BRIEFCAST_SPEECH_ATTEMPTS", "3")),
                retry_backoff_seconds=float(
                    os.getenv("BRIEFCAST_SPEECH_RETRY_BACKOFF_SECONDS", "2.0"),
                ),
                default_voice=os.getenv("BRIEFCAST_DEFAULT_VOICE", "jon"),
            ),
            mix=MixSettings(
                ffmpeg_binary=os.getenv("BRIEFCAST_FFMPEG", "ffmpeg"),
                ffprobe_binary=os.getenv("BRIEFCAST_FFPROBE", "ffprobe"),
                music_dir=Path(os.getenv("BRIEFCAST_MUSIC_DIR", "assets/audio")),
                music_volume=float(os.getenv("BRIEFCAST_MUSIC_VOLUME", "0.14")),
                epilogue_music_volume=float(
                    os.getenv("BRIEFCAST_EPILOGUE_MUSIC_VOLUME", "0.18"),
                ),
                intro_lead_in_seconds=float(os.getenv("BRIEFCAST_INTRO_LEAD_IN_SECONDS", "4.0")),
                epilogue_gap_seconds=float(os.getenv("BRIEFCAST_EPILOGUE_GAP_SECONDS", "1.5")),
                mix_timeout_seconds=float(os.getenv("BRIEFCAST_MIX_TIMEOUT_SECONDS", "60.0")),
            ),
            storage=StorageSettings(
                backend=os.getenv("BRIEFCAST_STORAGE_BACKEND", "local").strip().lower(),
                bucket=os.getenv("S3_BUCKET", "briefcast-audio"),
                endpoint_url=os.getenv("S3_ENDPOINT") or None,
                access_key=os.getenv("S3_ACCESS_KEY", ""),
                secret_key=os.getenv("S3_SECRET_KEY", ""),
                region=os.getenv("S3_REGION", "auto"),
                public_base_url=os.getenv("S3_PUBLIC_URL", "").rstrip("/"),
                local_dir=Path(os.getenv("BRIEFCAST_LOCAL_AUDIO_DIR", ".briefcast_audio")),
            ),
            enrichment=EnrichmentSettings(
                workers=int(os.getenv("BRIEFCAST_ENRICHMENT_WORKERS", "2")),
                queue_size=int(os.getenv("BRIEFCAST_ENRICHMENT_QUEUE_SIZE", "100")),
            ),
            user_context=UserContextSettings(
                user_id=os.getenv("BRIEFCAST_USER_ID", "default_user"),
                user_name=os.getenv("BRIEFCAST_USER_NAME", "Default User"),
            ),
        )

    def validate_for_generation(self) -> None:
        """Raise configuration error if episode generation cannot run."""

        if not self.synthesis.api_key:
            raise ValueError("ANTHROPIC_API_KEY is required to generate episodes.")
        if not self.speech.api_key:
            raise ValueError("ELEVENLABS_API_KEY is required to generate episodes.")
        if self.synthesis.attempts < 1:
            raise ValueError("BRIEFCAST_SYNTHESIS_ATTEMPTS must be >= 1.")
        if self.speech.attempts < 1:
            raise ValueError("BRIEFCAST_SPEECH_ATTEMPTS must be >= 1.")
        if self.speech.max_chunk_chars <= 0:
            raise ValueError("BRIEFCAST_SPEECH_MAX_CHUNK_CHARS must be a positive integer.")
        if self.synthesis.max_segments <= 0:
            raise ValueError("BRIEFCAST_MAX_SEGMENTS must be a positive integer.")
        self.validate_storage()

    def validate_storage(self) -> None:
        """Raise configuration error if the storage backend is misconfigured."""

        backend = self.storage.backend
        if backend not in {"s3", "local"}:
            raise ValueError(
                f"Invalid BRIEFCAST_STORAGE_BACKEND: {backend!r}. Expected 's3' or 'local'.",
            )
        if backend != "s3":
            return
        if not self.storage.bucket:
            raise ValueError("S3_BUCKET is required for the s3 storage backend.")
        if not self.storage.access_key or not self.storage.secret_key:
            raise ValueError(
                "S3_ACCESS_KEY and S3_SECRET_KEY are required for the s3 storage backend.",
            )
        _validate_public_base_url(self.storage.public_base_url)

    def validate_for_enrichment(self) -> None:
        """Raise configuration error if the enrichment pool is misconfigured."""

        if self.enrichment.workers <= 0:
            raise ValueError("BRIEFCAST_ENRICHMENT_WORKERS must be a positive integer.")
        if self.enrichment.queue_size <= 0:
            raise ValueError("BRIEFCAST_ENRICHMENT_QUEUE_SIZE must be a positive integer.")
        if self.fetch.max_redirects < 0:
            raise ValueError("BRIEFCAST_FETCH_MAX_REDIRECTS must be >= 0.")
        if self.fetch.max_bytes <= 0:
            raise ValueError("BRIEFCAST_FETCH_MAX_BYTES must be a positive integer.")


def _validate_public_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid S3_PUBLIC_URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
