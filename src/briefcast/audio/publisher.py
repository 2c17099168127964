"""Publish final episode audio to S3-compatible storage or a local directory."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from briefcast.config import StorageSettings
from briefcast.errors import PublishError
from briefcast.retry import is_retryable_status, with_retry

logger = logging.getLogger(__name__)

AUDIO_CONTENT_TYPE = "audio/mpeg"


def episode_audio_key(episode_id: str) -> str:
    return f"episodes/{episode_id}.mp3"


class AudioPublisher(Protocol):
    """Stores episode audio and returns its public URL."""

    def publish(self, audio: bytes, episode_id: str) -> str:
        """Upload ``audio`` for ``episode_id``."""


def is_retryable_upload_error(error: BaseException) -> bool:
    """Retry connection errors and 429/5xx responses from the storage API."""

    if isinstance(error, ClientError):
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return not isinstance(status, int) or is_retryable_status(status)
    return isinstance(error, BotoCoreError | OSError)


class S3Publisher:
    """``put_object`` into a bucket; the URL is built from a public base URL."""

    def __init__(
        self,
        *,
        settings: StorageSettings,
        client: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.endpoint_url,
            aws_access_key_id=settings.access_key,
            aws_secret_access_key=settings.secret_key,
            region_name=settings.region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )
        self._sleep = sleep

    def publish(self, audio: bytes, episode_id: str) -> str:
        key = episode_audio_key(episode_id)
        try:
            with_retry(
                lambda: self._client.put_object(
                    Bucket=self.settings.bucket,
                    Key=key,
                    Body=audio,
                    ContentType=AUDIO_CONTENT_TYPE,
                ),
                attempts=self.settings.attempts,
                delay_seconds=self.settings.retry_backoff_seconds,
                label="S3 upload",
                is_retryable=is_retryable_upload_error,
                sleep=self._sleep,
            )
        except (BotoCoreError, ClientError) as exc:
            raise PublishError(f"Audio upload failed for {key}: {exc}") from exc

        url = f"{self.settings.public_base_url.rstrip('/')}/{key}"
        logger.info("Audio uploaded: %s (%d bytes)", url, len(audio))
        return url


class LocalPublisher:
    """Write audio under a directory and return a ``file://`` URL."""

    def __init__(self, *, root: Path) -> None:
        self.root = root

    def publish(self, audio: bytes, episode_id: str) -> str:
        path = self.root / episode_audio_key(episode_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(audio)
        except OSError as exc:
            raise PublishError(f"Could not write audio to {path}: {exc}") from exc
        logger.info("Audio written: %s (%d bytes)", path, len(audio))
        return path.resolve().as_uri()
