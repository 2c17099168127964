"""Error taxonomy shared by capture, synthesis and audio stages."""

from __future__ import annotations


class BriefcastError(RuntimeError):
    """Base error with a message safe to show to the episode owner."""

    default_user_message = "Episode generation failed. Your signals are still queued."

    @property
    def user_message(self) -> str:
        return str(self) or self.default_user_message


class RetryableError(BriefcastError):
    """Transient failure the retry helper may repeat."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NonRetryableError(BriefcastError):
    """Failure that must surface immediately regardless of attempts left."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptySignalError(NonRetryableError):
    """Captured content was empty after trimming."""


class NoSignalsError(NonRetryableError):
    """No eligible signals to build an episode from."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No signals captured this period. Send some links or topics first!",
        )


class SynthesisError(NonRetryableError):
    """Text model output could not be turned into an episode document."""


class SynthesisTruncatedError(SynthesisError):
    """Model stopped at its output token limit."""

    def __init__(self) -> None:
        super().__init__(
            "Synthesis was truncated: response exceeded the token limit. "
            "Try fewer signals or a shorter episode length.",
        )


class SynthesisParseError(SynthesisError):
    """Model output held no parseable JSON document, even after repair."""


class SynthesisValidationError(SynthesisError):
    """Parsed document is missing required fields."""


class SpeechSynthesisError(BriefcastError):
    """Speech service rejected a chunk."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MediaToolError(BriefcastError):
    """ffmpeg/ffprobe invocation failed, timed out or is not installed."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class PublishError(BriefcastError):
    """Final audio artifact could not be stored."""
