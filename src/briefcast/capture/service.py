"""Signal capture and enrichment service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from briefcast.capture.classifier import Classification, classify_input, extract_urls
from briefcast.capture.tagging import TopicTagger, build_tagging_context
from briefcast.errors import EmptySignalError
from briefcast.models import Channel, InputType, SignalDraft, SignalStatus, SignalView
from briefcast.retry import with_retry

if TYPE_CHECKING:
    from briefcast.capture.queue import EnrichmentQueue
    from briefcast.http.html_extractor import PageContent
    from briefcast.storage.repository import BriefcastRepository

logger = logging.getLogger(__name__)

TITLE_PREVIEW_CHARS = 100


class PageFetcher(Protocol):
    """Fetcher interface used for link enrichment."""

    def fetch_and_extract(self, url: str) -> PageContent:
        """Return best-effort page content for ``url``."""


class SignalService:
    """Create signals from raw captures and enrich them."""

    def __init__(
        self,
        *,
        repository: BriefcastRepository,
        fetcher: PageFetcher,
        tagger: TopicTagger | None = None,
        enrichment_queue: EnrichmentQueue | None = None,
    ) -> None:
        self.repository = repository
        self.fetcher = fetcher
        self.tagger = tagger
        self.enrichment_queue = enrichment_queue

    def create_signal(
        self,
        raw_content: str,
        channel: Channel,
        user_id: str,
        *,
        input_type: InputType | None = None,
    ) -> list[SignalView]:
        """Store one signal per URL (or one for the whole text) and queue enrichment."""

        text = (raw_content or "").strip()
        if not text:
            raise EmptySignalError("Signal content is empty.")

        classification = _classify(text, forced=input_type)
        drafts = _build_drafts(text, channel=channel, classification=classification)
        signals = self.repository.create_signals(user_id=user_id, drafts=drafts)
        logger.info(
            "Captured %d %s signal(s) via %s for user %s",
            len(signals),
            classification.input_type.value,
            channel.value,
            user_id,
        )
        if self.enrichment_queue is not None:
            for signal in signals:
                self.enrichment_queue.submit(signal.signal_id)
        return signals

    def enrich_signal(self, signal_id: str) -> None:
        """Fetch/stamp signal metadata; a no-op unless the signal is still queued."""

        signal = self.repository.get_signal(signal_id)
        if signal is None:
            logger.debug("Signal %s not found; skipping enrichment", signal_id)
            return
        if signal.status != SignalStatus.QUEUED:
            logger.debug("Signal %s already %s; skipping", signal_id, signal.status.value)
            return

        try:
            if signal.input_type == InputType.LINK and signal.url:
                page = self.fetcher.fetch_and_extract(signal.url)
                title, source, content = page.title, page.source, page.body_text
            else:
                title, source, content = signal.raw_content[:TITLE_PREVIEW_CHARS], None, None
            updated = self.repository.mark_signal_enriched(
                signal_id=signal_id,
                title=title,
                source=source,
                fetched_content=content,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to enrich signal %s", signal_id)
            self.repository.mark_signal_failed(signal_id=signal_id)
            return

        if not updated:
            logger.debug("Signal %s changed state during enrichment", signal_id)
            return
        self._tag(
            signal_id,
            build_tagging_context(
                title=title,
                source=source,
                content=content,
                raw_content=signal.raw_content,
            ),
        )

    def _tag(self, signal_id: str, context: str) -> None:
        if self.tagger is None:
            return
        tagger = self.tagger
        try:
            classification = with_retry(
                lambda: tagger.classify(context),
                attempts=2,
                delay_seconds=1.0,
                label=f"Topic tagging {signal_id}",
            )
            self.repository.set_signal_topics(signal_id=signal_id, topics=classification.topics)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Topic tagging failed for signal %s: %s", signal_id, exc)


def _classify(text: str, *, forced: InputType | None) -> Classification:
    if forced is None:
        return classify_input(text)
    if forced == InputType.LINK:
        urls = extract_urls(text)
        if urls:
            return Classification(input_type=InputType.LINK, urls=urls)
        return Classification(input_type=InputType.TOPIC)
    return Classification(input_type=forced)


def _build_drafts(
    text: str,
    *,
    channel: Channel,
    classification: Classification,
) -> list[SignalDraft]:
    if classification.input_type == InputType.LINK and classification.urls:
        if channel == Channel.EMAIL:
            return [
                SignalDraft(
                    input_type=InputType.LINK,
                    channel=channel,
                    raw_content=text,
                    url=classification.urls[0],
                ),
            ]
        return [
            SignalDraft(input_type=InputType.LINK, channel=channel, raw_content=url, url=url)
            for url in classification.urls
        ]
    return [SignalDraft(input_type=classification.input_type, channel=channel, raw_content=text)]
