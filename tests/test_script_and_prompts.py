from __future__ import annotations

from datetime import UTC, datetime

import allure

from briefcast.models import (
    BriefingStyle,
    Channel,
    EpisodeLength,
    InputType,
    PriorEpisode,
    ResearchDepth,
    SignalStatus,
    SignalView,
    SourceRef,
)
from briefcast.synthesis.document import DocumentSegment, EpisodeDocument
from briefcast.synthesis.prompts import PromptContext, build_synthesis_prompt
from briefcast.synthesis.script import (
    build_epilogue,
    build_main_script,
    format_episode_date,
    sanitize_for_tts,
)
from briefcast.synthesis.topic_profile import TopicProfile

pytestmark = [
    allure.epic("Synthesis"),
    allure.feature("Scripts & Prompts"),
]

NOW = datetime(2026, 10, 19, 14, 0, tzinfo=UTC)


def _signal(input_type: InputType, raw: str, **fields) -> SignalView:
    values = {
        "signal_id": raw,
        "user_id": "u",
        "input_type": input_type,
        "channel": Channel.API,
        "raw_content": raw,
        "url": None,
        "title": None,
        "source": None,
        "fetched_content": None,
        "topics": [],
        "status": SignalStatus.USED,
        "episode_id": "e",
        "created_at": NOW,
        "processed_at": None,
    }
    values.update(fields)
    return SignalView(**values)


def _document(*sources: list[SourceRef]) -> EpisodeDocument:
    return EpisodeDocument(
        title="T",
        intro="Intro.",
        segments=[
            DocumentSegment(topic=f"S{index}", content=f"Content {index}.", sources=list(group))
            for index, group in enumerate(sources or ([],))
        ],
        connections="Connections.",
        outro="Outro.",
    )


class TestScript:
    def test_main_script_joins_parts_with_blank_lines(self):
        document = _document([], [])
        assert build_main_script(document) == (
            "Intro.\n\nContent 0.\n\nContent 1.\n\nConnections.\n\nOutro."
        )

    def test_format_episode_date_uses_listener_timezone(self):
        late = datetime(2026, 10, 20, 2, 0, tzinfo=UTC)
        assert format_episode_date(late, "America/Los_Angeles") == "Monday, October 19, 2026"
        assert format_episode_date(late, "Not/AZone") == "Tuesday, October 20, 2026"

    def test_epilogue_lists_at_most_three_unique_sources(self):
        document = _document(
            [SourceRef("Reuters", "u"), SourceRef("The Verge", "u")],
            [SourceRef("Reuters", "u"), SourceRef("Wired", "u"), SourceRef("AP", "u")],
        )

        epilogue = build_epilogue(document, timezone="UTC", now=NOW)

        assert epilogue.startswith("This episode was created for you on Monday, October 19, 2026.")
        assert "reporting from Reuters, The Verge, and Wired." in epilogue
        assert "AP" not in epilogue
        assert epilogue.endswith("explore the complete list of sources on your episode page.")

    def test_epilogue_without_sources_skips_attribution(self):
        epilogue = build_epilogue(_document(), timezone="UTC", now=NOW)
        assert "reporting from" not in epilogue

    def test_sanitize_for_tts_turns_dashes_into_pauses(self):
        assert sanitize_for_tts("AI — and rates – moved") == "AI, and rates, moved"
        assert sanitize_for_tts("Wait, — what") == "Wait, what"


class TestPrompt:
    def test_prompt_groups_signals_by_kind(self):
        signals = [
            _signal(
                InputType.LINK,
                "https://example.com/a",
                url="https://example.com/a",
                title="Chip Rules",
                source="Example",
                fetched_content="x" * 3000,
            ),
            _signal(InputType.TOPIC, "fusion energy"),
            _signal(InputType.VOICE_NOTE, "ask about tariffs"),
            _signal(InputType.FORWARDED_EMAIL, "y" * 800),
        ]

        prompt = build_synthesis_prompt(signals, PromptContext())

        assert "They captured 4 signals." in prompt
        assert "### Chip Rules" in prompt
        assert "Source: Example | URL: https://example.com/a" in prompt
        assert "x" * 2000 in prompt
        assert "x" * 2001 not in prompt
        assert '- "fusion energy"' in prompt
        assert '- "ask about tariffs"' in prompt
        assert "y" * 500 in prompt
        assert "y" * 501 not in prompt
        assert "scheduled weekly episode" in prompt
        assert "10-15 minutes" in prompt

    def test_prompt_includes_listener_history_and_profile(self):
        context = PromptContext(
            manual=True,
            user_name="Siobhan",
            name_pronunciation="shi-VAWN",
            episode_length=EpisodeLength.SHORT,
            prior_episodes=[
                PriorEpisode(
                    title="Last Week",
                    summary="We covered chips.",
                    topics_covered=["Chips"],
                    generated_at=NOW,
                ),
            ],
            topic_profile=TopicProfile(new=["space"]),
        )

        prompt = build_synthesis_prompt([_signal(InputType.TOPIC, "space")], context)

        assert "- Name: Siobhan" in prompt
        assert 'Pronounced: "shi-VAWN"' in prompt
        assert "- 2026-10-19: Last Week (topics: Chips)" in prompt
        assert "New topics (introduce with helpful context):\n- space" in prompt
        assert "5-8 minutes" in prompt

    def test_prompt_reflects_briefing_style_and_research_depth(self):
        signals = [_signal(InputType.TOPIC, "space")]

        essential = build_synthesis_prompt(
            signals,
            PromptContext(
                briefing_style=BriefingStyle.ESSENTIAL,
                research_depth=ResearchDepth.DEEP,
            ),
        )
        standard = build_synthesis_prompt(signals, PromptContext())

        assert "quick executive briefing of 3-5 minutes" in essential
        assert "search thoroughly for recent developments" in essential
        assert "Format:" not in standard
        assert "Research:" not in standard
