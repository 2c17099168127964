"""Prompt templates for episode synthesis."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from briefcast.models import (
    BriefingStyle,
    EpisodeLength,
    InputType,
    PriorEpisode,
    ResearchDepth,
    SignalView,
)
from briefcast.synthesis.topic_profile import TopicProfile

LINK_CONTEXT_CHARS = 2_000
FORWARDED_CONTEXT_CHARS = 500
PRIOR_SUMMARY_CHARS = 400

SYSTEM_PROMPT = """\
You are the editorial intelligence behind a personal audio briefing that compresses \
a week's worth of curiosity into a focused episode.

## YOUR ROLE
You are a sharp, well-read analyst and synthesizer. You don't just summarize: you \
connect, contextualize and surface what matters.

## VOICE & TONE
- Conversational but substantive, like a brilliant colleague catching you up over coffee.
- Confident without being preachy. You have opinions about significance, not ideology.
- Concise. Every sentence earns its place.
- Natural spoken cadence: this will be read aloud by a speech engine. Use contractions \
and varied sentence length. Avoid dashes; use commas for pauses.
- No podcast cliches like "Welcome to your weekly briefing". Start with the most \
interesting thing.

## CRITICAL COPYRIGHT RULES
- NEVER reproduce, quote, or closely paraphrase any single source article.
- Treat submitted links as TOPIC INDICATORS: discuss the topic, not the article.
- Synthesize across multiple angles using general knowledge and the provided context.
- When attributing, say "According to reporting from The Verge..." or "Several outlets \
noted..." and never reproduce their specific expression.
- For topics without a source article, research the topic independently and discuss freely.

## OUTPUT STRUCTURE
Return a single JSON object with this structure and nothing else:
{
  "title": "Episode title, punchy and specific to content",
  "intro": "A short spoken opening that hooks the listener",
  "segments": [
    {
      "topic": "Segment title",
      "content": "The spoken script for this segment (2-4 paragraphs)",
      "sources": [
        {"name": "Source Name", "url": "https://...", "attribution": "What this source covered"}
      ]
    }
  ],
  "summary": "A written companion summary (3-5 sentences) capturing the key takeaways",
  "connections": "A brief closing segment noting unexpected connections between topics",
  "outro": "A short spoken sign-off"
}
"""

LENGTH_GUIDANCE: dict[EpisodeLength, str] = {
    EpisodeLength.SHORT: "5-8 minutes of spoken audio (roughly 750-1200 words of script)",
    EpisodeLength.MEDIUM: "10-15 minutes of spoken audio (roughly 1500-2200 words of script)",
    EpisodeLength.LONG: "15-25 minutes of spoken audio (roughly 2200-3500 words of script)",
}
DEFAULT_LENGTH = EpisodeLength.MEDIUM

STYLE_GUIDANCE: dict[BriefingStyle, list[str]] = {
    BriefingStyle.ESSENTIAL: [
        "- Format: a quick executive briefing of 3-5 minutes. Lead with the takeaway,",
        "  keep each segment to one tight paragraph and skip background the listener can infer.",
    ],
    BriefingStyle.STANDARD: [],
    BriefingStyle.STRATEGIC: [
        "- Format: an in-depth strategic analysis of 10-15 minutes. Explain second-order",
        "  effects, competing interpretations and what to watch next for each topic.",
    ],
}

RESEARCH_GUIDANCE: dict[ResearchDepth, list[str]] = {
    ResearchDepth.AUTO: [],
    ResearchDepth.LIGHT: [
        "- Research: rely mostly on the provided context and use web search sparingly,",
        "  only to confirm facts that may have changed.",
    ],
    ResearchDepth.DEEP: [
        "- Research: search thoroughly for recent developments on every topic and",
        "  cite the pages you draw on in each segment's sources.",
    ],
}


@dataclass(slots=True)
class PromptContext:
    """Per-episode framing injected into the synthesis prompt."""

    manual: bool = False
    user_name: str | None = None
    name_pronunciation: str | None = None
    episode_length: EpisodeLength | None = None
    prior_episodes: list[PriorEpisode] = field(default_factory=list)
    topic_profile: TopicProfile | None = None
    briefing_style: BriefingStyle | None = None
    research_depth: ResearchDepth | None = None


def build_synthesis_prompt(signals: Sequence[SignalView], context: PromptContext) -> str:
    """Group signals by kind and append episode framing and guidelines."""

    links = [signal for signal in signals if signal.input_type == InputType.LINK]
    topics = [
        signal
        for signal in signals
        if signal.input_type in {InputType.TOPIC, InputType.VOICE_NOTE}
    ]
    emails = [signal for signal in signals if signal.input_type == InputType.FORWARDED_EMAIL]

    framing = (
        "The listener asked for this episode right now"
        if context.manual
        else "This is the listener's scheduled weekly episode"
    )
    lines = [f"{framing}. They captured {len(signals)} signals.", ""]

    if links:
        lines.append(
            "## LINKS CAPTURED (treat as topic indicators, DO NOT summarize individual articles)",
        )
        lines.append("")
        for signal in links:
            lines.append(f"### {signal.title or 'Untitled'}")
            lines.append(f"Source: {signal.source or 'Unknown'} | URL: {signal.url}")
            if signal.fetched_content:
                lines.append(
                    "Context (for your understanding only, do not reproduce): "
                    + signal.fetched_content[:LINK_CONTEXT_CHARS],
                )
            lines.append("")

    if topics:
        lines.append("## TOPICS CAPTURED (research these independently and discuss)")
        lines.append("")
        lines.extend(f'- "{signal.raw_content}"' for signal in topics)
        lines.append("")

    if emails:
        lines.append("## FORWARDED CONTENT (extract key topics and discuss)")
        lines.append("")
        lines.extend(f"- {signal.raw_content[:FORWARDED_CONTEXT_CHARS]}" for signal in emails)
        lines.append("")

    lines.extend(_listener_section(context))
    lines.extend(_continuity_section(context.prior_episodes))
    lines.extend(_topic_profile_section(context.topic_profile))

    length = LENGTH_GUIDANCE[context.episode_length or DEFAULT_LENGTH]
    lines.extend(
        [
            "## EPISODE GUIDELINES",
            f"- Target length: {length}",
        ],
    )
    lines.extend(STYLE_GUIDANCE[context.briefing_style or BriefingStyle.STANDARD])
    lines.extend(RESEARCH_GUIDANCE[context.research_depth or ResearchDepth.AUTO])
    lines.extend(
        [
            "- Group related signals into coherent segments (3-6 segments typical)",
            "- For link-based topics: discuss the TOPIC using multiple perspectives, "
            "not the specific article",
            "- For captured topics: research and discuss as an analyst would",
            '- End with a "connections" segment noting threads between seemingly '
            "unrelated topics",
            "- The episode should feel like one coherent narrative, not a list of summaries",
            "",
            "Remember: output valid JSON matching the specified structure.",
        ],
    )
    return "\n".join(lines)


def _listener_section(context: PromptContext) -> list[str]:
    if not context.user_name:
        return []
    lines = ["## LISTENER", f"- Name: {context.user_name}"]
    if context.name_pronunciation:
        lines.append(f'- Pronounced: "{context.name_pronunciation}" (spell it this way in the script)')
    lines.append("- Greet the listener by name once, naturally, in the intro.")
    lines.append("")
    return lines


def _continuity_section(prior_episodes: Sequence[PriorEpisode]) -> list[str]:
    if not prior_episodes:
        return []
    lines = [
        "## PREVIOUS EPISODES (reference briefly when a topic continues; never repeat them)",
    ]
    for episode in prior_episodes:
        when = episode.generated_at.strftime("%Y-%m-%d") if episode.generated_at else "earlier"
        topics = ", ".join(episode.topics_covered) or "n/a"
        lines.append(f"- {when}: {episode.title} (topics: {topics})")
        if episode.summary:
            lines.append(f"  Summary: {episode.summary[:PRIOR_SUMMARY_CHARS]}")
    lines.append("")
    return lines


def _topic_profile_section(profile: TopicProfile | None) -> list[str]:
    if profile is None or profile.is_empty():
        return []
    lines = ["## LISTENER TOPIC PROFILE (calibrate depth)"]
    if profile.familiar:
        lines.append("Familiar topics (skip the basics, go deeper):")
        lines.extend(
            f"- {item.topic} (covered in {item.episode_count} episodes)"
            for item in profile.familiar
        )
    if profile.growing:
        lines.append("Growing interests (give these extra room):")
        lines.extend(
            f"- {item.topic} ({item.previous_week} -> {item.current_week} signals, "
            f"{item.change}x week over week)"
            for item in profile.growing
        )
    if profile.new:
        lines.append("New topics (introduce with helpful context):")
        lines.extend(f"- {topic}" for topic in profile.new)
    lines.append("")
    return lines
