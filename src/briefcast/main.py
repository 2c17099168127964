"""CLI entrypoint for briefcast."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from briefcast import __version__
from briefcast.controllers import (
    DatabaseCliController,
    DbUpgradeCommand,
    EpisodeCliController,
    EpisodeDeleteCommand,
    EpisodeGenerateCommand,
    EpisodeListCommand,
    EpisodeShowCommand,
    SignalAddCommand,
    SignalCliController,
    SignalEnrichCommand,
    SignalListCommand,
    UserCliController,
    UserSetCommand,
)
from briefcast.errors import BriefcastError
from briefcast.models import (
    BriefingStyle,
    Channel,
    EpisodeLength,
    EpisodeStatus,
    ResearchDepth,
    SignalStatus,
)

click.rich_click.USE_MARKDOWN = True
SIGNAL_CONTROLLER = SignalCliController()
EPISODE_CONTROLLER = EpisodeCliController()
USER_CONTROLLER = UserCliController()
DATABASE_CONTROLLER = DatabaseCliController()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.version_option(version=__version__, prog_name="briefcast")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for pipeline diagnostics.",
)
def briefcast(log_level: str) -> None:
    """Briefcast: turn captured links and topics into narrated audio briefings."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@briefcast.group()
def signal() -> None:
    """Signal capture commands."""


@signal.command("add")
@click.argument("text")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--channel",
    type=click.Choice([channel.value for channel in Channel], case_sensitive=False),
    default=Channel.CLI.value,
    show_default=True,
    help="Channel the signal arrived through.",
)
@click.option("--user-id", default=None, help="Owner user id (defaults to BRIEFCAST_USER_ID).")
@click.option("--voice-note", is_flag=True, help="Store the text as a transcribed voice note.")
@click.option(
    "--enrich/--no-enrich",
    default=True,
    show_default=True,
    help="Fetch and tag captured signals before exiting.",
)
def signal_add(  # noqa: PLR0913
    text: str,
    db_path: Path | None,
    channel: str,
    user_id: str | None,
    voice_note: bool,
    enrich: bool,
) -> None:
    """Capture a link, topic or forwarded email as one or more signals."""

    _run(
        lambda: SIGNAL_CONTROLLER.add(
            SignalAddCommand(
                db_path=db_path,
                text=text,
                channel=channel.upper(),
                user_id=user_id,
                voice_note=voice_note,
                enrich=enrich,
            ),
        ),
    )


@signal.command("enrich")
@click.argument("signal_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def signal_enrich(signal_id: str, db_path: Path | None) -> None:
    """Enrich one queued signal in the foreground."""

    _run(lambda: SIGNAL_CONTROLLER.enrich(SignalEnrichCommand(db_path=db_path, signal_id=signal_id)))


@signal.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", default=None, help="Owner user id (defaults to BRIEFCAST_USER_ID).")
@click.option(
    "--status",
    type=click.Choice([status.value for status in SignalStatus], case_sensitive=False),
    default=None,
    help="Only list signals in this status.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Maximum signals to list.",
)
def signal_list(db_path: Path | None, user_id: str | None, status: str | None, limit: int) -> None:
    """List recent signals, newest first."""

    _run(
        lambda: SIGNAL_CONTROLLER.list_signals(
            SignalListCommand(db_path=db_path, user_id=user_id, status=status, limit=limit),
        ),
    )


@briefcast.group()
def episode() -> None:
    """Episode generation and inspection commands."""


@episode.command("generate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", default=None, help="Owner user id (defaults to BRIEFCAST_USER_ID).")
@click.option(
    "--signal-id",
    "signal_ids",
    multiple=True,
    help="Generate from these signals only. Can be repeated.",
)
@click.option(
    "--days-back",
    type=click.IntRange(min=1, max=90),
    default=None,
    help="Use signals captured in the last N days (default BRIEFCAST_LOOKBACK_DAYS).",
)
@click.option(
    "--scheduled",
    is_flag=True,
    help="Treat this as a scheduled run (the narration welcomes the listener back).",
)
def episode_generate(
    db_path: Path | None,
    user_id: str | None,
    signal_ids: tuple[str, ...],
    days_back: int | None,
    scheduled: bool,
) -> None:
    """Claim signals and produce one narrated episode."""

    _run(
        lambda: EPISODE_CONTROLLER.generate(
            EpisodeGenerateCommand(
                db_path=db_path,
                user_id=user_id,
                signal_ids=signal_ids,
                days_back=days_back,
                scheduled=scheduled,
            ),
        ),
    )


@episode.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", default=None, help="Owner user id (defaults to BRIEFCAST_USER_ID).")
@click.option(
    "--status",
    type=click.Choice([status.value for status in EpisodeStatus], case_sensitive=False),
    default=None,
    help="Only list episodes in this status.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=200),
    default=20,
    show_default=True,
    help="Maximum episodes to list.",
)
def episode_list(db_path: Path | None, user_id: str | None, status: str | None, limit: int) -> None:
    """List recent episodes, newest first."""

    _run(
        lambda: EPISODE_CONTROLLER.list_episodes(
            EpisodeListCommand(db_path=db_path, user_id=user_id, status=status, limit=limit),
        ),
    )


@episode.command("show")
@click.argument("episode_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--script", "show_script", is_flag=True, help="Print the full narration script.")
def episode_show(episode_id: str, db_path: Path | None, show_script: bool) -> None:
    """Show one episode with its segments, sources and signals."""

    _run(
        lambda: EPISODE_CONTROLLER.show(
            EpisodeShowCommand(db_path=db_path, episode_id=episode_id, show_script=show_script),
        ),
    )


@episode.command("delete")
@click.argument("episode_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def episode_delete(episode_id: str, db_path: Path | None) -> None:
    """Delete an episode and its segments."""

    _run(
        lambda: EPISODE_CONTROLLER.delete(
            EpisodeDeleteCommand(db_path=db_path, episode_id=episode_id),
        ),
    )


@briefcast.group()
def user() -> None:
    """User preference commands."""


@user.command("set")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", default=None, help="User id (defaults to BRIEFCAST_USER_ID).")
@click.option("--name", default=None, help="Name the narrator greets.")
@click.option("--pronunciation", default=None, help="Phonetic spelling of the name.")
@click.option("--voice", default=None, help="Narrator voice key, for example jon or ivy.")
@click.option(
    "--length",
    type=click.Choice([length.value for length in EpisodeLength], case_sensitive=False),
    default=None,
    help="Target episode length.",
)
@click.option("--timezone", default=None, help="IANA timezone, for example Europe/Berlin.")
@click.option(
    "--style",
    "briefing_style",
    type=click.Choice([style.value for style in BriefingStyle], case_sensitive=False),
    default=None,
    help="Briefing style: quick essentials or in-depth strategic analysis.",
)
@click.option(
    "--research-depth",
    type=click.Choice([depth.value for depth in ResearchDepth], case_sensitive=False),
    default=None,
    help="How much web research the model should do.",
)
def user_set(  # noqa: PLR0913
    db_path: Path | None,
    user_id: str | None,
    name: str | None,
    pronunciation: str | None,
    voice: str | None,
    length: str | None,
    timezone: str | None,
    briefing_style: str | None,
    research_depth: str | None,
) -> None:
    """Update listener preferences used for narration."""

    _run(
        lambda: USER_CONTROLLER.set_preferences(
            UserSetCommand(
                db_path=db_path,
                user_id=user_id,
                name=name,
                pronunciation=pronunciation,
                voice=voice.lower() if voice else None,
                length=length.lower() if length else None,
                timezone=timezone,
                briefing_style=briefing_style.lower() if briefing_style else None,
                research_depth=research_depth.lower() if research_depth else None,
            ),
        ),
    )


@briefcast.group()
def db() -> None:
    """Database commands."""


@db.command("upgrade")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def db_upgrade(db_path: Path | None) -> None:
    """Apply pending schema migrations."""

    _run(lambda: DATABASE_CONTROLLER.upgrade(DbUpgradeCommand(db_path=db_path)))


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except BriefcastError as exc:
        raise click.ClickException(exc.user_message) from exc
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    briefcast()
