"""Personal audio briefings synthesized from captured signals."""

__version__ = "0.1.0"
