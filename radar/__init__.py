"""RADAR — container abuse detection for game-server hosting nodes."""

__version__ = "1.0.0"
