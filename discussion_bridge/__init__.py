"""Bridge between a Discord forum channel and GitHub Discussions."""

__version__ = "1.0.0"
