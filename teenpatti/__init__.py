"""Teen Patti game server."""

__version__ = "0.1.0"
