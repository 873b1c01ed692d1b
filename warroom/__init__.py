"""War Room: unified Sleeper/ESPN fantasy rankings with elimination-league tracking."""

__version__ = "1.0.0"
