"""Run code agent CLIs and normalize their output."""

__version__ = "0.1.0"
