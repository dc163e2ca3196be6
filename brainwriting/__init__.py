"""Brainwriting: turn-based shared-sheet coordination for team ideation."""

__version__ = "0.1.0"
