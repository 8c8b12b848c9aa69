"""Feedback insights: analysis pipeline for free-text feedback."""

__version__ = "0.1.0"
