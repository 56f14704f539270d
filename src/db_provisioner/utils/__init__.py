"""Utility helpers: structured logging and the run transcript."""

from db_provisioner.utils.transcript import TranscriptTracker

__all__ = ["TranscriptTracker"]
