"""Append-only JSON-lines journal of fills, rejections, cancellations and revaluations."""

from journal.writer import JournalWriter

__all__ = ["JournalWriter"]
