"""Gridwatch - meter abnormality detection and staged alert escalation."""

__version__ = "0.1.0"
