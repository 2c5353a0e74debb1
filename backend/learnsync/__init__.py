"""Learner progress tracking with local/remote profile sync."""

__version__ = "0.1.0"
