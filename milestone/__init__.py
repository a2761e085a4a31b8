"""Milestone: daily standups, blockers and attendance for teams."""

__version__ = "1.0.0"
