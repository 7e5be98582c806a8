"""Bidirectional sync between local documents and issue-tracker items."""

__version__ = "0.1.0"
