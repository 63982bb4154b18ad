"""Workflow persistence and automation APIs."""

from .store import SQLiteWorkflowStore

__all__ = ["SQLiteWorkflowStore"]
