"""Persistence collaborator."""

from .store import JsonFileStore

__all__ = ["JsonFileStore"]
