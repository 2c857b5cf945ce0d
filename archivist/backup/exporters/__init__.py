"""Artifact exporters for backup/restore operations."""

from .database_exporter import DatabaseArchiver
from .files_exporter import FileArchiver

__all__ = ["DatabaseArchiver", "FileArchiver"]
