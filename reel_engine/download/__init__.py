"""Artifact transfer."""

from .download_manager import DownloadManager, ReferenceKind, classify_reference

__all__ = ["DownloadManager", "ReferenceKind", "classify_reference"]
