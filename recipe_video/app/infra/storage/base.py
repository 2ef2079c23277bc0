# recipe_video/app/infra/storage/base.py
"""
Abstract base class for the permanent media store.
The pipeline hands the canonical video and the thumbnail to this collaborator
before the run directory is removed.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class StoredMedia:
    video_path: Path
    thumbnail_path: Path


class MediaStore(ABC):
    """
    Abstract interface for permanent media storage.

    Implementations:
    - LocalMediaStore: a directory on the local filesystem
    """

    @abstractmethod
    def persist(self, run_id: str, video_path: Path, thumbnail_path: Path) -> StoredMedia:
        """
        Take ownership of a run's permanent artifacts.

        Args:
            run_id: Identifier of the run producing the files
            video_path: Canonical video inside the run directory
            thumbnail_path: Thumbnail inside the run directory

        Returns:
            The permanent locations of both files

        Raises:
            MediaStorageError: If the files could not be stored
        """
        pass

    @abstractmethod
    def delete(self, stored: StoredMedia) -> None:
        """Remove previously stored media."""
        pass
