# recipe_video/app/infra/storage/local_provider.py
from __future__ import annotations

import logging
import shutil
from pathlib import Path

from recipe_video.app.domain.errors import MediaStorageError
from recipe_video.app.infra.storage.base import MediaStore, StoredMedia

logger = logging.getLogger(__name__)


class LocalMediaStore(MediaStore):
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def persist(self, run_id: str, video_path: Path, thumbnail_path: Path) -> StoredMedia:
        target_video = self.root / f"{run_id}{video_path.suffix}"
        target_thumbnail = self.root / f"{run_id}{thumbnail_path.suffix}"

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.move(str(video_path), target_video)
            shutil.move(str(thumbnail_path), target_thumbnail)
        except OSError as os_error:
            target_video.unlink(missing_ok=True)
            target_thumbnail.unlink(missing_ok=True)
            raise MediaStorageError(run_id, str(os_error)) from os_error

        logger.info("media.stored run=%s video=%s", run_id, target_video)
        return StoredMedia(video_path=target_video, thumbnail_path=target_thumbnail)

    def delete(self, stored: StoredMedia) -> None:
        for path in (stored.video_path, stored.thumbnail_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as os_error:
                logger.warning("Failed to delete stored media %s: %s", path, os_error)
