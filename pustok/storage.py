import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional, Union

from .errors import AssetWriteError
from .uploads import Upload

logger = logging.getLogger(__name__)


class AssetStore:
    """Uploaded files kept under ``root/<folder>/<generated name>``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def ensure_folder(self, folder: str) -> Path:
        path = self.root / folder
        path.mkdir(parents=True, exist_ok=True)
        return path

    def path_for(self, folder: str, ref: str) -> Path:
        # only the base name of a reference is honoured
        return self.root / folder / Path(ref).name

    def exists(self, folder: str, ref: Optional[str]) -> bool:
        return bool(ref) and self.path_for(folder, ref).is_file()

    def save(self, upload: Upload, folder: str) -> str:
        name = f"{uuid.uuid4()}{upload.extension}"
        try:
            target = self.ensure_folder(folder) / name
            with target.open("xb") as out:
                shutil.copyfileobj(upload.stream, out)
        except OSError as exc:
            logger.error("asset.save_failed", extra={"folder": folder, "asset": name, "error": str(exc)})
            raise AssetWriteError("File could not be saved") from exc
        logger.info("asset.saved", extra={"folder": folder, "asset": name, "bytes": upload.length})
        return name

    def delete(self, folder: str, ref: Optional[str]) -> bool:
        """Best-effort removal; returns True when a file was removed."""
        if not ref:
            return False
        path = self.path_for(folder, ref)
        try:
            if not path.exists():
                return False
            path.unlink()
        except OSError as exc:
            logger.warning("asset.delete_failed", extra={"folder": folder, "asset": ref, "error": str(exc)})
            return False
        logger.info("asset.deleted", extra={"folder": folder, "asset": ref})
        return True
