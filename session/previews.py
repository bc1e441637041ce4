import os
import tempfile
from pathlib import Path

from config import settings
from utils.logging import get_logger

logger = get_logger("session.previews")

EXTENSIONS = {
    "image/webp": ".webp",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


class PreviewStore:
    """Publishes encoded variants as temporary files.

    A preview path is the externally visible handle for a variant; every
    path handed out must eventually be released.
    """

    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory or settings.preview_dir or tempfile.gettempdir())
        self._live: set[Path] = set()

    @property
    def live(self) -> frozenset[Path]:
        return frozenset(self._live)

    def create(self, data: bytes, media_type: str, prefix: str = "backdrop-") -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=prefix,
            suffix=EXTENSIONS.get(media_type, ".bin"),
            dir=self.directory,
        )
        with os.fdopen(fd, "wb") as f:
            f.write(data)

        path = Path(name)
        self._live.add(path)
        return path

    def release(self, path: Path) -> None:
        self._live.discard(path)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning(
                "Failed to remove preview file",
                extra={"context": {"path": str(path)}},
            )

    def close(self) -> None:
        """Release every outstanding preview."""
        for path in list(self._live):
            self.release(path)
