"""
assets.py - Uploaded image files for catalog records

Images live flat inside the upload directory and are served from `/uploads`.
A product only stores the filename; this module owns the file itself.
Removing a file is best-effort: the catalog row is already committed when
reclaim runs, so failures are logged and never raised.
"""

import os
import shutil
import time
from typing import BinaryIO, Callable, Optional

from logging_config import get_logger

log = get_logger(__name__)


def stored_filename(original_name: str, now_ms: int) -> str:
    """`<epoch milliseconds>-<original basename>`, the naming used for every stored upload."""
    # Browsers on Windows may send a full path
    base = os.path.basename(original_name.replace("\\", "/"))
    return f"{now_ms}-{base}"


class AssetManager:
    def __init__(self, upload_dir: str, clock_ms: Optional[Callable[[], int]] = None):
        self.upload_dir = upload_dir
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        os.makedirs(self.upload_dir, exist_ok=True)

    def path_for(self, filename: str) -> str:
        return os.path.join(self.upload_dir, filename)

    def save(self, original_name: str, stream: BinaryIO) -> str:
        """
        Writes an uploaded stream into the upload directory.

        Args:
            original_name (str): Filename as sent by the client.
            stream (BinaryIO): Readable file object with the image bytes.

        Returns:
            str: The stored filename (not the full path).
        """
        filename = stored_filename(original_name, self._clock_ms())
        with open(self.path_for(filename), "wb") as out:
            shutil.copyfileobj(stream, out)
        log.info("Stored upload %s", filename)
        return filename

    def reclaim(self, filename: Optional[str]):
        """Deletes a file no longer referenced by any product. Never raises."""
        if not filename:
            return
        if os.path.basename(filename) != filename or filename in (".", ".."):
            log.error("Refusing to reclaim suspicious filename %r", filename)
            return

        target = self.path_for(filename)
        try:
            os.remove(target)
            log.info("Reclaimed image %s", filename)
        except FileNotFoundError:
            log.warning("Image %s already gone, nothing to reclaim", filename)
        except OSError as e:
            log.error("Failed to delete image %s: %s", filename, e)
