"""
Local file store for defect attachments.

Files are written under a single root directory with a random hex name
that keeps the original extension, so user-supplied names never reach
the filesystem.
"""

import logging
import os
import secrets

logger = logging.getLogger(__name__)


class LocalFileStore:
    def __init__(self, root):
        self.root = os.path.abspath(root)

    def _ensure_root(self):
        os.makedirs(self.root, exist_ok=True)

    def save(self, data: bytes, original_name: str) -> tuple[str, str]:
        """Write ``data`` and return ``(stored_filename, path)``."""
        self._ensure_root()
        ext = os.path.splitext(original_name or "")[1].lower()
        stored = f"{secrets.token_hex(16)}{ext}"
        path = os.path.join(self.root, stored)
        with open(path, "wb") as fh:
            fh.write(data)
        logger.debug("Stored %d bytes as %s", len(data), stored)
        return stored, path

    def exists(self, path: str) -> bool:
        return bool(path) and os.path.isfile(path)

    def delete(self, path: str) -> bool:
        """Remove a stored file; a missing file is not an error."""
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            logger.warning("Attachment file already missing: %s", path)
            return False
