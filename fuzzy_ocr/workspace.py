"""
Per-message temporary workspace.

Owns every file written while one message is scanned.  Retention on
``finish()`` follows ``keep_bad_images``:

  0  always delete
  1  keep when at least one image chain failed (timeout / tool error)
  2  always keep
"""

import logging
import os
import shutil
import tempfile

log = logging.getLogger(__name__)


class TempWorkspace:
    def __init__(self, path: str, keep_policy: int = 0):
        self.path = path
        self.keep_policy = keep_policy
        self.errors = 0

    @classmethod
    def create(cls, keep_policy: int = 0, base_dir: str | None = None) -> "TempWorkspace":
        if base_dir:
            os.makedirs(base_dir, exist_ok=True)
        path = tempfile.mkdtemp(prefix="fuzzyocr_", dir=base_dir)
        log.debug("Created workspace %s", path)
        return cls(path, keep_policy)

    @property
    def exists(self) -> bool:
        return os.path.isdir(self.path)

    def path_for(self, name: str) -> str:
        return os.path.join(self.path, name)

    def unique_path(self, name: str) -> str:
        """Return a free path for *name*, prefixing A., B., ... on collision."""
        candidate = self.path_for(name)
        unique = 0
        while os.path.exists(candidate):
            candidate = self.path_for(f"{chr(65 + unique)}.{name}")
            unique += 1
        return candidate

    def write(self, name: str, data: bytes) -> str:
        dest = self.unique_path(name)
        with open(dest, "wb") as f:
            f.write(data)
        log.debug("Saved: %s", dest)
        return dest

    def mark_error(self):
        self.errors += 1

    def should_keep(self) -> bool:
        if self.keep_policy >= 2:
            return True
        return self.keep_policy == 1 and self.errors > 0

    def finish(self):
        if self.should_keep():
            log.info("Keeping workspace %s (%d bad images)", self.path, self.errors)
            return
        self.destroy()

    def destroy(self):
        shutil.rmtree(self.path, ignore_errors=True)
