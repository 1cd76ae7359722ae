"""
Persistence Manager Module

Write-through mirror of the object store on disk: one JSON record per key
under a root directory.

File naming:
    The file name is the percent-encoded key plus ``.json``. Keys made of
    letters, digits and ``_.-~`` keep their name (``score`` ->
    ``score.json``); every other byte, ``/`` and ``%`` included, is
    escaped (``a/b`` -> ``a%2Fb.json``). The encoding is reversible, so the
    key -> file mapping is 1:1 and a key can never name a path outside the
    root.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, unquote

from ..config.settings import settings

logger = logging.getLogger(__name__)


class PersistenceManager:
    """
    Maps keys to files under ``root`` and reads/writes their values.

    ``persist()`` is best-effort: failures are logged and reported as a
    False return value, never raised, so the caller's in-memory update
    stays authoritative.

    Attributes:
        root: Directory holding the records
        suffix: File extension of a record
    """

    def __init__(self, root: Union[str, Path] = None, suffix: str = None):
        self.root = Path(root if root is not None else settings.CACHE_DIR)
        self.suffix = suffix if suffix is not None else settings.RECORD_SUFFIX
        self._writes = 0
        self._failures = 0

    def ensure_root(self) -> Path:
        """Create the root directory if it does not exist yet."""
        if not self.root.is_dir():
            self.root.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created cache directory: {self.root}")
        return self.root

    def filename_for(self, key: str) -> str:
        """
        Return the record file name for a key.

        Raises:
            ValueError: If key is not a non-empty string
        """
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")
        return quote(key, safe="") + self.suffix

    def path_for(self, key: str) -> Path:
        """Return the full record path for a key."""
        return self.root / self.filename_for(key)

    def key_for(self, filename: str) -> Optional[str]:
        """
        Return the key stored in ``filename``.

        Returns None for files that are not records, and for names that
        are not the canonical encoding of their key (e.g. ``a b.json``
        instead of ``a%20b.json``), since those would alias another key.
        """
        if not filename.endswith(self.suffix):
            return None
        stem = filename[: -len(self.suffix)]
        if not stem:
            return None
        key = unquote(stem)
        if quote(key, safe="") != stem:
            return None
        return key

    def load(self) -> List[Tuple[str, Any]]:
        """
        Read every persisted record under the root.

        A record that cannot be read or decoded is skipped with a warning;
        the rest of the load proceeds. A missing root is created.

        Returns:
            (key, value) pairs sorted by file name
        """
        self.ensure_root()

        entries: List[Tuple[str, Any]] = []
        for path in sorted(self.root.glob(f"*{self.suffix}")):
            if not path.is_file():
                continue
            key = self.key_for(path.name)
            if key is None:
                logger.warning(f"Skipping {path.name}: not a canonical record name")
                continue
            try:
                with path.open("r", encoding="utf-8") as fp:
                    value = json.load(fp)
            except (OSError, ValueError, RecursionError) as exc:
                logger.warning(f"Failed to load {path.name}: {exc}")
                continue
            entries.append((key, value))
            logger.debug(f"Loaded persisted data for key: {key}")

        logger.info(f"Loaded {len(entries)} persisted keys from {self.root}")
        return entries

    def persist(self, key: str, value: Any) -> bool:
        """
        Write the record for ``key``, fully replacing any prior content.

        The value is written to a temporary file in the root and moved over
        the record with ``os.replace``, so a reader never sees a partially
        written record. No fsync is issued.

        Args:
            key: The key being written
            value: JSON-compatible value

        Returns:
            True if the record was written, False on any failure
        """
        tmp_path = None
        try:
            path = self.path_for(key)
            self.ensure_root()
            tmp_fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".", suffix=".tmp")
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as fp:
                json.dump(value, fp, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
            tmp_path = None
        except (OSError, TypeError, ValueError, RecursionError) as exc:
            self._failures += 1
            logger.error(f"Failed to persist key {key!r}: {exc}")
            return False
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        self._writes += 1
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get persistence counters."""
        return {
            "root": str(self.root),
            "writes": self._writes,
            "failures": self._failures,
        }
