"""Cache stamp sidecar and content-hash stamping of static assets."""

from __future__ import annotations

import hashlib
import json
import os
import posixpath
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from assets_packager.models import AssetRenameRecord

STAMPED_STEM_RE = re.compile(r"-([0-9a-f]{32})$")


class CacheStoreError(Exception):
    """Raised when the cache sidecar cannot be read or does not hold a JSON object."""
    pass


def content_hash(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _read_sidecar(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw) if raw.strip() else {}
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CacheStoreError(f'Cache file "{path}" could not be read: {e}') from e
    if not isinstance(data, dict):
        raise CacheStoreError(f'Cache file "{path}" does not contain a JSON object')
    return data


def write_atomic(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write ``data`` to a temporary sibling, then move it over ``path``."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class CacheStore:
    """Package key to content hash mapping, persisted as a JSON sidecar.

    The store is loaded once per run and saved once at the end. ``save``
    merges into whatever the sidecar holds at that moment and only overlays
    the keys updated during this run, so entries for packages that were not
    rebuilt (and keys this tool does not know about) survive untouched.
    """

    def __init__(self, path: Path, entries: Optional[Dict[str, Any]] = None):
        self.path = Path(path)
        self.entries: Dict[str, Any] = dict(entries or {})
        self.updated: Dict[str, str] = {}

    @classmethod
    def load(cls, path: Path) -> "CacheStore":
        path = Path(path)
        try:
            entries = _read_sidecar(path)
        except CacheStoreError as e:
            logger.warning(f"{e}; starting with an empty cache")
            entries = {}
        return cls(path, entries)

    def get(self, key: str) -> Optional[Any]:
        return self.entries.get(key)

    def update(self, key: str, value: str) -> None:
        self.entries[key] = value
        self.updated[key] = value

    def save(self) -> Path:
        try:
            current = _read_sidecar(self.path)
        except CacheStoreError as e:
            logger.warning(f"{e}; rewriting it from the loaded entries")
            current = {k: v for k, v in self.entries.items() if k not in self.updated}
        current.update(self.updated)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(current, ensure_ascii=False, indent=2) + "\n"
        write_atomic(self.path, payload.encode("utf-8"))
        self.entries = current
        logger.debug(f"Saved {len(self.updated)} cache stamp(s) to {self.path}")
        return self.path


class AssetStamper:
    """Give static assets a content-hash stamped copy (``name-<md5>.ext``).

    The original file is left in place, which keeps reruns idempotent: the
    sources still reference ``one.png`` and stamping it again produces the
    same ``one-<md5>.png``. Results are memoised for the run.
    """

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)
        self._records: Dict[str, Optional[AssetRenameRecord]] = {}

    def stamp(self, url_path: str) -> Optional[AssetRenameRecord]:
        """Stamp the asset at root-absolute ``url_path``, e.g. ``/images/one.png``."""
        if url_path in self._records:
            return self._records[url_path]

        record = self._stamp(url_path)
        self._records[url_path] = record
        return record

    def _stamp(self, url_path: str) -> Optional[AssetRenameRecord]:
        asset = self.root_dir / url_path.lstrip("/")
        if not asset.is_file():
            logger.warning(f"Referenced asset {url_path} not found under {self.root_dir}")
            return None

        data = asset.read_bytes()
        digest = content_hash(data)
        existing = STAMPED_STEM_RE.search(asset.stem)
        if existing and existing.group(1) == digest:
            return None

        stamped = asset.with_name(f"{asset.stem}-{digest}{asset.suffix}")
        if not stamped.is_file() or stamped.read_bytes() != data:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{stamped.name}.", dir=str(asset.parent))
            os.close(fd)
            try:
                shutil.copy2(asset, tmp_name)
                os.replace(tmp_name, stamped)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            logger.debug(f"Stamped {url_path} -> {stamped.name}")

        stamped_path = posixpath.join(posixpath.dirname(url_path), stamped.name)
        return AssetRenameRecord(original=url_path, stamped=stamped_path)
