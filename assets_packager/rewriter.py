"""Rewriting of ``url(...)`` references inside bundled stylesheets."""

from __future__ import annotations

import base64
import hashlib
import mimetypes
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

URL_RE = re.compile(r"""url\(\s*(['"]?)([^'")]+?)\1\s*\)""", re.IGNORECASE)
HOST_RANGE_RE = re.compile(r"^(?P<prefix>[^\[]*)\[(?P<slots>[^\]]+)\](?P<suffix>.*)$")
EXTERNAL_PREFIXES = ("data:", "http:", "https:", "//", "#", "about:", "mailto:")
EMBED_FLAG = "embed"


def _split_query(url: str) -> Tuple[str, str]:
    cut = len(url)
    for mark in ("?", "#"):
        index = url.find(mark)
        if index != -1:
            cut = min(cut, index)
    return url[:cut], url[cut:]


def _strip_embed_flag(suffix: str) -> Tuple[str, bool]:
    """Drop the ``embed`` flag from a ``?query#fragment`` suffix."""
    if not suffix.startswith("?"):
        return suffix, False
    query, _, fragment = suffix[1:].partition("#")
    params = [p for p in query.split("&") if p]
    if EMBED_FLAG not in params:
        return suffix, False
    remaining = [p for p in params if p != EMBED_FLAG]
    rebuilt = ("?" + "&".join(remaining)) if remaining else ""
    if fragment:
        rebuilt += "#" + fragment
    return rebuilt, True


class AssetHosts:
    """Hostnames that referenced assets are spread over.

    ``assets[0,1].example.com`` and ``assets[0-1].example.com`` both expand
    to ``assets0.example.com`` and ``assets1.example.com``; a comma
    separated list of plain hostnames is accepted too.
    """

    def __init__(self, hosts: Optional[List[str]] = None):
        self.hosts = list(hosts or [])

    def __len__(self) -> int:
        return len(self.hosts)

    @classmethod
    def parse(cls, pattern: Optional[str]) -> "AssetHosts":
        if not pattern or not pattern.strip():
            return cls([])

        pattern = pattern.strip()
        match = HOST_RANGE_RE.match(pattern)
        if match:
            hosts = []
            for slot in match.group("slots").split(","):
                slot = slot.strip()
                if "-" in slot:
                    first, _, last = slot.partition("-")
                    try:
                        start, end = int(first), int(last)
                    except ValueError as e:
                        raise ValueError(f'Invalid host range "{slot}" in "{pattern}"') from e
                    if end < start:
                        raise ValueError(f'Invalid host range "{slot}" in "{pattern}"')
                    values = [str(v) for v in range(start, end + 1)]
                elif slot:
                    values = [slot]
                else:
                    raise ValueError(f'Empty host slot in "{pattern}"')
                hosts.extend(match.group("prefix") + v + match.group("suffix") for v in values)
        else:
            hosts = [h.strip() for h in pattern.split(",") if h.strip()]

        cleaned = []
        for host in hosts:
            host = re.sub(r"^(https?:)?//", "", host).rstrip("/")
            if not host:
                raise ValueError(f'Invalid asset host pattern "{pattern}"')
            cleaned.append(host)
        return cls(cleaned)

    def host_for(self, path: str) -> Optional[str]:
        """Pick a host from the asset path alone, so the choice is stable across runs."""
        if not self.hosts:
            return None
        slot = int(hashlib.md5(path.encode("utf-8")).hexdigest()[:8], 16) % len(self.hosts)
        return self.hosts[slot]


class ReferenceRewriter:
    """Rebase, stamp, host-rotate and embed stylesheet references.

    ``rebase`` runs per source file and turns relative references into
    root-absolute ones. ``rewrite`` runs once per output variant on the
    concatenated, rebased content; its output is never rewritten again.
    """

    def __init__(self, root_dir: Path, asset_hosts: Optional[AssetHosts] = None, max_embed_size: int = 32 * 1024):
        self.root_dir = Path(root_dir).resolve()
        self.asset_hosts = asset_hosts or AssetHosts()
        self.max_embed_size = max_embed_size
        self._data_uris: Dict[str, Optional[str]] = {}

    @staticmethod
    def _is_external(url: str) -> bool:
        return url.lower().startswith(EXTERNAL_PREFIXES)

    def rebase(self, content: str, source_path: Path) -> str:
        source_dir = Path(source_path).resolve().parent

        def replace(match):
            quote, url = match.group(1), match.group(2).strip()
            if not url or self._is_external(url) or url.startswith("/"):
                return match.group(0)
            path, suffix = _split_query(url)
            target = Path(os.path.normpath(source_dir / path))
            try:
                relative = target.relative_to(self.root_dir)
            except ValueError:
                logger.warning(f"Reference {url} in {source_path} points outside {self.root_dir}")
                return match.group(0)
            return f"url({quote}/{relative.as_posix()}{suffix}{quote})"

        return URL_RE.sub(replace, content)

    def local_references(self, content: str) -> List[str]:
        """Root-absolute asset paths referenced by ``content``, in first-seen order."""
        seen: List[str] = []
        for match in URL_RE.finditer(content):
            url = match.group(2).strip()
            if not url.startswith("/") or self._is_external(url):
                continue
            path, _ = _split_query(url)
            if path not in seen:
                seen.append(path)
        return seen

    def _data_uri(self, path: str) -> Optional[str]:
        if path in self._data_uris:
            return self._data_uris[path]

        uri = None
        asset = self.root_dir / path.lstrip("/")
        if not asset.is_file():
            logger.warning(f"Cannot embed {path}: file not found")
        elif asset.stat().st_size > self.max_embed_size:
            logger.warning(f"Not embedding {path}: larger than {self.max_embed_size} bytes")
        else:
            mime = mimetypes.guess_type(asset.name)[0] or "application/octet-stream"
            encoded = base64.b64encode(asset.read_bytes()).decode("ascii")
            uri = f"data:{mime};base64,{encoded}"
        self._data_uris[path] = uri
        return uri

    def rewrite(self, content: str, renames: Optional[Dict[str, str]] = None, embed: bool = True) -> str:
        """Produce one output variant.

        Args:
            content: Concatenated, rebased stylesheet content.
            renames: Original to stamped root-absolute paths.
            embed: Inline ``?embed`` references as data URIs when True;
                otherwise keep them as plain (stamped, host-rotated) links.
        """
        renames = renames or {}

        def replace(match):
            quote, url = match.group(1), match.group(2).strip()
            if self._is_external(url) or not url.startswith("/"):
                return match.group(0)

            path, suffix = _split_query(url)
            suffix, wants_embed = _strip_embed_flag(suffix)
            if wants_embed and embed:
                data_uri = self._data_uri(path)
                if data_uri:
                    return f"url({data_uri})"

            target = renames.get(path, path)
            host = self.asset_hosts.host_for(path)
            if host:
                target = f"//{host}{target}"
            return f"url({quote}{target}{suffix}{quote})"

        return URL_RE.sub(replace, content)
