"""Package member resolution."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from assets_packager.models import PackageDefinition, ResolvedPackage

GLOB_CHARS = ("*", "?", "[")
PREPROCESSED_SUFFIXES = (".scss", ".sass")


class ResolutionError(Exception):
    """Raised when a declared package member cannot be found."""
    pass


def _is_glob(member: str) -> bool:
    return any(ch in member for ch in GLOB_CHARS)


class PackageResolver:
    """Expand package definitions into ordered absolute source paths.

    Members are relative to ``source_dir``. A member without the type's
    extension gets it appended, so ``one`` and ``one.css`` name the same
    file. Glob members expand to their matches sorted by path and must match
    at least one file. Files under ``exclude_dir`` (the bundled output
    directory) never take part in a package.
    """

    def __init__(self, source_dir: Path, exclude_dir: Optional[Path] = None):
        self.source_dir = Path(source_dir)
        self.exclude_dir = Path(exclude_dir) if exclude_dir else None

    def _with_extension(self, member: str, extension: str) -> str:
        suffix = f".{extension}"
        return member if member.endswith(suffix) else member + suffix

    def _excluded(self, path: Path) -> bool:
        if self.exclude_dir is None:
            return False
        try:
            path.relative_to(self.exclude_dir)
        except ValueError:
            return False
        return True

    def _expand_glob(self, pattern: str, suffixes: Tuple[str, ...]) -> List[Path]:
        matches = [
            p for p in self.source_dir.glob(pattern)
            if p.is_file() and p.suffix in suffixes and not self._excluded(p.resolve())
        ]
        return sorted(p.resolve() for p in matches)

    def resolve(self, definition: PackageDefinition) -> ResolvedPackage:
        suffix = f".{definition.extension}"
        files: List[Path] = []
        for member in definition.members:
            if _is_glob(member):
                matches = self._expand_glob(member, (suffix,))
                if not matches:
                    raise ResolutionError(
                        f'Package "{definition.key}": pattern "{member}" matched no {suffix} files in {self.source_dir}'
                    )
                files.extend(matches)
                continue

            path = self.source_dir / self._with_extension(member, definition.extension)
            if not path.is_file():
                raise ResolutionError(f'Package "{definition.key}": "{path}" could not be found')
            files.append(path.resolve())

        return ResolvedPackage(definition=definition, files=files)

    def preprocess_sources(self, definition: PackageDefinition) -> List[Tuple[Path, Path]]:
        """List ``(source, compiled css)`` pairs for preprocessed stylesheet members.

        A member ``one`` is preprocessed when ``one.scss`` or ``one.sass``
        exists; the compiled stylesheet lands next to it as ``one.css``.
        """
        pairs: List[Tuple[Path, Path]] = []
        for member in definition.members:
            stem = member[:-4] if member.endswith(".css") else member
            if _is_glob(member):
                patterns = [stem] if stem.endswith("*") else [stem + s for s in PREPROCESSED_SUFFIXES]
                sources = set()
                for pattern in patterns:
                    sources.update(self._expand_glob(pattern, PREPROCESSED_SUFFIXES))
                # Underscore files are partials, only compiled through imports.
                pairs.extend((s, s.with_suffix(".css")) for s in sorted(sources) if not s.name.startswith("_"))
                continue

            for suffix in PREPROCESSED_SUFFIXES:
                source = self.source_dir / (stem + suffix)
                if source.is_file():
                    pairs.append((source.resolve(), source.resolve().with_suffix(".css")))
                    break
        return pairs
