"""Data model shared by the packaging pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

STYLESHEETS = "stylesheets"
JAVASCRIPTS = "javascripts"

# Processing order is part of the observable contract (progress output).
ASSET_TYPES: Tuple[str, ...] = (STYLESHEETS, JAVASCRIPTS)

EXTENSIONS = {
    STYLESHEETS: "css",
    JAVASCRIPTS: "js",
}

EMBEDDED = "embedded"
NOEMBED = "noembed"


@dataclass(frozen=True)
class PackageDefinition:
    name: str
    asset_type: str
    members: Tuple[str, ...]

    @property
    def key(self) -> str:
        return f"{self.asset_type}/{self.name}"

    @property
    def extension(self) -> str:
        return EXTENSIONS[self.asset_type]


@dataclass
class ResolvedPackage:
    definition: PackageDefinition
    files: List[Path]


@dataclass
class TransformResult:
    source_path: Path
    content: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AssetRenameRecord:
    original: str
    stamped: str


@dataclass
class BundleArtifact:
    package_key: str
    variant: str
    compressed: bool
    content: bytes
    content_hash: str
    output_path: Path


@dataclass
class PackageResult:
    package_key: str
    status: str
    artifacts: List[BundleArtifact] = field(default_factory=list)
    renames: List[AssetRenameRecord] = field(default_factory=list)
    content_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunSummary:
    results: List[PackageResult]
    cache_store: Any
    processed_types: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[PackageResult]:
        return [r for r in self.results if r.status == "failed"]

    @property
    def succeeded(self) -> List[PackageResult]:
        return [r for r in self.results if r.status == "completed"]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


@dataclass
class PackagerSettings:
    """Global knobs for one packaging run.

    Relative directories are resolved against ``root_dir``. Bundled
    directories default to ``<type dir>/bundled``.
    """

    root_dir: Path
    config_path: Path
    styles_path: str = STYLESHEETS
    scripts_path: str = JAVASCRIPTS
    styles_bundled: Optional[str] = None
    scripts_bundled: Optional[str] = None
    gzip: bool = False
    noembed: bool = False
    cache_boost: bool = False
    asset_hosts: Optional[str] = None
    line_break: Optional[int] = None
    minify: bool = True
    indent_width: int = 4
    max_embed_size: int = 32 * 1024
    only: List[str] = field(default_factory=list)

    def source_dir(self, asset_type: str) -> Path:
        relative = self.styles_path if asset_type == STYLESHEETS else self.scripts_path
        return (self.root_dir / relative).resolve()

    def bundled_dir(self, asset_type: str) -> Path:
        custom = self.styles_bundled if asset_type == STYLESHEETS else self.scripts_bundled
        if custom:
            return (self.root_dir / custom).resolve()
        return self.source_dir(asset_type) / "bundled"

    @property
    def cache_path(self) -> Path:
        return self.config_path.parent / f".{self.config_path.name}.json"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "root_dir": str(self.root_dir),
            "config_path": str(self.config_path),
            "gzip": self.gzip,
            "noembed": self.noembed,
            "cache_boost": self.cache_boost,
            "asset_hosts": self.asset_hosts,
            "line_break": self.line_break,
            "minify": self.minify,
            "only": list(self.only),
        }
