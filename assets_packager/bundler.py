"""Per-package bundling: transform, concatenate, stamp, rewrite, hash, compress, write."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

from assets_packager.cache_store import AssetStamper, content_hash
from assets_packager.models import (
    EMBEDDED,
    NOEMBED,
    STYLESHEETS,
    AssetRenameRecord,
    BundleArtifact,
    PackageDefinition,
    PackageResult,
    PackagerSettings,
    ResolvedPackage,
    TransformResult,
)
from assets_packager.rewriter import ReferenceRewriter
from assets_packager.script_layout import concatenate_scripts, join_var_statements, wrap_lines
from assets_packager.transforms import (
    TransformError,
    compress,
    minify_stylesheet,
    process_script,
    read_source,
)

DIR_MODE = 0o755
FILE_MODE = 0o644


class Bundler:
    """Build and write the artifacts of one package at a time.

    Stage order is fixed: every source file is transformed first (a single
    failure aborts the package), then outputs are concatenated in resolved
    order. For stylesheets, referenced assets are stamped before the
    reference rewriter produces the variants, so bundled URLs already point
    at stamped names. The embedded variant's final bytes give the package
    hash, which names the files when cache boosting is on. All files of a
    package are staged next to their targets and moved into place together.
    """

    def __init__(
        self,
        settings: PackagerSettings,
        asset_type: str,
        rewriter: ReferenceRewriter,
        stamper: Optional[AssetStamper] = None,
    ):
        self.settings = settings
        self.asset_type = asset_type
        self.output_dir = settings.bundled_dir(asset_type)
        self.rewriter = rewriter
        self.stamper = stamper

    def _transform_file(self, path: Path) -> str:
        source = read_source(path)
        if self.asset_type == STYLESHEETS:
            return minify_stylesheet(self.rewriter.rebase(source, path))
        return process_script(source, minify=self.settings.minify, indent_width=self.settings.indent_width)

    def transform(self, resolved: ResolvedPackage) -> List[TransformResult]:
        """Transform member files in order, stopping at the first failure."""
        results: List[TransformResult] = []
        for path in resolved.files:
            try:
                results.append(TransformResult(source_path=path, content=self._transform_file(path)))
            except TransformError as e:
                results.append(TransformResult(source_path=path, error=e.message))
                break
        return results

    def _concatenate(self, chunks: List[str]) -> str:
        if self.asset_type == STYLESHEETS:
            return "".join(chunks)

        separator = "" if self.settings.minify else "\n\n"
        script = concatenate_scripts(chunks, separator=separator)
        if self.settings.minify:
            script = join_var_statements(script)
        if self.settings.line_break:
            script = wrap_lines(script, self.settings.line_break)
        return script

    def _stamp_references(self, content: str) -> List[AssetRenameRecord]:
        if not (self.settings.cache_boost and self.stamper):
            return []
        records = []
        for path in self.rewriter.local_references(content):
            record = self.stamper.stamp(path)
            if record is not None:
                records.append(record)
        return records

    def build_variants(self, content: str, renames: Dict[str, str]) -> Dict[str, str]:
        if self.asset_type != STYLESHEETS:
            return {EMBEDDED: content}
        variants = {EMBEDDED: self.rewriter.rewrite(content, renames, embed=True)}
        if self.settings.noembed:
            variants[NOEMBED] = self.rewriter.rewrite(content, renames, embed=False)
        return variants

    def output_name(self, definition: PackageDefinition, digest: str, variant: str = EMBEDDED) -> str:
        name = definition.name
        if self.settings.cache_boost:
            name += f"-{digest}"
        if variant == NOEMBED:
            name += "-noembed"
        return f"{name}.{definition.extension}"

    def plan_artifacts(self, definition: PackageDefinition, variants: Dict[str, str]) -> Tuple[str, List[BundleArtifact]]:
        embedded = variants[EMBEDDED].encode("utf-8")
        digest = content_hash(embedded)
        gzip_on = self.settings.gzip

        artifacts = []
        path = self.output_dir / self.output_name(definition, digest)
        artifacts.append(BundleArtifact(definition.key, EMBEDDED, False, embedded, digest, path))
        if gzip_on:
            artifacts.append(
                BundleArtifact(definition.key, EMBEDDED, True, compress(embedded), digest, path.with_name(path.name + ".gz"))
            )

        if NOEMBED in variants:
            # Only the compressed no-embed file is shipped when gzip is on.
            data = variants[NOEMBED].encode("utf-8")
            path = self.output_dir / self.output_name(definition, digest, NOEMBED)
            if gzip_on:
                artifacts.append(
                    BundleArtifact(definition.key, NOEMBED, True, compress(data), digest, path.with_name(path.name + ".gz"))
                )
            else:
                artifacts.append(BundleArtifact(definition.key, NOEMBED, False, data, digest, path))

        return digest, artifacts

    @staticmethod
    def _ensure_dir(path: Path) -> None:
        missing = []
        current = path
        while not current.exists():
            missing.append(current)
            current = current.parent
        for directory in reversed(missing):
            directory.mkdir(exist_ok=True)
            os.chmod(directory, DIR_MODE)

    def write(self, artifacts: List[BundleArtifact]) -> None:
        """Stage every file, then move them all into place."""
        staged = []
        try:
            for artifact in artifacts:
                directory = artifact.output_path.parent
                self._ensure_dir(directory)
                fd, tmp_name = tempfile.mkstemp(prefix=f".{artifact.output_path.name}.", suffix=".tmp", dir=str(directory))
                staged.append((tmp_name, artifact.output_path))
                with os.fdopen(fd, "wb") as f:
                    f.write(artifact.content)
                os.chmod(tmp_name, FILE_MODE)
            for tmp_name, target in staged:
                os.replace(tmp_name, target)
        except BaseException:
            for tmp_name, _ in staged:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
            raise

    def remove_stale(self, definition: PackageDefinition, artifacts: List[BundleArtifact]) -> List[Path]:
        """Delete outputs of this package left over from runs with other flags."""
        target = self.output_dir / f"{definition.name}.{definition.extension}"
        directory = target.parent
        if not directory.is_dir():
            return []

        stem = Path(definition.name).name
        pattern = re.compile(
            rf"^{re.escape(stem)}(-[0-9a-f]{{32}})?(-noembed)?\.{re.escape(definition.extension)}(\.gz)?$"
        )
        keep = {a.output_path.name for a in artifacts}
        removed = []
        for candidate in sorted(directory.iterdir()):
            if candidate.is_file() and pattern.match(candidate.name) and candidate.name not in keep:
                candidate.unlink()
                removed.append(candidate)
                logger.debug(f"Removed stale {candidate.name}")
        return removed

    def bundle(self, resolved: ResolvedPackage) -> PackageResult:
        definition = resolved.definition

        results = self.transform(resolved)
        failed = next((r for r in results if not r.ok), None)
        if failed is not None:
            raise TransformError(failed.source_path, failed.error)

        content = self._concatenate([r.content for r in results])
        records = self._stamp_references(content) if self.asset_type == STYLESHEETS else []
        variants = self.build_variants(content, {r.original: r.stamped for r in records})
        digest, artifacts = self.plan_artifacts(definition, variants)

        self.write(artifacts)
        self.remove_stale(definition, artifacts)
        for artifact in artifacts:
            logger.info(f"Bundled {definition.key} -> {os.path.relpath(artifact.output_path, self.settings.root_dir)}")

        return PackageResult(
            package_key=definition.key,
            status="completed",
            artifacts=artifacts,
            renames=records,
            content_hash=digest,
        )
