"""Packaging run driver: asset types, selection, preprocessing and the cache lifecycle."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from assets_packager.bundler import Bundler
from assets_packager.cache_store import AssetStamper, CacheStore
from assets_packager.config_loader import build_settings, load_config, parse_packages
from assets_packager.models import (
    ASSET_TYPES,
    STYLESHEETS,
    PackageDefinition,
    PackageResult,
    PackagerSettings,
    RunSummary,
)
from assets_packager.resolver import PackageResolver, ResolutionError
from assets_packager.rewriter import AssetHosts, ReferenceRewriter
from assets_packager.transforms import TransformError, compile_to_css


class PackageSelector:
    """Pick the packages a run builds.

    Patterns are exact names or globs (``all.css``, ``*.js``,
    ``desktop/*``) matched case-sensitively against both ``name.ext`` and
    the bare package name. No pattern selects everything.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        self.patterns = [p.strip() for p in (patterns or []) if p and p.strip()]

    def matches(self, definition: PackageDefinition) -> bool:
        if not self.patterns:
            return True
        candidates = (f"{definition.name}.{definition.extension}", definition.name)
        return any(fnmatch.fnmatchcase(c, p) for p in self.patterns for c in candidates)


class PackagingPipeline:
    """Run every selected package, stylesheets first, then scripts."""

    def __init__(self, settings: PackagerSettings, packages: List[PackageDefinition]):
        self.settings = settings
        self.packages = packages
        self.selector = PackageSelector(settings.only)

    def selected(self, asset_type: str) -> List[PackageDefinition]:
        return [p for p in self.packages if p.asset_type == asset_type and self.selector.matches(p)]

    @staticmethod
    def _failed(definition: PackageDefinition, error: Any) -> PackageResult:
        logger.error(f"Package {definition.key} failed: {error}")
        return PackageResult(package_key=definition.key, status="failed", error=str(error))

    def preprocess(self, resolver: PackageResolver, packages: List[PackageDefinition]) -> Dict[str, str]:
        """Compile SCSS/Sass members of ``packages``; return compile errors by package key."""
        compiled: Dict[Path, Optional[str]] = {}
        failures: Dict[str, str] = {}
        for definition in packages:
            for source, target in resolver.preprocess_sources(definition):
                if source not in compiled:
                    try:
                        compile_to_css(source, target)
                        compiled[source] = None
                    except TransformError as e:
                        logger.error(f"Compiling {source} failed: {e.message}")
                        compiled[source] = str(e)
                if compiled[source] and definition.key not in failures:
                    failures[definition.key] = compiled[source]
        return failures

    def _build_package(
        self,
        definition: PackageDefinition,
        resolver: PackageResolver,
        bundler: Bundler,
        cache_store: CacheStore,
        compile_failures: Dict[str, str],
    ) -> PackageResult:
        if definition.key in compile_failures:
            return self._failed(definition, compile_failures[definition.key])

        try:
            resolved = resolver.resolve(definition)
            result = bundler.bundle(resolved)
        except (ResolutionError, TransformError, OSError) as e:
            return self._failed(definition, e)

        cache_store.update(definition.key, result.content_hash)
        return result

    def run(self, cache_store: CacheStore) -> RunSummary:
        settings = self.settings
        rewriter = ReferenceRewriter(
            settings.root_dir,
            asset_hosts=AssetHosts.parse(settings.asset_hosts),
            max_embed_size=settings.max_embed_size,
        )
        stamper = AssetStamper(settings.root_dir) if settings.cache_boost else None

        results: List[PackageResult] = []
        processed: List[str] = []
        for asset_type in ASSET_TYPES:
            packages = self.selected(asset_type)
            if not packages:
                logger.debug(f'Skipping type "{asset_type}": no package selected')
                continue

            logger.info(f'Processing type "{asset_type}"')
            processed.append(asset_type)
            resolver = PackageResolver(settings.source_dir(asset_type), exclude_dir=settings.bundled_dir(asset_type))
            compile_failures = self.preprocess(resolver, packages) if asset_type == STYLESHEETS else {}
            bundler = Bundler(settings, asset_type, rewriter, stamper)

            for definition in packages:
                results.append(self._build_package(definition, resolver, bundler, cache_store, compile_failures))

        return RunSummary(results=results, cache_store=cache_store, processed_types=processed)


def package_assets(settings: PackagerSettings, packages: List[PackageDefinition]) -> RunSummary:
    """Load the cache store, run the pipeline and persist the store once."""
    cache_store = CacheStore.load(settings.cache_path)
    summary = PackagingPipeline(settings, packages).run(cache_store)
    if summary.results:
        cache_store.save()
    return summary


def run_packager(
    config_path: Union[str, Path],
    root_dir: Union[str, Path] = ".",
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Package assets declared in ``config_path`` and summarise the run."""
    config = load_config(config_path)
    settings = build_settings(config, root_dir, config_path, overrides)
    packages = parse_packages(config)
    logger.debug(f"Packaging with settings {settings.as_dict()}")

    summary = package_assets(settings, packages)
    return {
        "status": "failed" if summary.failed else "completed",
        "exit_code": summary.exit_code,
        "processed_types": summary.processed_types,
        "cache_path": str(settings.cache_path),
        "packages": [
            {
                "key": r.package_key,
                "status": r.status,
                "hash": r.content_hash,
                "files": [str(a.output_path) for a in r.artifacts],
                "error": r.error,
            }
            for r in summary.results
        ],
        "failed": len(summary.failed),
        "succeeded": len(summary.succeeded),
    }
