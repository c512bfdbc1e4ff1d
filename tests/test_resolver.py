"""Tests for package member resolution."""

import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from assets_packager.models import JAVASCRIPTS, STYLESHEETS, PackageDefinition
from assets_packager.resolver import PackageResolver, ResolutionError


class TestPackageResolver(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.source_dir = Path(self.tmp_dir.name).resolve() / "stylesheets"
        for name in ("one.css", "two.css", "vendor/b.css", "vendor/a.css", "vendor/notes.txt", "bundled/all.css"):
            path = self.source_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("a{}", encoding="utf-8")
        self.resolver = PackageResolver(self.source_dir, exclude_dir=self.source_dir / "bundled")

    def tearDown(self):
        self.tmp_dir.cleanup()

    def _definition(self, *members, asset_type=STYLESHEETS):
        return PackageDefinition(name="all", asset_type=asset_type, members=tuple(members))

    def test_keeps_declaration_order(self):
        resolved = self.resolver.resolve(self._definition("two", "one.css"))
        self.assertEqual(resolved.files, [self.source_dir / "two.css", self.source_dir / "one.css"])

    def test_glob_members_expand_sorted(self):
        resolved = self.resolver.resolve(self._definition("one", "vendor/*"))
        self.assertEqual(
            resolved.files,
            [self.source_dir / "one.css", self.source_dir / "vendor" / "a.css", self.source_dir / "vendor" / "b.css"],
        )

    def test_glob_skips_bundled_output(self):
        resolved = self.resolver.resolve(self._definition("**/*.css"))
        self.assertNotIn(self.source_dir / "bundled" / "all.css", resolved.files)
        self.assertEqual(len(resolved.files), 4)

    def test_missing_member_raises(self):
        with self.assertRaises(ResolutionError) as ctx:
            self.resolver.resolve(self._definition("one", "three"))
        self.assertIn("three.css", str(ctx.exception))
        self.assertIn("stylesheets/all", str(ctx.exception))

    def test_glob_without_matches_raises(self):
        with self.assertRaises(ResolutionError):
            self.resolver.resolve(self._definition("missing/*"))

    def test_script_members_use_js_extension(self):
        (self.source_dir / "app.js").write_text("a();", encoding="utf-8")
        resolved = self.resolver.resolve(self._definition("app", asset_type=JAVASCRIPTS))
        self.assertEqual(resolved.files, [self.source_dir / "app.js"])

    def test_preprocess_sources(self):
        (self.source_dir / "three.scss").write_text("a{}", encoding="utf-8")
        (self.source_dir / "vendor" / "c.scss").write_text("a{}", encoding="utf-8")
        (self.source_dir / "vendor" / "_partial.scss").write_text("a{}", encoding="utf-8")

        pairs = self.resolver.preprocess_sources(self._definition("one", "three", "vendor/*"))
        self.assertEqual(
            pairs,
            [
                (self.source_dir / "three.scss", self.source_dir / "three.css"),
                (self.source_dir / "vendor" / "c.scss", self.source_dir / "vendor" / "c.css"),
            ],
        )


if __name__ == "__main__":
    unittest.main()
