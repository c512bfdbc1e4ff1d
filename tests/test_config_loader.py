"""Tests for configuration loading and settings assembly."""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from assets_packager.config_loader import (
    ConfigurationError,
    build_settings,
    load_config,
    parse_packages,
)
from assets_packager.models import JAVASCRIPTS, STYLESHEETS


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp_dir.name)
        self.config_path = self.root / "assets.yml"

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_missing_config(self):
        missing = os.path.join("data", "fake.yml")
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(missing)
        self.assertIn(f'{missing}" is missing', str(ctx.exception))

    def test_invalid_yaml(self):
        self.config_path.write_text("stylesheets: [unclosed\n", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_empty_file_is_empty_config(self):
        self.config_path.write_text("", encoding="utf-8")
        self.assertEqual(load_config(self.config_path), {})

    @patch.dict(os.environ, {"CDN_HOSTS": "cdn[0,1].example.com"})
    def test_environment_substitution(self):
        self.config_path.write_text(
            "options:\n  asset_hosts: ${CDN_HOSTS}\n  styles_path: ${STYLES_DIR_UNSET:css}\n",
            encoding="utf-8",
        )
        config = load_config(self.config_path)
        self.assertEqual(config["options"]["asset_hosts"], "cdn[0,1].example.com")
        self.assertEqual(config["options"]["styles_path"], "css")


class TestParsePackages(unittest.TestCase):
    def test_keeps_order_and_types(self):
        config = {
            "javascripts": {"all": ["one", "two"]},
            "stylesheets": {"subset": "one", "desktop/all": ["desktop/one"]},
        }
        packages = parse_packages(config)
        self.assertEqual(
            [(p.asset_type, p.name, p.members) for p in packages],
            [
                (STYLESHEETS, "subset", ("one",)),
                (STYLESHEETS, "desktop/all", ("desktop/one",)),
                (JAVASCRIPTS, "all", ("one", "two")),
            ],
        )
        self.assertEqual(packages[1].key, "stylesheets/desktop/all")

    def test_rejects_empty_member_list(self):
        with self.assertRaises(ConfigurationError):
            parse_packages({"stylesheets": {"all": []}})

    def test_rejects_non_string_members(self):
        with self.assertRaises(ConfigurationError):
            parse_packages({"javascripts": {"all": ["one", {"two": 2}]}})

    def test_rejects_non_mapping_section(self):
        with self.assertRaises(ConfigurationError):
            parse_packages({"stylesheets": ["one"]})


class TestBuildSettings(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp_dir.name).resolve()
        self.config_path = self.root / "assets.yml"

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_defaults(self):
        settings = build_settings({}, self.root / ".", self.config_path)
        self.assertEqual(settings.root_dir, self.root)
        self.assertFalse(settings.gzip)
        self.assertTrue(settings.minify)
        self.assertEqual(settings.source_dir(STYLESHEETS), self.root / "stylesheets")
        self.assertEqual(settings.bundled_dir(JAVASCRIPTS), self.root / "javascripts" / "bundled")
        self.assertEqual(settings.cache_path, self.root / ".assets.yml.json")

    def test_missing_root(self):
        missing = os.path.join("test", "fake")
        with self.assertRaises(ConfigurationError) as ctx:
            build_settings({}, missing, self.config_path)
        self.assertIn(f'{missing}" could not be found', str(ctx.exception))

    def test_overrides_win_over_file_options(self):
        config = {"options": {"gzip": True, "line_break": 80, "only": "all.css", "styles_path": "css"}}
        settings = build_settings(
            config,
            self.root,
            self.config_path,
            {"gzip": False, "line_break": None, "styles_bundled": "compressed"},
        )
        self.assertFalse(settings.gzip)
        self.assertEqual(settings.line_break, 80)
        self.assertEqual(settings.only, ["all.css"])
        self.assertEqual(settings.source_dir(STYLESHEETS), self.root / "css")
        self.assertEqual(settings.bundled_dir(STYLESHEETS), self.root / "compressed")

    def test_string_booleans_from_environment(self):
        settings = build_settings({"options": {"gzip": "true", "noembed": "no"}}, self.root, self.config_path)
        self.assertTrue(settings.gzip)
        self.assertFalse(settings.noembed)

    def test_unknown_option(self):
        with self.assertRaises(ConfigurationError):
            build_settings({"options": {"gzipped": True}}, self.root, self.config_path)

    def test_bad_integer(self):
        with self.assertRaises(ConfigurationError):
            build_settings({"options": {"line_break": "wide"}}, self.root, self.config_path)

    def test_bad_asset_hosts(self):
        with self.assertRaises(ConfigurationError):
            build_settings({"options": {"asset_hosts": "cdn[2-1].example.com"}}, self.root, self.config_path)


if __name__ == "__main__":
    unittest.main()
