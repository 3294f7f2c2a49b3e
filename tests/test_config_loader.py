"""Tests for configuration loading and env substitution."""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from sticker_scout.config_loader import (
    ensure_directories,
    get_fetch_config,
    get_filters_config,
    get_politeness_config,
    load_config,
)
from sticker_scout.models import FilterConfig

REPO_CONFIG = Path(__file__).parent.parent / "config.yaml"


class TestConfigLoader(unittest.TestCase):
    def test_repo_config_loads(self):
        config = load_config(str(REPO_CONFIG))
        filters = FilterConfig.from_dict(get_filters_config(config))
        self.assertEqual(filters.min_price, 2.0)
        self.assertEqual(filters.max_price, 65.0)
        self.assertEqual(filters.sticker_terms, ["Holo", "stockholm"])
        politeness = get_politeness_config(config)
        self.assertEqual(politeness["stop_on_http"], [401, 403])
        self.assertEqual(config["scan"]["mode"], "auto")

    @patch.dict(os.environ, {"SCOUT_FETCH_BASE_URL": "https://example.com/api/inventory"})
    def test_env_substitution(self):
        config = load_config(str(REPO_CONFIG))
        self.assertEqual(get_fetch_config(config)["base_url"], "https://example.com/api/inventory")

    def test_env_default_and_unset(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text(
                "fetch:\n  base_url: \"${SCOUT_TEST_UNSET_VAR:}\"\n  origin: \"${SCOUT_TEST_UNSET_VAR}\"\n",
                encoding="utf-8",
            )
            with patch.dict(os.environ, {}, clear=False):
                os.environ.pop("SCOUT_TEST_UNSET_VAR", None)
                config = load_config(str(path))
        self.assertEqual(config["fetch"]["base_url"], "")
        self.assertEqual(config["fetch"]["origin"], "${SCOUT_TEST_UNSET_VAR}")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config("/nonexistent/config.yaml")

    def test_sections_tolerate_bad_shapes(self):
        self.assertEqual(get_fetch_config({"fetch": None}), {})
        self.assertEqual(get_fetch_config({}), {})

    def test_ensure_directories(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = {
                "output": {"dir": str(Path(tmp) / "out")},
                "logging": {"file": str(Path(tmp) / "logs" / "scout.log")},
            }
            ensure_directories(config)
            self.assertTrue((Path(tmp) / "out").is_dir())
            self.assertTrue((Path(tmp) / "logs").is_dir())


if __name__ == "__main__":
    unittest.main()
