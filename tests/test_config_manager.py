import tempfile
import unittest
from pathlib import Path

import yaml

from calpilot.config_manager import ConfigManager
from calpilot.models import AppConfig


class ConfigManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "nested" / "config.yaml"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_missing_file_created_with_defaults(self) -> None:
        manager = ConfigManager(str(self.config_path), environ={})
        self.assertTrue(self.config_path.exists())
        config = manager.load()
        self.assertEqual(config.calendar.timezone, "Asia/Seoul")
        self.assertEqual(config.calendar.week_length_days, 5)
        self.assertEqual(config.ai.model, "gpt-4.1-mini")
        self.assertEqual(config.google.calendar_id, "primary")

    def test_environment_overrides_file(self) -> None:
        self.config_path.parent.mkdir(parents=True)
        self.config_path.write_text(
            yaml.safe_dump({"ai": {"api_key": "file-key", "model": "file-model"}, "calendar": {"timezone": "UTC"}}),
            encoding="utf-8",
        )
        manager = ConfigManager(
            str(self.config_path),
            environ={"OPENAI_API_KEY": "env-key", "CALPILOT_WEEK_LENGTH_DAYS": "7", "OPENAI_MODEL": " "},
        )
        config = manager.load()
        self.assertEqual(config.ai.api_key, "env-key")
        self.assertEqual(config.ai.model, "file-model")
        self.assertEqual(config.calendar.timezone, "UTC")
        self.assertEqual(config.calendar.week_length_days, 7)

    def test_masked_hides_secrets(self) -> None:
        manager = ConfigManager(
            str(self.config_path),
            environ={"OPENAI_API_KEY": "secret", "GOOGLE_CLIENT_SECRET": "also-secret"},
        )
        masked = manager.masked()
        self.assertEqual(masked["ai"]["api_key"], "***")
        self.assertEqual(masked["google"]["client_secret"], "***")

    def test_invalid_values_are_clamped(self) -> None:
        config = AppConfig.from_dict(
            {
                "calendar": {"week_length_days": 6},
                "ai": {"timeout_seconds": "soon", "temperature": "hot"},
                "google": {"max_results": 0},
            }
        )
        self.assertEqual(config.calendar.week_length_days, 5)
        self.assertEqual(config.ai.timeout_seconds, 60)
        self.assertEqual(config.ai.temperature, 0.35)
        self.assertEqual(config.google.max_results, 1)

    def test_save_round_trips(self) -> None:
        manager = ConfigManager(str(self.config_path), environ={})
        config = AppConfig.from_dict({"google": {"client_id": "cid"}})
        manager.save(config)
        data = yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
        self.assertEqual(data["google"]["client_id"], "cid")
        self.assertFalse(self.config_path.with_suffix(".yaml.tmp").exists())


if __name__ == "__main__":
    unittest.main()
