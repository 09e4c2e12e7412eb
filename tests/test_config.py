import os
import sys
import unittest
import tempfile
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from settings_schema import SettingsSchema, validate_settings


class YamlConfigTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "settings.yaml")
        self._saved_env = {k: os.environ.pop(k, None) for k in YamlConfig.ENV_OVERRIDES}

    def tearDown(self) -> None:
        for key, value in self._saved_env.items():
            os.environ.pop(key, None)
            if value is not None:
                os.environ[key] = value
        self.tmp.cleanup()

    def test_defaults_without_file(self) -> None:
        settings = YamlConfig(self.path).settings()
        self.assertEqual(settings, SettingsSchema())
        self.assertEqual(settings.timezone, "UTC")
        self.assertEqual(settings.notes_max_length, 1000)
        self.assertEqual(settings.weight_unit, "kg")
        self.assertFalse(os.path.exists(self.path))

    def test_save_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({"timezone": "Europe/Berlin", "weight_unit": "lbs"})
        with open(self.path, "r", encoding="utf-8") as f:
            self.assertEqual(yaml.safe_load(f)["timezone"], "Europe/Berlin")
        settings = cfg.settings()
        self.assertEqual(settings.timezone, "Europe/Berlin")
        self.assertEqual(settings.weight_unit, "lbs")

    def test_environment_overrides_file(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({"db_path": "from_file.db", "log_level": "info"})
        os.environ["WORKOUT_DB_PATH"] = "from_env.db"
        os.environ["WORKOUT_LOG_LEVEL"] = "warning"
        settings = cfg.settings()
        self.assertEqual(settings.db_path, "from_env.db")
        self.assertEqual(settings.log_level, "WARNING")

    def test_invalid_values_rejected(self) -> None:
        cfg = YamlConfig(self.path)
        with self.assertRaises(ValueError):
            cfg.save({"timezone": "Mars/Olympus_Mons"})
        self.assertFalse(os.path.exists(self.path))
        for bad in ({"notes_max_length": 0}, {"weight_unit": "stone"}, {"log_level": "LOUD"}):
            with self.assertRaises(ValueError):
                validate_settings(bad)


if __name__ == "__main__":
    unittest.main()
