import json
import os
import stat
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from graft.config.loader import (
    CONFIG_ENV_VAR,
    DEFAULTS,
    ConfigError,
    get_config_path,
    get_config_value,
    load_config,
    mask_secret,
    read_config_file,
    save_config,
    set_config_value,
)


class TestConfigLoader(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.path = Path(self._tmp.name) / "config.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def write(self, data) -> None:
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def test_missing_file_gives_defaults(self) -> None:
        self.assertEqual(load_config(self.path), DEFAULTS)

    def test_file_values_override_defaults(self) -> None:
        self.write({"provider": "anthropic", "ollama_port": 1234, "custom": True})
        config = load_config(self.path)
        self.assertEqual(config["provider"], "anthropic")
        self.assertEqual(config["ollama_port"], 1234)
        self.assertEqual(config["request_timeout"], DEFAULTS["request_timeout"])
        self.assertTrue(config["custom"])

    def test_invalid_json(self) -> None:
        self.path.write_text("{oops", encoding="utf-8")
        with self.assertRaises(ConfigError) as ctx:
            load_config(self.path)
        self.assertIn("Invalid JSON", str(ctx.exception))

    def test_non_object(self) -> None:
        self.write(["provider"])
        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_wrong_types(self) -> None:
        for data in ({"ollama_port": "11434"}, {"provider": 3}, {"request_timeout": True}, {"max_tokens": 0}):
            with self.subTest(data=data):
                self.write(data)
                with self.assertRaises(ConfigError):
                    load_config(self.path)

    def test_cache_age_must_be_positive_and_finite(self) -> None:
        for text in ('{"cache_max_age_days": -1}', '{"cache_max_age_days": 0}', '{"cache_max_age_days": Infinity}',
                     '{"cache_max_age_days": NaN}', '{"cache_max_age_days": 1e9}', '{"request_timeout": -Infinity}'):
            with self.subTest(text=text):
                self.path.write_text(text, encoding="utf-8")
                with self.assertRaises(ConfigError):
                    load_config(self.path)
        self.write({"cache_max_age_days": 0.5})
        self.assertEqual(load_config(self.path)["cache_max_age_days"], 0.5)

    def test_set_rejects_negative_cache_age(self) -> None:
        with self.assertRaises(ConfigError):
            set_config_value("cache_max_age_days", "-3", self.path)
        self.assertFalse(self.path.exists())

    def test_environment_overrides(self) -> None:
        self.write({"provider": "ollama", "ollama_port": 1})
        env = {"GRAFT_PROVIDER": "mock", "OLLAMA_PORT": "2222", "ANTHROPIC_API_KEY": "sk-ant-env"}
        with patch.dict(os.environ, env):
            config = load_config(self.path)
        self.assertEqual(config["provider"], "mock")
        self.assertEqual(config["ollama_port"], 2222)
        self.assertEqual(config["anthropic_api_key"], "sk-ant-env")

    def test_bad_environment_number(self) -> None:
        with patch.dict(os.environ, {"OLLAMA_PORT": "high"}):
            with self.assertRaises(ConfigError):
                load_config(self.path)

    def test_config_path_resolution(self) -> None:
        self.assertEqual(get_config_path(self.path), self.path)
        with patch.dict(os.environ, {CONFIG_ENV_VAR: "/etc/graft.json"}):
            self.assertEqual(get_config_path(), Path("/etc/graft.json"))
        with patch.dict(os.environ, {CONFIG_ENV_VAR: ""}):
            self.assertEqual(get_config_path(), Path.home() / ".config" / "graft" / "config.json")

    def test_set_and_get_values(self) -> None:
        self.assertEqual(set_config_value("ollama_port", "8080", self.path), 8080)
        self.assertEqual(set_config_value("request_timeout", "2.5", self.path), 2.5)
        self.assertEqual(set_config_value("max_tokens", "none", self.path), None)
        self.assertEqual(read_config_file(self.path), {"ollama_port": 8080, "request_timeout": 2.5, "max_tokens": None})
        self.assertEqual(get_config_value("ollama_port", self.path), "8080")
        self.assertEqual(get_config_value("max_tokens", self.path), "")

    def test_unknown_key(self) -> None:
        with self.assertRaises(ConfigError):
            set_config_value("colour", "blue", self.path)
        with self.assertRaises(ConfigError):
            get_config_value("colour", self.path)
        self.assertFalse(self.path.exists())

    def test_secret_is_masked_and_file_private(self) -> None:
        set_config_value("anthropic_api_key", "sk-ant-0123456789abcdef", self.path)
        self.assertEqual(get_config_value("anthropic_api_key", self.path), "sk-a...cdef")
        self.assertEqual(get_config_value("anthropic_api_key", self.path, reveal=True), "sk-ant-0123456789abcdef")
        if os.name == "posix":
            self.assertEqual(stat.S_IMODE(self.path.stat().st_mode), 0o600)

    def test_save_creates_parent_directories(self) -> None:
        nested = Path(self._tmp.name) / "a" / "b" / "config.json"
        save_config({"provider": "mock"}, nested)
        self.assertEqual(json.loads(nested.read_text(encoding="utf-8")), {"provider": "mock"})

    def test_mask_secret(self) -> None:
        self.assertEqual(mask_secret(""), "")
        self.assertEqual(mask_secret("12345678"), "****")
        self.assertEqual(mask_secret("123456789"), "1234...6789")


if __name__ == "__main__":
    unittest.main()
