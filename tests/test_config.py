from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from workstudio.config import Config, load_config, save_config
from workstudio.config.loader import camel_to_snake, snake_to_camel


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = Config()
        self.assertEqual(config.provider.kind, "anthropic")
        self.assertEqual(config.agent.max_tool_rounds, 25)
        self.assertEqual(config.workspace.debounce_s, 0.3)

    def test_save_then_load_uses_camel_case_on_disk(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            config = Config()
            config.agent.max_tool_rounds = 7
            save_config(config, path)
            raw = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(raw["agent"]["maxToolRounds"], 7)
            self.assertEqual(load_config(path).agent.max_tool_rounds, 7)

    def test_invalid_file_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{broken", encoding="utf-8")
            self.assertEqual(load_config(path).agent.max_tool_rounds, 25)

    def test_environment_fills_keys_the_file_leaves_unset(self) -> None:
        env = {"WORKSTUDIO_AGENT__HISTORY_LIMIT": "5", "WORKSTUDIO_PROVIDER__MODEL": "env-model"}
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict("os.environ", env):
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"agent": {"maxToolRounds": 7}}), encoding="utf-8")
            config = load_config(path)
        self.assertEqual(config.agent.max_tool_rounds, 7)
        self.assertEqual(config.agent.history_limit, 5)
        self.assertEqual(config.provider.model, "env-model")

    def test_api_key_falls_back_to_environment(self) -> None:
        with mock.patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-env", "OPENAI_API_KEY": "sk-oa"}):
            self.assertEqual(Config().resolve_api_key(), "sk-env")
            config = Config()
            config.provider.kind = "openai"
            self.assertEqual(config.resolve_api_key(), "sk-oa")
            config.provider.api_key = " sk-file "
            self.assertEqual(config.resolve_api_key(), "sk-file")

    def test_case_conversion(self) -> None:
        self.assertEqual(camel_to_snake("maxToolRounds"), "max_tool_rounds")
        self.assertEqual(snake_to_camel("request_timeout_s"), "requestTimeoutS")


if __name__ == "__main__":
    unittest.main()
