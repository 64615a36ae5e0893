import importlib
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import barcode_relay.core.paths as paths


class StatePathResolutionTests(unittest.TestCase):

    def tearDown(self) -> None:
        importlib.reload(paths)

    def test_state_dir_from_environment(self) -> None:
        with tempfile.TemporaryDirectory() as state_dir:
            with mock.patch.dict(os.environ, {"BARCODE_RELAY_STATE_DIR": state_dir}):
                module = importlib.reload(paths)

            self.assertEqual(module.USER_STATE_DIR, Path(state_dir))
            self.assertEqual(module.QUEUE_FILE, Path(state_dir) / "queue.json")
            self.assertEqual(module.RELAY_LOG_FILE, Path(state_dir) / "logs" / "relay.log")

    def test_defaults_to_home_directory(self) -> None:
        env = {k: v for k, v in os.environ.items() if k != "BARCODE_RELAY_STATE_DIR"}
        with mock.patch.dict(os.environ, env, clear=True):
            module = importlib.reload(paths)

        self.assertEqual(module.USER_STATE_DIR, Path.home() / ".barcode_relay")

    def test_ensure_directories_creates_state_and_logs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            state_dir = Path(tmp_dir) / "nested" / "state"
            with mock.patch.dict(os.environ, {"BARCODE_RELAY_STATE_DIR": str(state_dir)}):
                module = importlib.reload(paths)
                module.ensure_directories()

            self.assertTrue(state_dir.is_dir())
            self.assertTrue((state_dir / "logs").is_dir())


if __name__ == "__main__":
    unittest.main()
