import os
import unittest
import warnings
from unittest.mock import patch

from softpool.infrastructure._config import (
    DEFAULT_MAX_BLOCKS,
    DEFAULT_THREADS_PER_BLOCK,
    LaunchConfig,
)


class TestLaunchConfig(unittest.TestCase):
    def test_defaults_from_empty_env(self):
        cfg = LaunchConfig.from_env({})
        self.assertEqual(cfg.threads_per_block, DEFAULT_THREADS_PER_BLOCK)
        self.assertEqual(cfg.max_blocks, DEFAULT_MAX_BLOCKS)
        self.assertGreaterEqual(cfg.num_workers, 1)

    def test_reads_env_values(self):
        env = {
            "SOFTPOOL_THREADS_PER_BLOCK": "256",
            "SOFTPOOL_MAX_BLOCKS": "12",
            "SOFTPOOL_NUM_WORKERS": "3",
        }
        cfg = LaunchConfig.from_env(env)
        self.assertEqual(cfg, LaunchConfig(256, 12, 3))

    def test_reads_process_environment_by_default(self):
        with patch.dict(os.environ, {"SOFTPOOL_NUM_WORKERS": "2"}):
            self.assertEqual(LaunchConfig.from_env().num_workers, 2)

    def test_invalid_env_value_warns_and_falls_back(self):
        for raw in ("abc", "0", "-4"):
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                cfg = LaunchConfig.from_env({"SOFTPOOL_THREADS_PER_BLOCK": raw})
            self.assertEqual(cfg.threads_per_block, DEFAULT_THREADS_PER_BLOCK)
            self.assertTrue(
                any(issubclass(w.category, RuntimeWarning) for w in caught)
            )

    def test_blank_env_value_is_default_without_warning(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            cfg = LaunchConfig.from_env({"SOFTPOOL_MAX_BLOCKS": "  "})
        self.assertEqual(cfg.max_blocks, DEFAULT_MAX_BLOCKS)

    def test_explicit_non_positive_values_raise(self):
        with self.assertRaises(ValueError):
            LaunchConfig(threads_per_block=0)
        with self.assertRaises(ValueError):
            LaunchConfig(num_workers=-1)


if __name__ == "__main__":
    unittest.main()
