from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from modelci.common.config import RuntimeConfig, WorkPaths


class ConfigTests(unittest.TestCase):
    def test_defaults_do_not_retry(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            cfg = RuntimeConfig.from_env()
        self.assertEqual(cfg.max_retries, 0)
        self.assertEqual(cfg.kit_archive_name, "kitops-linux-x86_64.tar.gz")
        self.assertEqual(cfg.container_engine, "docker")
        self.assertIsNone(cfg.container_timeout_seconds)
        self.assertFalse(cfg.allow_insecure_http)
        self.assertIn("api.github.com", cfg.trusted_hosts)

    def test_env_overrides(self) -> None:
        env = {
            "MODELCI_MAX_RETRIES": "3",
            "MODELCI_CONTAINER_ENGINE": "podman",
            "MODELCI_CONTAINER_TIMEOUT": "600",
            "MODELCI_ALLOW_INSECURE_HTTP": "yes",
            "MODELCI_TRUSTED_HOSTS": "mirror.internal, github.com",
            "MODELCI_KIT_ARCHIVE": "kitops-linux-arm64.tar.gz",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = RuntimeConfig.from_env()
        self.assertEqual(cfg.max_retries, 3)
        self.assertEqual(cfg.container_engine, "podman")
        self.assertEqual(cfg.container_timeout_seconds, 600)
        self.assertTrue(cfg.allow_insecure_http)
        self.assertEqual(cfg.trusted_hosts, ("mirror.internal", "github.com"))
        self.assertEqual(cfg.kit_archive_name, "kitops-linux-arm64.tar.gz")

    def test_work_paths_layout(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with patch.dict(os.environ, {"MODELCI_WORK_ROOT": td}):
                paths = WorkPaths.default()
            paths.ensure_layout()
            self.assertEqual(paths.kit_dir, Path(td) / "kit")
            self.assertTrue(paths.staging_dir.is_dir())
            self.assertTrue(paths.logs_dir.is_dir())


if __name__ == "__main__":
    unittest.main()
