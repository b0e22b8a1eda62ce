from __future__ import annotations

import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from modelci.common.container import ContainerRunner, ContainerSpec
from modelci.common.errors import ContainerEngineError, ContainerExecError


class ContainerSpecTests(unittest.TestCase):
    def test_builders_return_new_specs(self) -> None:
        base = ContainerSpec(image="alpine:3")
        changed = base.with_env("A", "1").with_workdir("/work")
        self.assertEqual(base.env, ())
        self.assertIsNone(base.workdir)
        self.assertEqual(changed.env, (("A", "1"),))
        self.assertEqual(changed.workdir, "/work")

    def test_secret_value_is_not_in_repr(self) -> None:
        spec = ContainerSpec(image="alpine:3").with_secret("TOKEN", "s3cr3t")
        self.assertNotIn("s3cr3t", repr(spec))

    def test_comma_in_mount_path_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            host = Path(td) / "models,v2"
            host.mkdir()
            with self.assertRaises(ValueError) as ctx:
                ContainerSpec(image="alpine:3").with_mount(host, "/mnt")
        self.assertIn("models,v2", str(ctx.exception))
        with self.assertRaises(ValueError):
            ContainerSpec(image="alpine:3").with_volume("cache", "/a,readonly=false")


class ContainerRunnerTests(unittest.TestCase):
    def test_build_command(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            host = Path(td).resolve()
            spec = (
                ContainerSpec(image="ghcr.io/example/tool:1")
                .without_entrypoint()
                .with_workdir("/mnt")
                .with_mount(host, "/mnt", read_only=True)
                .with_volume("cache", "/cache")
                .with_env("MODE", "fast")
                .with_secret("TOKEN", "s3cr3t")
            )
            argv = ContainerRunner("podman").build_command(spec, ["tool", "--flag"])

        self.assertEqual(
            argv,
            [
                "podman", "run", "--rm",
                "--entrypoint", "",
                "--workdir", "/mnt",
                "--mount", f"type=bind,source={host},target=/mnt,readonly",
                "--mount", "type=volume,source=cache,target=/cache",
                "-e", "MODE=fast",
                "-e", "TOKEN",
                "ghcr.io/example/tool:1",
                "tool", "--flag",
            ],
        )
        self.assertNotIn("s3cr3t", " ".join(argv))

    def test_run_passes_secrets_through_environment(self) -> None:
        spec = ContainerSpec(image="alpine:3").with_secret("TOKEN", "s3cr3t")
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="ok\n", stderr="")
        with patch("modelci.common.container.subprocess.run", return_value=done) as run:
            result = ContainerRunner().run(spec, ["true"])
        self.assertEqual(result.stdout, "ok\n")
        argv = run.call_args.args[0]
        env = run.call_args.kwargs["env"]
        self.assertEqual(argv[:3], ["docker", "run", "--rm"])
        self.assertEqual(env["TOKEN"], "s3cr3t")
        self.assertFalse(run.call_args.kwargs["shell"])

    def test_non_zero_exit_raises_with_stderr(self) -> None:
        failed = subprocess.CompletedProcess(args=[], returncode=2, stdout="", stderr="manifest unknown\n")
        with patch("modelci.common.container.subprocess.run", return_value=failed):
            with self.assertRaises(ContainerExecError) as ctx:
                ContainerRunner().run(ContainerSpec(image="alpine:3"), ["kit", "pull", "x"])
        self.assertEqual(ctx.exception.returncode, 2)
        self.assertEqual(ctx.exception.command, ["kit", "pull", "x"])
        self.assertIn("manifest unknown", str(ctx.exception))

    def test_missing_engine(self) -> None:
        with patch("modelci.common.container.subprocess.run", side_effect=FileNotFoundError("docker")):
            with self.assertRaises(ContainerEngineError):
                ContainerRunner().run(ContainerSpec(image="alpine:3"), ["true"])

    def test_timeout(self) -> None:
        expired = subprocess.TimeoutExpired(cmd="docker", timeout=5)
        with patch("modelci.common.container.subprocess.run", side_effect=expired):
            with self.assertRaises(ContainerEngineError):
                ContainerRunner(timeout=5).run(ContainerSpec(image="alpine:3"), ["sleep", "60"])


if __name__ == "__main__":
    unittest.main()
