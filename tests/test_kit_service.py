from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from modelci.common.config import RuntimeConfig, WorkPaths
from modelci.common.container import Mount
from modelci.common.errors import AssetNotFoundError, ContainerExecError, KitAuthenticationError
from modelci.common.types import FetchResult
from modelci.kit.service import KitOptions, KitService

from runner_fakes import RecordingRunner, host_path


class FakeFetcher:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[str, Path, Path | None]] = []

    def fetch(self, version: str, destination: Path, staging_dir: Path | None = None) -> FetchResult:
        self.calls.append((version, destination, staging_dir))
        if self.error is not None:
            raise self.error
        destination.mkdir(parents=True, exist_ok=True)
        binary = destination / "kit"
        binary.write_bytes(b"kit")
        return FetchResult(tag_name="v1.2.3", destination=destination, binary_path=binary, sha256="00")


class KitServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.paths = WorkPaths.under(self.root / "work")
        self.fetcher = FakeFetcher()
        self.runner = RecordingRunner()

    def tearDown(self) -> None:
        self._td.cleanup()

    def _service(self, **options) -> KitService:
        return KitService(
            KitOptions(**options),
            RuntimeConfig(),
            self.paths,
            runner=self.runner,
            fetcher=self.fetcher,
        )

    def test_base_container_mounts_verified_binary(self) -> None:
        spec = self._service(version="v1.2.3").base_container()
        self.assertEqual(spec.image, "cgr.dev/chainguard/wolfi-base:latest")
        self.assertEqual(host_path(spec, "/app/kit"), (self.paths.kit_dir / "v1.2.3" / "kit").resolve())
        self.assertIn(Mount(source="kitops", target="/kitops", kind="volume"), spec.mounts)
        self.assertIn(("KITOPS_HOME", "/kitops"), spec.env)
        self.assertEqual(
            self.fetcher.calls,
            [("v1.2.3", self.paths.kit_dir / "v1.2.3", self.paths.staging_dir / "v1.2.3")],
        )

    def test_binary_is_fetched_once_per_service(self) -> None:
        service = self._service()
        service.pull("jozu.ml/a:1")
        service.push("jozu.ml/a:1")
        service.tag("jozu.ml/a:1", "jozu.ml/a:2")
        self.assertEqual(len(self.fetcher.calls), 1)
        self.assertEqual(
            [cmd for _, cmd in self.runner.runs],
            [
                ["/app/kit", "pull", "jozu.ml/a:1"],
                ["/app/kit", "push", "jozu.ml/a:1"],
                ["/app/kit", "tag", "jozu.ml/a:1", "jozu.ml/a:2"],
            ],
        )

    def test_plain_http_flag(self) -> None:
        service = self._service(plain_http=True)
        service.pull("localhost:5000/a:1")
        service.push("localhost:5000/a:1")
        for _, cmd in self.runner.runs:
            self.assertEqual(cmd[-1], "--plain-http")

    def test_pack_with_kitfile(self) -> None:
        model_dir = self.root / "model"
        model_dir.mkdir()
        kitfile = self.root / "Kitfile"
        kitfile.write_text("manifestVersion: 1.0\n", encoding="utf-8")

        result = self._service(plain_http=True).pack(model_dir, "jozu.ml/packtest:latest", kitfile=kitfile)
        self.assertIsInstance(result, KitService)
        spec, cmd = self.runner.runs[0]
        self.assertEqual(cmd, ["/app/kit", "pack", "/mnt", "-t", "jozu.ml/packtest:latest", "-f", "/kitfile/Kitfile"])
        self.assertEqual(spec.workdir, "/mnt")
        self.assertEqual(host_path(spec, "/mnt"), model_dir.resolve())
        self.assertEqual(host_path(spec, "/kitfile/Kitfile"), kitfile.resolve())

    def test_unpack_with_filters(self) -> None:
        out = self.root / "out"
        result = self._service(plain_http=True).unpack("jozu.ml/a:1", out, filters=["--model", "--kitfile"])
        self.assertEqual(result, out)
        self.assertTrue(out.is_dir())
        spec, cmd = self.runner.runs[0]
        self.assertEqual(
            cmd,
            ["/app/kit", "unpack", "jozu.ml/a:1", "-d", "/unpack", "--model", "--kitfile", "--plain-http"],
        )
        self.assertEqual(host_path(spec, "/unpack"), out.resolve())

    def test_invalid_filter_fails_before_anything_runs(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            self._service().unpack("jozu.ml/a:1", self.root / "out", filters=["--model", "--weights"])
        self.assertIn("--weights is not a valid filter", str(ctx.exception))
        self.assertEqual(self.runner.runs, [])
        self.assertEqual(self.fetcher.calls, [])

    def test_login_injects_password_as_secret(self) -> None:
        self._service(registry="jozu.ml", plain_http=True).login("ci-bot", "hunter2")
        spec, cmd = self.runner.runs[0]
        self.assertEqual(cmd[:2], ["/bin/sh", "-c"])
        self.assertEqual(cmd[2], '/app/kit login -v jozu.ml -u ci-bot -p "$KIT_PASSWORD" --plain-http')
        self.assertNotIn("hunter2", " ".join(cmd))
        self.assertEqual(spec.secrets, (("KIT_PASSWORD", "hunter2"),))

    def test_login_failure_reports_stderr(self) -> None:
        def fail(spec, command):
            raise ContainerExecError(command, 1, "unauthorized: incorrect username or password")

        self.runner = RecordingRunner(effect=fail)
        with self.assertRaises(KitAuthenticationError) as ctx:
            self._service(registry="jozu.ml").login("ci-bot", "wrong")
        self.assertIn("authentication failed", str(ctx.exception))
        self.assertIn("incorrect username or password", str(ctx.exception))

    def test_fetch_failure_propagates(self) -> None:
        self.fetcher = FakeFetcher(error=AssetNotFoundError("v9.9.9", ["kitops-linux-x86_64.tar.gz"]))
        with self.assertRaises(AssetNotFoundError):
            self._service(version="v9.9.9").pull("jozu.ml/a:1")
        self.assertEqual(self.runner.runs, [])


if __name__ == "__main__":
    unittest.main()
