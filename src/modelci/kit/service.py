from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from modelci.common.config import RuntimeConfig, WorkPaths
from modelci.common.container import ContainerRunner, ContainerSpec
from modelci.common.errors import ContainerExecError, KitAuthenticationError
from modelci.kit.release_fetcher import LATEST, ReleaseFetcher


log = logging.getLogger(__name__)

PLAIN_HTTP_FLAG = "--plain-http"
BASE_IMAGE_REF = "cgr.dev/chainguard/wolfi-base:latest"
KIT_COMMAND = "/app/kit"
KITOPS_HOME_DIR = "/kitops"
KITOPS_CACHE_VOLUME = "kitops"

ALLOWED_UNPACK_FILTERS = frozenset({"--docs", "--code", "--model", "--datasets", "--kitfile"})


@dataclass(frozen=True)
class KitOptions:
    registry: str = ""
    plain_http: bool = False
    version: str = LATEST


def validate_filters(filters: Iterable[str]) -> list[str]:
    checked = []
    for f in filters:
        if f not in ALLOWED_UNPACK_FILTERS:
            raise ValueError(f"{f} is not a valid filter")
        checked.append(f)
    return checked


class KitService:
    """Runs the kit CLI in a wolfi container against an OCI registry."""

    def __init__(
        self,
        options: KitOptions,
        runtime: RuntimeConfig,
        paths: WorkPaths,
        runner: ContainerRunner | None = None,
        fetcher: ReleaseFetcher | None = None,
    ):
        self.options = options
        self.runtime = runtime
        self.paths = paths
        self.runner = runner or ContainerRunner(runtime.container_engine, runtime.container_timeout_seconds)
        self.fetcher = fetcher or ReleaseFetcher(runtime)
        self._kit_binary: Path | None = None

    def kit_binary(self) -> Path:
        if self._kit_binary is None:
            self.paths.ensure_layout()
            version = self.options.version or LATEST
            result = self.fetcher.fetch(
                version,
                self.paths.kit_dir / version,
                staging_dir=self.paths.staging_dir / version,
            )
            self._kit_binary = result.binary_path
        return self._kit_binary

    def base_container(self) -> ContainerSpec:
        return (
            ContainerSpec(image=BASE_IMAGE_REF)
            .with_mount(self.kit_binary(), KIT_COMMAND, read_only=True)
            .with_volume(KITOPS_CACHE_VOLUME, KITOPS_HOME_DIR)
            .with_env("KITOPS_HOME", KITOPS_HOME_DIR)
        )

    def _with_plain_http(self, cmd: list[str]) -> list[str]:
        if self.options.plain_http:
            cmd.append(PLAIN_HTTP_FLAG)
        return cmd

    def login(self, username: str, password: str) -> "KitService":
        cmd = self._with_plain_http(
            [
                KIT_COMMAND,
                "login",
                "-v",
                shlex.quote(self.options.registry),
                "-u",
                shlex.quote(username),
                "-p",
                '"$KIT_PASSWORD"',
            ]
        )
        spec = self.base_container().with_secret("KIT_PASSWORD", password)
        try:
            self.runner.run(spec, ["/bin/sh", "-c", " ".join(cmd)])
        except ContainerExecError as exc:
            raise KitAuthenticationError(
                exc.command,
                exc.returncode,
                exc.stderr,
                message=f"authentication failed for {self.options.registry}",
            ) from exc
        log.info("Logged in to %s as %s", self.options.registry, username)
        return self

    def pack(self, directory: Path, reference: str, kitfile: Path | None = None) -> "KitService":
        cmd = [KIT_COMMAND, "pack", "/mnt", "-t", reference]
        spec = self.base_container().with_mount(directory, "/mnt", read_only=True).with_workdir("/mnt")
        if kitfile is not None:
            spec = spec.with_mount(kitfile, "/kitfile/Kitfile", read_only=True)
            cmd += ["-f", "/kitfile/Kitfile"]
        self.runner.run(spec, cmd)
        log.info("Packed %s as %s", directory, reference)
        return self

    def unpack(self, reference: str, output_dir: Path, filters: Iterable[str] = ()) -> Path:
        cmd = [KIT_COMMAND, "unpack", reference, "-d", "/unpack"]
        cmd += validate_filters(filters)
        self._with_plain_http(cmd)

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        spec = self.base_container().with_mount(output_dir, "/unpack")
        self.runner.run(spec, cmd)
        return output_dir

    def pull(self, reference: str) -> "KitService":
        self.runner.run(self.base_container(), self._with_plain_http([KIT_COMMAND, "pull", reference]))
        return self

    def push(self, reference: str) -> None:
        self.runner.run(self.base_container(), self._with_plain_http([KIT_COMMAND, "push", reference]))

    def tag(self, current_ref: str, new_ref: str) -> "KitService":
        self.runner.run(self.base_container(), self._with_plain_http([KIT_COMMAND, "tag", current_ref, new_ref]))
        return self
