from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal, Sequence

from modelci.common.errors import ContainerEngineError, ContainerExecError


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mount:
    source: str
    target: str
    read_only: bool = False
    kind: Literal["bind", "volume"] = "bind"

    def __post_init__(self) -> None:
        # --mount takes comma separated fields.
        for value in (self.source, self.target):
            if "," in value:
                raise ValueError(f"Mount path must not contain a comma: {value}")

    def as_arg(self) -> str:
        arg = f"type={self.kind},source={self.source},target={self.target}"
        if self.read_only:
            arg += ",readonly"
        return arg


@dataclass(frozen=True)
class ContainerSpec:
    """One throwaway execution context: an image plus what is mounted and set in it."""

    image: str
    mounts: tuple[Mount, ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    secrets: tuple[tuple[str, str], ...] = field(default=(), repr=False)
    workdir: str | None = None
    entrypoint: str | None = None

    def with_mount(self, source: Path, target: str, read_only: bool = False) -> "ContainerSpec":
        mount = Mount(source=str(Path(source).resolve()), target=target, read_only=read_only)
        return replace(self, mounts=self.mounts + (mount,))

    def with_volume(self, name: str, target: str) -> "ContainerSpec":
        return replace(self, mounts=self.mounts + (Mount(source=name, target=target, kind="volume"),))

    def with_env(self, name: str, value: str) -> "ContainerSpec":
        return replace(self, env=self.env + ((name, str(value)),))

    def with_secret(self, name: str, value: str) -> "ContainerSpec":
        return replace(self, secrets=self.secrets + ((name, str(value)),))

    def with_workdir(self, workdir: str) -> "ContainerSpec":
        return replace(self, workdir=workdir)

    def without_entrypoint(self) -> "ContainerSpec":
        return replace(self, entrypoint="")


class ContainerRunner:
    def __init__(self, engine: str = "docker", timeout: float | None = None):
        self.engine = engine
        self.timeout = timeout

    def build_command(self, spec: ContainerSpec, command: Sequence[str]) -> list[str]:
        argv = [self.engine, "run", "--rm"]
        if spec.entrypoint is not None:
            argv += ["--entrypoint", spec.entrypoint]
        if spec.workdir:
            argv += ["--workdir", spec.workdir]
        for mount in spec.mounts:
            argv += ["--mount", mount.as_arg()]
        for name, value in spec.env:
            argv += ["-e", f"{name}={value}"]
        # Secret values travel through the child environment only.
        for name, _ in spec.secrets:
            argv += ["-e", name]
        argv.append(spec.image)
        argv.extend(command)
        return argv

    def _child_env(self, spec: ContainerSpec) -> dict[str, str]:
        env = os.environ.copy()
        for name, value in spec.secrets:
            env[name] = value
        return env

    def run(self, spec: ContainerSpec, command: Sequence[str]) -> subprocess.CompletedProcess:
        argv = self.build_command(spec, command)
        log.info("Running %s in %s", list(command), spec.image)
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
                shell=False,
                env=self._child_env(spec),
            )
        except FileNotFoundError as exc:
            raise ContainerEngineError(f"Container engine {self.engine!r} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise ContainerEngineError(
                f"Container run timed out after {self.timeout}s: {' '.join(command)}"
            ) from exc

        if completed.returncode != 0:
            log.error("Command %s failed with code %s", list(command), completed.returncode)
            raise ContainerExecError(command, completed.returncode, completed.stderr or "")
        return completed
