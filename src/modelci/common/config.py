from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from modelci.common.security import TRUSTED_RELEASE_HOSTS


KITOPS_LATEST_RELEASE_URL = "https://api.github.com/repos/jozu-ai/kitops/releases/latest"
KITOPS_RELEASE_BY_TAG_URL = "https://api.github.com/repos/jozu-ai/kitops/releases/tags/{tag}"
KITOPS_ARCHIVE_NAME = "kitops-linux-x86_64.tar.gz"
CHECKSUM_SUFFIX = "checksums.txt"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_hosts(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return tuple(h.strip() for h in raw.split(",") if h.strip())


@dataclass(frozen=True)
class WorkPaths:
    work_root: Path
    kit_dir: Path
    staging_dir: Path
    logs_dir: Path

    @classmethod
    def default(cls) -> "WorkPaths":
        override_root = os.environ.get("MODELCI_WORK_ROOT", "").strip()
        work_root = Path(override_root) if override_root else Path.cwd() / ".modelci"
        return cls.under(work_root)

    @classmethod
    def under(cls, work_root: Path) -> "WorkPaths":
        return cls(
            work_root=work_root,
            kit_dir=work_root / "kit",
            staging_dir=work_root / "staging",
            logs_dir=work_root / "logs",
        )

    def ensure_layout(self) -> None:
        for path in (self.work_root, self.kit_dir, self.staging_dir, self.logs_dir):
            path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class RuntimeConfig:
    latest_release_url: str = KITOPS_LATEST_RELEASE_URL
    release_by_tag_url: str = KITOPS_RELEASE_BY_TAG_URL
    kit_archive_name: str = KITOPS_ARCHIVE_NAME
    checksum_suffix: str = CHECKSUM_SUFFIX
    download_chunk_size: int = 1024 * 1024
    connect_timeout_seconds: int = 10
    read_timeout_seconds: int = 60
    # Retries are the caller's policy; 0 keeps every request single-shot.
    max_retries: int = 0
    container_engine: str = "docker"
    container_timeout_seconds: int | None = None
    allow_insecure_http: bool = False
    trusted_hosts: tuple[str, ...] = TRUSTED_RELEASE_HOSTS

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        container_timeout = os.environ.get("MODELCI_CONTAINER_TIMEOUT", "").strip()
        return cls(
            latest_release_url=os.environ.get("MODELCI_LATEST_RELEASE_URL", KITOPS_LATEST_RELEASE_URL),
            release_by_tag_url=os.environ.get("MODELCI_RELEASE_BY_TAG_URL", KITOPS_RELEASE_BY_TAG_URL),
            kit_archive_name=os.environ.get("MODELCI_KIT_ARCHIVE", KITOPS_ARCHIVE_NAME),
            checksum_suffix=os.environ.get("MODELCI_CHECKSUM_SUFFIX", CHECKSUM_SUFFIX),
            download_chunk_size=int(os.environ.get("MODELCI_DOWNLOAD_CHUNK", str(1024 * 1024))),
            connect_timeout_seconds=int(os.environ.get("MODELCI_CONNECT_TIMEOUT", "10")),
            read_timeout_seconds=int(os.environ.get("MODELCI_READ_TIMEOUT", "60")),
            max_retries=int(os.environ.get("MODELCI_MAX_RETRIES", "0")),
            container_engine=os.environ.get("MODELCI_CONTAINER_ENGINE", "docker"),
            container_timeout_seconds=int(container_timeout) if container_timeout else None,
            allow_insecure_http=_env_flag("MODELCI_ALLOW_INSECURE_HTTP"),
            trusted_hosts=_env_hosts("MODELCI_TRUSTED_HOSTS", TRUSTED_RELEASE_HOSTS),
        )
