from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable
from urllib.parse import urlparse

from modelci.common.errors import UntrustedURLError


# GitHub API and redirected release asset hosts.
TRUSTED_RELEASE_HOSTS: tuple[str, ...] = (
    "github.com",
    "api.github.com",
    "release-assets.githubusercontent.com",
    "objects.githubusercontent.com",
    "github-releases.githubusercontent.com",
)


def _normalize_host(host: str) -> str:
    return str(host or "").strip().lower().rstrip(".")


def _is_allowed_host(host: str, allowed_hosts: Iterable[str]) -> bool:
    normalized = _normalize_host(host)
    if not normalized:
        return False
    allowed = {_normalize_host(v) for v in allowed_hosts}
    if normalized in allowed:
        return True
    return any(normalized.endswith("." + entry) for entry in allowed)


def validate_trusted_url(url: str, allowed_hosts: Iterable[str], allow_http: bool = False) -> None:
    parsed = urlparse(str(url))
    scheme = (parsed.scheme or "").lower()
    if scheme not in {"https", "http"} or (scheme == "http" and not allow_http):
        raise UntrustedURLError(url, "Untrusted URL scheme")
    host = parsed.hostname or ""
    if not _is_allowed_host(host, allowed_hosts):
        raise UntrustedURLError(url, f"Untrusted host {host or '<none>'}")


def validate_archive_member_path(member_name: str) -> PurePosixPath:
    normalized = str(member_name or "").replace("\\", "/").strip()
    if not normalized:
        raise ValueError("Archive contains an empty path entry.")

    path = PurePosixPath(normalized)
    if path.is_absolute():
        raise ValueError(f"Archive entry is absolute path: {member_name}")
    # "./bin/kit" style names are common in tarballs.
    parts = tuple(part for part in path.parts if part != ".")
    if not parts:
        return PurePosixPath(".")
    if any(part == ".." for part in parts):
        raise ValueError(f"Archive entry contains traversal segment: {member_name}")
    return PurePosixPath(*parts)


def validate_relative_path(value: str) -> PurePosixPath:
    """Reject empty, absolute or parent-escaping paths used inside containers."""
    raw = str(value or "").strip()
    if not raw:
        raise ValueError("Path cannot be empty.")
    path = PurePosixPath(raw)
    if path.is_absolute() or any(part == ".." for part in path.parts):
        raise ValueError(f"Path must be relative and stay inside its root: {value!r}")
    return path
