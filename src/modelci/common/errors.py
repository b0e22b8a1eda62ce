"""Error taxonomy shared by every pipeline function.

Fetch errors describe the verified release download; container errors describe
a tool run inside a throwaway container. Each error keeps the URL, file, tag or
command that produced it so failures can be diagnosed from the log alone.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class ModelciError(Exception):
    """Base class for all modelci errors."""


class FetchError(ModelciError):
    """A step of the verified release fetch failed."""


class TransportError(FetchError):
    def __init__(self, url: str, reason: object):
        super().__init__(f"Request to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class HTTPStatusError(FetchError):
    def __init__(self, url: str, status_code: int, reason: str = ""):
        detail = f"{status_code} {reason}".strip()
        super().__init__(f"Bad status from {url}: {detail}")
        self.url = url
        self.status_code = status_code


class ReleaseNotFoundError(HTTPStatusError):
    """The release endpoint answered 404 for the requested version."""


class DecodeError(FetchError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Could not decode release metadata from {url}: {reason}")
        self.url = url


class AssetNotFoundError(FetchError):
    def __init__(self, tag_name: str, missing: Sequence[str]):
        super().__init__(f"Release {tag_name} has no asset for: {', '.join(missing)}")
        self.tag_name = tag_name
        self.missing = tuple(missing)


class UntrustedURLError(FetchError, ValueError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason}: {url}")
        self.url = url


class ChecksumError(FetchError):
    """The archive could not be confirmed against the checksum manifest."""


class ChecksumEntryNotFoundError(ChecksumError):
    def __init__(self, filename: str, manifest_path: Path):
        super().__init__(f"Checksum for file {filename} not found in {manifest_path}")
        self.filename = filename
        self.manifest_path = manifest_path


class ChecksumManifestError(ChecksumError):
    def __init__(self, manifest_path: Path, reason: object):
        super().__init__(f"Could not read checksum manifest {manifest_path}: {reason}")
        self.manifest_path = manifest_path
        self.reason = reason


class ChecksumMismatchError(ChecksumError):
    def __init__(self, path: Path, expected: str | None = None, actual: str | None = None):
        message = f"Checksum verification failed for {path}"
        if expected is not None and actual is not None:
            message = f"{message}: {actual} != {expected}"
        super().__init__(message)
        self.path = path
        self.expected = expected
        self.actual = actual


class ExtractError(FetchError, OSError):
    def __init__(self, archive: Path, reason: object):
        super().__init__(f"Error unpacking {archive}: {reason}")
        self.archive = archive
        self.reason = reason

    def __str__(self) -> str:
        return str(self.args[0])


class ContainerError(ModelciError):
    """A containerized tool could not be run or did not produce its output."""


class ContainerEngineError(ContainerError):
    pass


class ContainerExecError(ContainerError):
    def __init__(self, command: Sequence[str], returncode: int, stderr: str = "", message: str | None = None):
        shown = " ".join(command)
        detail = (stderr or "").strip()
        text = message or f"Command exited with code {returncode}: {shown}"
        if detail:
            text = f"{text}: {detail}"
        super().__init__(text)
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr


class KitAuthenticationError(ContainerExecError):
    pass


class ContainerOutputMissingError(ContainerError):
    def __init__(self, path: Path):
        super().__init__(f"Expected output not produced: {path}")
        self.path = path
