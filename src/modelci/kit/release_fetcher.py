"""Verified download of a kit release.

Resolves a release on the GitHub API, picks the platform archive and the
checksum manifest, downloads both, checks the archive's SHA-256 against the
manifest and only then unpacks it.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from modelci.common.archive import extract_tar_gz
from modelci.common.checksums import expected_checksum, sha256_file
from modelci.common.config import RuntimeConfig
from modelci.common.errors import (
    AssetNotFoundError,
    ChecksumMismatchError,
    DecodeError,
    ExtractError,
    HTTPStatusError,
    ReleaseNotFoundError,
    TransportError,
)
from modelci.common.security import validate_trusted_url
from modelci.common.types import Asset, FetchResult, Release


log = logging.getLogger(__name__)

LATEST = "latest"
KIT_BINARY_NAME = "kit"
CHECKSUM_FILE_NAME = "checksums.txt"


def parse_release(data: object, url: str) -> Release:
    if not isinstance(data, dict):
        raise DecodeError(url, "release document is not an object")
    tag_name = data.get("tag_name")
    raw_assets = data.get("assets")
    if not isinstance(tag_name, str) or not tag_name.strip():
        raise DecodeError(url, "missing tag_name")
    if not isinstance(raw_assets, list):
        raise DecodeError(url, "missing assets list")

    assets = []
    for idx, item in enumerate(raw_assets):
        if not isinstance(item, dict):
            raise DecodeError(url, f"asset at index {idx} is not an object")
        name = item.get("name")
        download_url = item.get("browser_download_url")
        if not isinstance(name, str) or not isinstance(download_url, str):
            raise DecodeError(url, f"asset at index {idx} lacks name or browser_download_url")
        assets.append(Asset(name=name, url=download_url))
    return Release(tag_name=tag_name, assets=tuple(assets))


def select_assets(release: Release, archive_name: str, checksum_suffix: str) -> tuple[str, str]:
    archive_url = ""
    checksum_url = ""
    for asset in release.assets:
        if asset.name == archive_name:
            archive_url = asset.url
        elif asset.name.endswith(checksum_suffix):
            checksum_url = asset.url

    missing = []
    if not archive_url:
        missing.append(archive_name)
    if not checksum_url:
        missing.append(f"*{checksum_suffix}")
    if missing:
        raise AssetNotFoundError(release.tag_name, missing)
    return archive_url, checksum_url


class ReleaseFetcher:
    def __init__(self, runtime: RuntimeConfig, session: requests.Session | None = None):
        self.runtime = runtime
        if session is None:
            session = requests.Session()
            retry = Retry(
                total=runtime.max_retries,
                connect=runtime.max_retries,
                read=runtime.max_retries,
                status=runtime.max_retries,
                backoff_factor=0.5,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=frozenset({"GET", "HEAD"}),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    @property
    def _timeout(self) -> tuple[int, int]:
        return (self.runtime.connect_timeout_seconds, self.runtime.read_timeout_seconds)

    def _check_url(self, url: str) -> None:
        validate_trusted_url(url, self.runtime.trusted_hosts, allow_http=self.runtime.allow_insecure_http)

    def release_url(self, version: str) -> str:
        if version == LATEST:
            return self.runtime.latest_release_url
        return self.runtime.release_by_tag_url.format(tag=quote(version, safe=""))

    def resolve_release(self, version: str = LATEST) -> Release:
        version = (version or LATEST).strip()
        url = self.release_url(version)
        self._check_url(url)
        log.info("Fetching release %s from %s", version, url)
        try:
            resp = self.session.get(
                url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(url, exc) from exc

        if resp.status_code == 404:
            raise ReleaseNotFoundError(url, resp.status_code, resp.reason or "")
        if not resp.ok:
            raise HTTPStatusError(url, resp.status_code, resp.reason or "")

        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodeError(url, str(exc)) from exc
        release = parse_release(data, url)
        log.info("Resolved release %s with %s assets", release.tag_name, len(release.assets))
        return release

    def download_file(self, url: str, destination: Path) -> Path:
        destination = Path(destination)
        self._check_url(url)
        log.info("Downloading %s to %s", url, destination)
        try:
            with self.session.get(url, stream=True, timeout=self._timeout) as resp:
                if not resp.ok:
                    raise HTTPStatusError(url, resp.status_code, resp.reason or "")
                self._check_url(str(resp.url))
                destination.parent.mkdir(parents=True, exist_ok=True)
                with destination.open("wb") as fh:
                    for chunk in resp.iter_content(chunk_size=self.runtime.download_chunk_size):
                        if chunk:
                            fh.write(chunk)
        except requests.RequestException as exc:
            raise TransportError(url, exc) from exc
        return destination

    def verify(self, archive: Path, manifest: Path) -> str:
        expected = expected_checksum(manifest, archive.name)
        actual = sha256_file(archive, chunk_size=self.runtime.download_chunk_size)
        if actual != expected:
            raise ChecksumMismatchError(archive, expected=expected, actual=actual)
        log.info("Checksum verified for %s", archive.name)
        return actual

    def fetch(
        self,
        version: str,
        destination: Path,
        staging_dir: Path | None = None,
    ) -> FetchResult:
        """Resolve, download, verify and unpack a release into ``destination``.

        Downloads land in ``staging_dir`` when given (and are left there for
        the caller), otherwise in a temporary directory removed afterwards.
        """
        release = self.resolve_release(version)
        archive_url, checksum_url = select_assets(
            release,
            self.runtime.kit_archive_name,
            self.runtime.checksum_suffix,
        )

        if staging_dir is not None:
            staging = Path(staging_dir)
            staging.mkdir(parents=True, exist_ok=True)
            return self._fetch_into(release, archive_url, checksum_url, Path(destination), staging)
        with tempfile.TemporaryDirectory(prefix="modelci-") as td:
            return self._fetch_into(release, archive_url, checksum_url, Path(destination), Path(td))

    def _fetch_into(
        self,
        release: Release,
        archive_url: str,
        checksum_url: str,
        destination: Path,
        staging: Path,
    ) -> FetchResult:
        archive = self.download_file(archive_url, staging / self.runtime.kit_archive_name)
        manifest = self.download_file(checksum_url, staging / CHECKSUM_FILE_NAME)
        digest = self.verify(archive, manifest)

        extract_tar_gz(archive, destination)
        binary = destination / KIT_BINARY_NAME
        if not binary.is_file():
            raise ExtractError(archive, f"{KIT_BINARY_NAME} binary not found in archive")
        log.info("Kit %s unpacked to %s", release.tag_name, destination)
        return FetchResult(
            tag_name=release.tag_name,
            destination=destination,
            binary_path=binary,
            sha256=digest,
        )
