from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from modelci.common.errors import ChecksumEntryNotFoundError, ChecksumManifestError


log = logging.getLogger(__name__)


def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for block in iter(lambda: fh.read(chunk_size), b""):
            digest.update(block)
    return digest.hexdigest()


def parse_checksum_manifest(text: str) -> dict[str, str]:
    """Map file names to digests, keeping the first entry for each name.

    Only lines with exactly two whitespace separated fields count; blank or
    malformed lines are ignored.
    """
    entries: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        digest, filename = parts
        entries.setdefault(filename, digest)
    return entries


def expected_checksum(manifest_path: Path, filename: str) -> str:
    manifest_path = Path(manifest_path)
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ChecksumManifestError(manifest_path, exc) from exc
    digest = parse_checksum_manifest(text).get(filename)
    if not digest:
        raise ChecksumEntryNotFoundError(filename, manifest_path)
    return digest


def verify_checksum(file_path: Path, manifest_path: Path, chunk_size: int = 1024 * 1024) -> bool:
    file_path = Path(file_path)
    expected = expected_checksum(manifest_path, file_path.name)
    actual = sha256_file(file_path, chunk_size=chunk_size)
    if actual != expected:
        log.warning("Checksum mismatch for %s: %s != %s", file_path.name, actual, expected)
        return False
    return True
