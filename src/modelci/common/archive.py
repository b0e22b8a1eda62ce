from __future__ import annotations

import logging
import os
import shutil
import tarfile
import zlib
from pathlib import Path

from modelci.common.errors import ExtractError
from modelci.common.security import validate_archive_member_path


log = logging.getLogger(__name__)

_COPY_CHUNK = 1024 * 1024


def extract_tar_gz(archive: Path, destination: Path) -> Path:
    """Unpack a gzip compressed tar stream into ``destination``.

    Entries are handled in stream order. Directories and regular files are
    written with their recorded permission bits; symlinks, hard links, devices
    and every other entry type are skipped. The first failure aborts the
    extraction and whatever was already written stays on disk.
    """
    archive = Path(archive)
    destination = Path(destination)
    root = destination.resolve()
    # Directory modes are applied last so a read-only directory does not block
    # the files recorded after it.
    dir_modes: list[tuple[Path, int]] = []
    extracted = 0
    skipped = 0

    try:
        destination.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, mode="r|gz") as tf:
            for member in tf:
                try:
                    relative = validate_archive_member_path(member.name)
                except ValueError as exc:
                    raise ExtractError(archive, exc) from exc

                target = root / relative
                mode = member.mode & 0o7777

                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    if target != root:
                        dir_modes.append((target, mode))
                    continue

                if not member.isreg():
                    log.debug("Skipping %s entry %s", member.type, member.name)
                    skipped += 1
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                src = tf.extractfile(member)
                if src is None:
                    raise ExtractError(archive, f"no data for {member.name}")
                with src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst, length=_COPY_CHUNK)
                os.chmod(target, mode)
                extracted += 1
    except ExtractError:
        raise
    except (OSError, EOFError, tarfile.TarError, zlib.error) as exc:
        raise ExtractError(archive, exc) from exc

    for path, mode in reversed(dir_modes):
        try:
            os.chmod(path, mode)
        except OSError as exc:
            raise ExtractError(archive, exc) from exc

    log.info("Unpacked %s files from %s to %s (%s skipped)", extracted, archive.name, destination, skipped)
    return destination
