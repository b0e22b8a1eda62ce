from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Asset:
    name: str
    url: str


@dataclass(frozen=True)
class Release:
    tag_name: str
    assets: tuple[Asset, ...]


@dataclass(frozen=True)
class FetchResult:
    tag_name: str
    destination: Path
    binary_path: Path
    sha256: str
