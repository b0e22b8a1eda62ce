from modelci.kit.release_fetcher import ReleaseFetcher, select_assets
from modelci.kit.service import KitOptions, KitService

__all__ = [
    "KitOptions",
    "KitService",
    "ReleaseFetcher",
    "select_assets",
]
