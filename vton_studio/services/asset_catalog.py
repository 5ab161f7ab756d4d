"""Ordered, newest-first collections of selectable assets."""

from collections import deque
from typing import Iterable, Iterator

from ..errors import DuplicateAssetError
from ..models import ImageAsset


class AssetCatalog:
    """Prepend-only catalog of person or clothing assets."""

    def __init__(self, assets: Iterable[ImageAsset] = ()):
        self._assets: deque[ImageAsset] = deque()
        self._by_id: dict[str, ImageAsset] = {}
        for asset in assets:
            self._assets.append(self._register(asset))

    @classmethod
    def from_locations(cls, prefix: str, locations: Iterable[str]) -> "AssetCatalog":
        """Build a catalog of preset assets, keeping the given order."""
        return cls(
            ImageAsset(id=f"{prefix}-{i}", display_location=location)
            for i, location in enumerate(locations, start=1)
        )

    def _register(self, asset: ImageAsset) -> ImageAsset:
        if asset.id in self._by_id:
            raise DuplicateAssetError(f"Asset id already in catalog: {asset.id}")
        self._by_id[asset.id] = asset
        return asset

    def prepend(self, asset: ImageAsset) -> ImageAsset:
        """Insert an asset at the front of the catalog."""
        self._assets.appendleft(self._register(asset))
        return asset

    def find_by_id(self, asset_id: str | None) -> ImageAsset | None:
        """Look up an asset. None means no such asset, which is a valid empty selection."""
        if asset_id is None:
            return None
        return self._by_id.get(asset_id)

    def all(self) -> tuple[ImageAsset, ...]:
        return tuple(self._assets)

    def __iter__(self) -> Iterator[ImageAsset]:
        return iter(tuple(self._assets))

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._by_id
