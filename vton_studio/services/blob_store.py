"""In-memory store for uploaded image bytes, addressed by ``blob:`` handles."""

import uuid

BLOB_SCHEME = "blob:"


class BlobStore:
    """Holds raw uploads so assets can reference them by a short handle."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}

    def create(self, data: bytes) -> str:
        """Register bytes and return a new ``blob:`` handle for them."""
        ref = f"{BLOB_SCHEME}{uuid.uuid4().hex}"
        self._blobs[ref] = data
        return ref

    def resolve(self, ref: str) -> bytes:
        """Return the bytes behind a handle. Raises KeyError if revoked or unknown."""
        return self._blobs[ref]

    def revoke(self, ref: str) -> None:
        """Release a handle. Unknown handles are ignored."""
        self._blobs.pop(ref, None)

    def clear(self) -> None:
        self._blobs.clear()

    def __contains__(self, ref: object) -> bool:
        return ref in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
