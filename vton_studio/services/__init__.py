"""Services for the try-on studio."""

from .asset_catalog import AssetCatalog
from .blob_store import BlobStore
from .gemini_gateway import GeminiClientProvider, GenerationGateway
from .history_cache import HistoryCache
from .image_preprocessor import ImagePreprocessor

__all__ = [
    "AssetCatalog",
    "BlobStore",
    "GeminiClientProvider",
    "GenerationGateway",
    "HistoryCache",
    "ImagePreprocessor",
]
