# Test fixtures and configuration
import io
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from PIL import Image

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from vton_studio.config import GeminiConfig  # noqa: E402
from vton_studio.pipeline import WizardController  # noqa: E402
from vton_studio.services import BlobStore, GenerationGateway, ImagePreprocessor  # noqa: E402
from vton_studio.utils import counter_ids  # noqa: E402


def fake_provider(generate_content: AsyncMock) -> SimpleNamespace:
    """A client provider whose client only implements aio.models.generate_content."""
    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
    return SimpleNamespace(client=client, configured=True)


@pytest.fixture
def make_image_bytes():
    """Factory for encoded test images of a given size."""
    def make(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
        color = (200, 40, 40, 128) if mode == "RGBA" else (200, 40, 40)
        img = Image.new(mode, (width, height), color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()
    return make


@pytest.fixture
def temp_image_file(tmp_path, make_image_bytes):
    """Create a temporary 1200x600 PNG file."""
    img_path = tmp_path / "test_image.png"
    img_path.write_bytes(make_image_bytes(1200, 600))
    return img_path


@pytest.fixture
def blob_store():
    return BlobStore()


@pytest.fixture
def preprocessor(blob_store):
    return ImagePreprocessor(blob_store)


@pytest.fixture
def mock_gateway():
    """Gateway double returning fixed payloads."""
    gateway = GenerationGateway(fake_provider(AsyncMock()), GeminiConfig())
    gateway.synthesize_clothing = AsyncMock(return_value="xyz789")
    gateway.compose_try_on = AsyncMock(return_value="abc123")
    return gateway


@pytest.fixture
def controller(mock_gateway, preprocessor):
    """Wizard controller with a mocked gateway and deterministic ids."""
    return WizardController(
        gateway=mock_gateway,
        preprocessor=preprocessor,
        id_factory=counter_ids(),
    )
