"""Gemini gateway for clothing synthesis and virtual try-on composition."""

import base64
import logging
from typing import Any, Protocol

import httpx
from google import genai
from google.genai import errors, types

from ..config import GeminiConfig
from ..errors import (
    EmptyPromptError,
    MissingCredentialError,
    NoImageReturnedError,
    RemoteError,
)

logger = logging.getLogger(__name__)


CLOTHING_PROMPT_TEMPLATE = (
    "Generate a high-quality, isolated fashion photo of a piece of clothing based on "
    "this description: \"{description}\". The background should be plain white or transparent."
)


TRYON_PROMPT = """You are an expert virtual try-on AI.
I have provided two images:
1. An image of a person.
2. An image of a piece of clothing.

Task: Generate a new, photorealistic full-body image of the person from the first image wearing the clothing from the second image.

Requirements:
- Preserve the person's identity, facial features, hair, and body shape as closely as possible.
- Fit the clothing naturally onto the person's body, respecting physics (folds, lighting, drape).
- Maintain a simple, clean, high-quality background.
- The output must be a full-body shot."""


class ClientProvider(Protocol):
    """Anything exposing a google-genai style client."""

    @property
    def client(self) -> Any: ...


class GeminiClientProvider:
    """Creates the google-genai client on first use and keeps it for the process lifetime."""

    def __init__(self, api_key: str | None):
        self.api_key = api_key
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        """Get or create the Gemini client.

        Raises:
            MissingCredentialError: No API key is configured
        """
        if self._client is None:
            if not self.api_key:
                logger.error("Gemini API key is missing; set GEMINI_API_KEY")
                raise MissingCredentialError(
                    "API key is missing. Set GEMINI_API_KEY in the environment or .env file."
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class GenerationGateway:
    """The two remote generation operations used by the wizard.

    Both operations are single best-effort calls: no retries and no model
    fallback. Responses are scanned part by part and the first part with
    inline image data wins; more than one image part may be present.
    """

    def __init__(self, provider: ClientProvider, config: GeminiConfig | None = None):
        self.provider = provider
        self.config = config or GeminiConfig()

    async def synthesize_clothing(self, prompt_text: str) -> str:
        """Generate an isolated clothing photo from a text description.

        Returns:
            Base64 image payload (no prefix)
        """
        if not prompt_text or not prompt_text.strip():
            raise EmptyPromptError("Clothing description must not be blank")

        text = CLOTHING_PROMPT_TEMPLATE.format(description=prompt_text)
        return await self._generate([types.Part.from_text(text=text)], "clothing")

    async def compose_try_on(self, person_payload: str, clothing_payload: str) -> str:
        """Render the person wearing the clothing.

        Args:
            person_payload: Base64 JPEG of the person
            clothing_payload: Base64 JPEG of the clothing

        Returns:
            Base64 image payload (no prefix)
        """
        parts = [
            types.Part.from_bytes(data=base64.b64decode(person_payload), mime_type="image/jpeg"),
            types.Part.from_bytes(data=base64.b64decode(clothing_payload), mime_type="image/jpeg"),
            types.Part.from_text(text=TRYON_PROMPT),
        ]
        return await self._generate(parts, "try-on")

    async def _generate(self, parts: list[types.Part], label: str) -> str:
        # Credential errors surface here, before any request is attempted
        client = self.provider.client

        logger.info("Requesting %s image from %s", label, self.config.model)
        try:
            response = await client.aio.models.generate_content(
                model=self.config.model,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    image_config=types.ImageConfig(aspect_ratio=self.config.aspect_ratio),
                ),
            )
        except (errors.APIError, httpx.HTTPError) as e:
            raise RemoteError(f"Gemini {label} request failed: {e}") from e

        payload = first_image_payload(response)
        if payload is None:
            raise NoImageReturnedError(f"No {label} image generated.")
        return payload


def first_image_payload(response: Any) -> str | None:
    """Return the first inline image of the first candidate as base64 text."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is None or not inline.data:
            continue
        data = inline.data
        if isinstance(data, bytes):
            return base64.b64encode(data).decode("ascii")
        return data
    return None
