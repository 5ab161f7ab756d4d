"""Virtual try-on studio: person/clothing selection wizard backed by Gemini image generation."""

__version__ = "1.0.0"
