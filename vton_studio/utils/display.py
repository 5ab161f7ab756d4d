"""Helpers for turning encoded payloads into displayable references.

Payloads are stored as bare base64 text. Only display-facing values
(results, generated clothing locations) carry a ``data:`` prefix.
"""

ADDRESSABLE_PREFIXES = ("http://", "https://", "blob:", "data:")


def to_data_url(payload: str, mime_type: str = "image/jpeg") -> str:
    """Wrap a bare base64 payload in a data URL."""
    return f"data:{mime_type};base64,{payload}"


def strip_data_prefix(value: str) -> str:
    """Return the base64 part of a data URL, or the value unchanged."""
    if value.startswith("data:"):
        _, encoded = value.split(",", 1)
        return encoded
    return value


def display_url(ref: str | None) -> str:
    """Return something an <img> tag can render.

    Addressable references pass through; anything else is assumed to be a
    bare JPEG payload.
    """
    if not ref:
        return ""
    if ref.startswith(ADDRESSABLE_PREFIXES):
        return ref
    return to_data_url(ref)
