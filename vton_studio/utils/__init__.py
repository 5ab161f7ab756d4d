"""Utility helpers for the try-on studio."""

from .display import display_url, strip_data_prefix, to_data_url
from .ids import counter_ids, uuid_ids

__all__ = [
    "display_url",
    "strip_data_prefix",
    "to_data_url",
    "counter_ids",
    "uuid_ids",
]
