"""Data models for the try-on studio."""

from .asset import ImageAsset
from .history import HistoryRecord
from .wizard import WizardState, WizardStep

__all__ = [
    "ImageAsset",
    "HistoryRecord",
    "WizardState",
    "WizardStep",
]
