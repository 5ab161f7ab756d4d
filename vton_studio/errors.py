"""Error taxonomy for the try-on studio."""


class StudioError(Exception):
    """Base class for all studio errors."""


class DecodeError(StudioError):
    """The image source could not be resolved or decoded."""


class RenderError(StudioError):
    """The image could not be resized or re-encoded."""


class EmptyPromptError(StudioError, ValueError):
    """Clothing synthesis was requested with blank prompt text."""


class NoImageReturnedError(StudioError):
    """The model response did not contain any inline image data."""


class RemoteError(StudioError):
    """Transport, auth or service failure talking to the image model."""


class MissingCredentialError(StudioError):
    """No API key is configured for the image model."""


class DuplicateAssetError(StudioError, ValueError):
    """An id is already present in a catalog or history."""
