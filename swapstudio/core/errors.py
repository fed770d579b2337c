"""
Error taxonomy for the swap and generation pipelines.

Every error raised by the pipeline carries a ``kind`` (stable identifier that is
safe to return to clients) and the HTTP status code the API boundary maps it to.
Analysis degradation has no exception class: the image analysis stage
absorbs it and logs a warning.
"""

from typing import Optional


class SwapStudioError(Exception):
    """Base class for errors that terminate a pipeline run."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequestError(SwapStudioError):
    """Required inputs are missing or malformed. Raised before any network call."""

    kind = "InvalidRequest"
    status_code = 400


class AssetUnavailableError(SwapStudioError):
    """An input image could not be fetched or decoded."""

    kind = "AssetUnavailable"
    status_code = 400


class GatewayNotConfiguredError(SwapStudioError):
    """No generation client is available (missing API key)."""

    kind = "GatewayNotConfigured"
    status_code = 503


class GenerationTransportError(SwapStudioError):
    """A call to the generation capability raised (network, quota, server error)."""

    kind = "GenerationTransportFailure"
    status_code = 500

    def __init__(self, message: str, model_id: Optional[str] = None):
        super().__init__(message)
        self.model_id = model_id


class GenerationUnavailableError(SwapStudioError):
    """Every permitted generation attempt failed at the transport level."""

    kind = "GenerationUnavailable"
    status_code = 500


class NoImageProducedError(SwapStudioError):
    """The model answered successfully but the response holds no image part."""

    kind = "NoImageProduced"
    status_code = 500
