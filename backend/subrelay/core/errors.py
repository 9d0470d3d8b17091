"""Error taxonomy shared by the pipeline, the cache store and the HTTP layer."""


class SubRelayError(Exception):
    """Base error. ``http_status`` is used when the error reaches a non-streaming route."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(SubRelayError):
    """A required key or secret is missing."""

    http_status = 500


class ValidationError(SubRelayError):
    """Malformed URL, id or query parameter."""

    http_status = 400


class NotFoundError(SubRelayError):
    http_status = 404


class UpstreamError(SubRelayError):
    """Download, translation or metadata backend failed."""

    http_status = 502


class RequestRejectedError(UpstreamError):
    """The backend refused the request itself (bad key, unknown model); not retried."""


class StorageError(SubRelayError):
    """Writing to the cache store failed."""

    http_status = 500
