"""Error taxonomy shared by the scan pipeline and the HTTP layer.

Every error carries an HTTP-style ``status_code`` plus optional ``details``
so the API layer can render it as ``{"error": ..., "details": ...}``
without knowing which stage raised it.
"""

from __future__ import annotations

from typing import Any


class BloomError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        details: Any = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(BloomError):
    status_code = 400


class ConfigurationError(BloomError):
    """Required credentials are missing. Fatal, never retried."""

    status_code = 500


class RemoteError(BloomError):
    """The vendor API answered with a non-2xx status.

    ``status`` is the vendor's status code and is propagated verbatim to the
    caller; ``body`` is the parsed response body (JSON object or raw text).
    """

    def __init__(self, status: int, body: Any, message: str | None = None) -> None:
        super().__init__(
            message or f"Haut API error {status}",
            details=body,
            status_code=status,
        )
        self.status = status
        self.body = body

    @property
    def retryable(self) -> bool:
        return is_retryable(self.status)


class SubjectCreationError(BloomError):
    """Vendor accepted the subject request but returned no identifier."""


class UploadInitError(BloomError):
    """Upload descriptor is missing the front image slot or the batch id."""


class StorageUploadError(BloomError):
    """The signed-URL upload failed. Fatal for this scan attempt."""

    def __init__(self, status: int, body: Any) -> None:
        super().__init__(
            f"Failed to upload image to storage ({status})",
            details={"status": status, "body": body},
        )
        self.status = status
        self.body = body


class ComputeTriggerError(RemoteError):
    def __init__(self, status: int, body: Any) -> None:
        super().__init__(status, body, message=f"Haut compute trigger failed ({status})")


class ResultTimeoutError(BloomError):
    status_code = 504


class ScanCancelledError(BloomError):
    """The caller abandoned the scan while results were being awaited."""

    status_code = 499


class GenerationError(BloomError):
    """The generative model provider failed to return text."""

    status_code = 502


class ParseRecoveryExhausted(Exception):
    """Internal to structured-output recovery; always resolved by fallback."""


def is_retryable(status: int) -> bool:
    """5xx and 429 are worth a fresh top-level retry; other 4xx are terminal."""
    return status == 429 or 500 <= status <= 599
