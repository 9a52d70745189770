"""
Error types for registry update checks.

Only ReferenceParseError escapes to callers directly. Everything else is
raised inside the registry layer and converted into a per-image error by
the update checker, so one bad registry or image never aborts a run.
"""

from typing import Optional


class RegistryError(Exception):
    """Base class for all registry related failures."""

    def __init__(self, message: str, registry: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.registry = registry

    def __str__(self) -> str:
        return self.message


class ReferenceParseError(RegistryError, ValueError):
    """Image reference string could not be parsed."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"Invalid image reference '{reference}': {reason}")
        self.reference = reference
        self.reason = reason


class TransientNetworkError(RegistryError):
    """Retryable failure (connection error, timeout, 5xx, 429). Never leaves the HTTP client."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RegistryRequestError(RegistryError):
    """A registry request failed for good (retries exhausted or non-retryable error)."""

    def __init__(self, url: str, reason: str, attempts: int = 1):
        super().__init__(f"Request to {url} failed after {attempts} attempt(s): {reason}")
        self.url = url
        self.reason = reason
        self.attempts = attempts


class AuthProbeError(RegistryError):
    """Registry auth probe gave no usable answer."""


class TokenAcquisitionError(RegistryError):
    """Bearer token could not be obtained from the registry's auth realm."""


class DigestFetchError(RegistryError):
    """Remote manifest digest could not be resolved for one image."""
