"""
Updates Module

Registry update checks for container images. Read-only: nothing here pulls
or modifies images.

Architecture:
- UpdateChecker: Orchestrator (group by registry, auth once per registry, concurrent digest checks)
- registry_auth: Auth probe and token acquisition
- digest_checker: Manifest digest lookup for one image
- RetryingClient: Shared HTTP client with bounded retry and backoff

Import UpdateChecker from updates.update_checker; it depends on
models.config_models, which itself imports updates.image.
"""

from updates.errors import (
    RegistryError,
    ReferenceParseError,
    RegistryRequestError,
    AuthProbeError,
    TokenAcquisitionError,
    DigestFetchError,
)
from updates.http_client import RetryingClient, RetryPolicy, RegistryResponse
from updates.image import Image, UpdateStatus, normalize_digest

__all__ = [
    'Image',
    'UpdateStatus',
    'normalize_digest',
    'RetryingClient',
    'RetryPolicy',
    'RegistryResponse',
    'RegistryError',
    'ReferenceParseError',
    'RegistryRequestError',
    'AuthProbeError',
    'TokenAcquisitionError',
    'DigestFetchError',
]
