"""
Digest Checker

Resolves the digest a registry currently serves for an image's tag with a
manifest HEAD request (headers only, no manifest body) and annotates the
image with it. Failures are recorded on the returned image, never raised.
"""

import logging
from typing import Optional

from models.config_models import CheckerConfig
from updates.errors import DigestFetchError, RegistryRequestError
from updates.http_client import RetryingClient
from updates.image import Image, UpdateStatus, normalize_digest

logger = logging.getLogger(__name__)

MANIFEST_ACCEPT_HEADER = (
    "application/vnd.docker.distribution.manifest.list.v2+json,"
    "application/vnd.docker.distribution.manifest.v2+json,"
    "application/vnd.oci.image.index.v1+json,"
    "application/vnd.oci.image.manifest.v1+json"
)


def manifest_url(image: Image, config: CheckerConfig) -> str:
    return f"{config.registry_base_url(image.registry)}/v2/{image.repository}/manifests/{image.tag}"


async def fetch_remote_digest(
    image: Image,
    authorization: Optional[str],
    config: CheckerConfig,
    client: RetryingClient
) -> str:
    """
    Fetch the Docker-Content-Digest for image's tag.

    For multi-arch images this is the index digest, which is what
    `docker inspect` reports in RepoDigests.

    Raises:
        DigestFetchError: request failed, non-200 status, or no digest header
    """
    url = manifest_url(image, config)
    headers = {"Accept": MANIFEST_ACCEPT_HEADER}
    if authorization:
        headers["Authorization"] = authorization

    try:
        response = await client.request("HEAD", url, headers=headers)
    except RegistryRequestError as e:
        raise DigestFetchError(e.reason, registry=image.registry) from e

    if response.status == 401:
        raise DigestFetchError("authentication failed", registry=image.registry)
    if response.status == 404:
        raise DigestFetchError(f"{image.repository}:{image.tag} not found", registry=image.registry)
    if response.status != 200:
        raise DigestFetchError(f"registry returned {response.status}", registry=image.registry)

    digest = normalize_digest(response.header("Docker-Content-Digest"))
    if not digest:
        raise DigestFetchError("response has no Docker-Content-Digest header", registry=image.registry)
    return digest


async def check(
    image: Image,
    authorization: Optional[str],
    config: CheckerConfig,
    client: RetryingClient
) -> Image:
    """
    Check one image against its registry.

    Args:
        image: Image to check (not modified)
        authorization: Authorization header value for the image's registry, if any
        config: Checker configuration
        client: Shared retrying client

    Returns:
        Copy of image with latest_digest set, or with error set on failure
    """
    try:
        digest = await fetch_remote_digest(image, authorization, config, client)
    except DigestFetchError as e:
        logger.warning(f"Failed to resolve {image.reference}: {e}")
        return image.with_error(str(e))

    checked = image.with_latest_digest(digest)
    if checked.status == UpdateStatus.UPDATE_AVAILABLE:
        logger.info(f"Update available for {image.reference}: {image.current_digest[:19]} → {digest[:19]}")
    else:
        logger.debug(f"Resolved {image.reference} → {digest[:19]} ({checked.status.value})")
    return checked
