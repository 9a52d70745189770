"""
Update Checker Service

Checks a set of images for newer versions in their source registries.

Workflow:
1. Collect images from the container runtime plus any extra references
2. Group images by registry
3. For each registry, one at a time:
   - Probe whether the registry needs auth
   - Fetch one token covering every repository on that registry
4. Check every image's remote digest concurrently, reusing its registry's token
5. Return the annotated images (same order as collected)

A registry whose auth fails marks all of its images as failed; images on
other registries are still checked.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from models.config_models import CheckerConfig
from updates import digest_checker
from updates.errors import AuthProbeError, ReferenceParseError, TokenAcquisitionError
from updates.http_client import RetryingClient, RetryPolicy
from updates.image import Image, UpdateStatus
from updates.registry_auth import basic_authorization, check_auth, get_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryAuth:
    """Outcome of authenticating against one registry for one run."""
    authorization: Optional[str] = None     # Full header value ("Bearer ..." / "Basic ...")
    error: Optional[str] = None


@dataclass
class UpdateRun:
    """Result of one update-check run."""
    images: List[Image]
    invalid_references: Dict[str, str] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0


def group_by_registry(images: Sequence[Image]) -> Dict[str, List[int]]:
    """
    Index images by registry.

    Returns:
        registry → positions in `images`, registries in first-seen order
    """
    index: Dict[str, List[int]] = {}
    for position, image in enumerate(images):
        index.setdefault(image.registry, []).append(position)
    return index


def count_statuses(images: Sequence[Image]) -> Dict[str, int]:
    """Count images per UpdateStatus value."""
    counts = {status.value: 0 for status in UpdateStatus}
    for image in images:
        counts[image.status.value] += 1
    return counts


class UpdateChecker:
    """
    Orchestrates update checks across registries.

    The auth phase writes the per-registry authorization map; the digest
    phase only reads it, through a read-only view created once the auth
    phase is complete.
    """

    def __init__(
        self,
        config: CheckerConfig,
        image_lister=None,
        client: Optional[RetryingClient] = None
    ):
        """
        Initialize the checker.

        Args:
            config: Checker configuration (credentials, retry and concurrency settings)
            image_lister: Object with `async list_images(references)` returning
                images known to the container runtime; None checks only the
                references passed to run()
            client: Shared retrying client; if None a client is created and
                closed for each run
        """
        self.config = config
        self.image_lister = image_lister
        self.client = client

    def _create_client(self) -> RetryingClient:
        return RetryingClient(
            retry_policy=RetryPolicy(**self.config.retry.model_dump()),
            timeout=self.config.request_timeout,
        )

    async def get_updates(self, references: Optional[Sequence[str]] = None) -> List[Image]:
        """Check images and return them annotated with their latest digest or error."""
        run = await self.run(references)
        return run.images

    async def run(self, references: Optional[Sequence[str]] = None) -> UpdateRun:
        """
        Run a full update check.

        Args:
            references: Optional image references. Runtime images are filtered
                to these, and references the runtime does not know are
                checked as well.

        Returns:
            UpdateRun with every collected image annotated
        """
        started = time.monotonic()
        checked_at = datetime.now(timezone.utc)

        images, invalid_references = await self._collect_images(references)
        if not images:
            logger.info("No images to check")
            return UpdateRun(images=[], invalid_references=invalid_references, checked_at=checked_at)

        owns_client = self.client is None
        client = self._create_client() if owns_client else self.client
        try:
            index = group_by_registry(images)
            logger.info(f"Checking {len(images)} images across {len(index)} registries")

            registry_auth = await self._authenticate_registries(images, index, client)
            checked = await self._check_digests(images, registry_auth, client)
        finally:
            if owns_client:
                await client.close()

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Checked {len(checked)} images in {duration_ms}ms: {count_statuses(checked)}")
        return UpdateRun(
            images=checked,
            invalid_references=invalid_references,
            checked_at=checked_at,
            duration_ms=duration_ms,
        )

    async def _collect_images(
        self,
        references: Optional[Sequence[str]]
    ) -> Tuple[List[Image], Dict[str, str]]:
        """
        Gather runtime images plus references the runtime does not already cover.

        Returns:
            (images, invalid references mapped to the parse error reason)
        """
        images: List[Image] = []
        if self.image_lister is not None:
            images = list(await self.image_lister.list_images(references))

        invalid: Dict[str, str] = {}
        if not references:
            return images, invalid

        covered = {image.name for image in images}
        for reference in dict.fromkeys(references):
            try:
                image = Image.from_reference(reference)
            except ReferenceParseError as e:
                logger.error(str(e))
                invalid[reference] = e.reason
                continue

            if image.name in covered:
                continue
            covered.add(image.name)
            images.append(image)

        return images, invalid

    async def _authenticate_registries(
        self,
        images: Sequence[Image],
        index: Dict[str, List[int]],
        client: RetryingClient
    ) -> Mapping[str, RegistryAuth]:
        """Authenticate against each registry in turn. Returns a read-only map."""
        results: Dict[str, RegistryAuth] = {}
        for registry, positions in index.items():
            registry_images = [images[position] for position in positions]
            results[registry] = await self._authenticate(registry, registry_images, client)
        return MappingProxyType(results)

    async def _authenticate(
        self,
        registry: str,
        images: List[Image],
        client: RetryingClient
    ) -> RegistryAuth:
        credentials = self.config.credentials_for(registry)
        try:
            challenge = await check_auth(registry, self.config, client)
            if challenge is None:
                return RegistryAuth()

            if challenge.scheme == "basic":
                if credentials is None:
                    raise TokenAcquisitionError(
                        f"Registry {registry} requires basic auth but no credentials are configured",
                        registry=registry
                    )
                return RegistryAuth(authorization=basic_authorization(credentials))

            token = await get_token(images, challenge, credentials, client)
            return RegistryAuth(authorization=f"Bearer {token}")

        except (AuthProbeError, TokenAcquisitionError) as e:
            logger.error(f"Authentication failed for {registry}, marking {len(images)} image(s) as failed: {e}")
            return RegistryAuth(error=str(e))

    async def _check_digests(
        self,
        images: Sequence[Image],
        registry_auth: Mapping[str, RegistryAuth],
        client: RetryingClient
    ) -> List[Image]:
        """Check all images concurrently. Output order matches `images`."""
        semaphore = asyncio.Semaphore(self.config.max_concurrency) if self.config.max_concurrency else None

        async def check_one(image: Image) -> Image:
            auth = registry_auth[image.registry]
            if auth.error is not None:
                return image.with_error(auth.error)
            if semaphore is None:
                return await digest_checker.check(image, auth.authorization, self.config, client)
            async with semaphore:
                return await digest_checker.check(image, auth.authorization, self.config, client)

        results = await asyncio.gather(*(check_one(image) for image in images), return_exceptions=True)

        checked: List[Image] = []
        for image, result in zip(images, results):
            if isinstance(result, Exception):
                logger.error(f"Unexpected error checking {image.reference}: {result}", exc_info=result)
                checked.append(image.with_error(f"unexpected error: {result}"))
            elif isinstance(result, BaseException):
                raise result
            else:
                checked.append(result)
        return checked
