"""
Image value entity for update checks.

An Image pairs a parsed reference (registry, repository, tag) with the
digest known locally and, once checked, the digest currently published by
the registry. Images are immutable: the digest checker hands back annotated
copies so the same input list can be shared across concurrent tasks.

Reference parsing follows the Docker CLI rules:
    nginx                      → registry-1.docker.io, library/nginx, latest
    linuxserver/sabnzbd:4      → registry-1.docker.io, linuxserver/sabnzbd, 4
    ghcr.io/org/app:v1.0       → ghcr.io, org/app, v1.0
    localhost:5000/app@sha256… → rejected (pinned by digest, no tag to track)
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from updates.errors import ReferenceParseError


DEFAULT_REGISTRY = "registry-1.docker.io"
DOCKER_HUB_ALIASES = {"docker.io", "index.docker.io", "registry.hub.docker.com", DEFAULT_REGISTRY}
DEFAULT_NAMESPACE = "library"
DEFAULT_TAG = "latest"

# Docker reference grammar (lowercased before matching where applicable)
_PATH_COMPONENT_PATTERN = re.compile(r'^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$')
_TAG_PATTERN = re.compile(r'^[\w][\w.-]{0,127}$')
_DIGEST_PATTERN = re.compile(r'^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-f0-9]{32,}$')
_REGISTRY_PATTERN = re.compile(r'^[a-z0-9](?:[a-z0-9.-]*[a-z0-9])?(?::[0-9]+)?$')
_BARE_SHA256_PATTERN = re.compile(r'^[a-f0-9]{64}$')


class UpdateStatus(Enum):
    """Outcome of comparing local and remote digests."""
    PENDING = "pending"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    UNKNOWN = "unknown"  # Remote digest known, nothing local to compare against
    ERROR = "error"


def normalize_digest(digest: Optional[str]) -> Optional[str]:
    """
    Normalize a digest string for comparison.

    Strips whitespace and lowercases the whole value so "SHA256:ABC" and
    "sha256:abc" compare equal. A bare 64-char hex string is assumed to be
    sha256.

    Returns:
        Normalized digest, or None for None/empty input
    """
    if digest is None:
        return None
    value = digest.strip().lower()
    if not value:
        return None
    if ":" not in value and _BARE_SHA256_PATTERN.match(value):
        value = f"sha256:{value}"
    return value


@dataclass(frozen=True)
class Image:
    """
    A single image reference and its update-check state.

    latest_digest and error are mutually exclusive results: both None means
    the image has not been checked yet.
    """
    reference: str
    registry: str
    repository: str
    tag: str = DEFAULT_TAG
    current_digest: Optional[str] = None
    latest_digest: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if not self.registry:
            raise ReferenceParseError(self.reference, "registry is empty")
        if not self.repository:
            raise ReferenceParseError(self.reference, "repository is empty")

    @classmethod
    def from_reference(cls, reference: str, current_digest: Optional[str] = None) -> 'Image':
        """
        Parse an image reference into an Image.

        Args:
            reference: Image reference (e.g., "nginx", "ghcr.io/org/app:v1", "app:1@sha256:...")
            current_digest: Digest known locally, if any

        Raises:
            ReferenceParseError: reference is malformed
        """
        ref = reference.strip() if reference else ""
        if not ref:
            raise ReferenceParseError(reference, "reference is empty")
        if "://" in ref:
            raise ReferenceParseError(reference, "references must not include a URL scheme")

        pinned_digest = None
        if "@" in ref:
            ref, pinned = ref.split("@", 1)
            pinned_digest = normalize_digest(pinned)
            if not pinned_digest or not _DIGEST_PATTERN.match(pinned_digest):
                raise ReferenceParseError(reference, f"invalid digest '{pinned}'")

        name, tag = ref, None
        if ":" in name.rsplit("/", 1)[-1]:
            name, tag = name.rsplit(":", 1)
            if not _TAG_PATTERN.match(tag):
                raise ReferenceParseError(reference, f"invalid tag '{tag}'")

        if tag is None:
            if pinned_digest:
                raise ReferenceParseError(reference, "pinned by digest without a tag to track")
            tag = DEFAULT_TAG

        parts = name.split("/")
        first = parts[0]
        if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
            registry = first.lower()
            path = parts[1:]
        else:
            registry = DEFAULT_REGISTRY
            path = parts

        if registry in DOCKER_HUB_ALIASES:
            registry = DEFAULT_REGISTRY
        elif not _REGISTRY_PATTERN.match(registry):
            raise ReferenceParseError(reference, f"invalid registry host '{registry}'")

        for component in path:
            if not _PATH_COMPONENT_PATTERN.match(component):
                raise ReferenceParseError(reference, f"invalid repository component '{component}'")

        # Official Docker Hub images live under library/
        if registry == DEFAULT_REGISTRY and len(path) == 1:
            path = [DEFAULT_NAMESPACE] + path

        return cls(
            reference=reference.strip(),
            registry=registry,
            repository="/".join(path),
            tag=tag,
            current_digest=normalize_digest(current_digest) or pinned_digest,
        )

    @property
    def name(self) -> str:
        """Canonical registry/repository:tag, used to detect duplicate references."""
        return f"{self.registry}/{self.repository}:{self.tag}"

    @property
    def status(self) -> UpdateStatus:
        if self.error is not None:
            return UpdateStatus.ERROR
        if self.latest_digest is None:
            return UpdateStatus.PENDING
        if self.current_digest is None:
            return UpdateStatus.UNKNOWN
        if normalize_digest(self.current_digest) == normalize_digest(self.latest_digest):
            return UpdateStatus.UP_TO_DATE
        return UpdateStatus.UPDATE_AVAILABLE

    @property
    def update_available(self) -> Optional[bool]:
        """True/False when a verdict exists, None for pending, unknown or failed checks."""
        status = self.status
        if status == UpdateStatus.UPDATE_AVAILABLE:
            return True
        if status == UpdateStatus.UP_TO_DATE:
            return False
        return None

    def with_latest_digest(self, digest: str) -> 'Image':
        return replace(self, latest_digest=normalize_digest(digest), error=None)

    def with_error(self, reason: str) -> 'Image':
        return replace(self, latest_digest=None, error=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "registry": self.registry,
            "repository": self.repository,
            "tag": self.tag,
            "current_digest": self.current_digest,
            "latest_digest": self.latest_digest,
            "status": self.status.value,
            "update_available": self.update_available,
            "error": self.error,
        }
