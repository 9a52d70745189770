"""
Image Discovery Module for dockcup
Lists locally known images (and their pulled digests) from the Docker Engine
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Set, Tuple

import docker
from docker import DockerClient
from docker.errors import DockerException

from updates.errors import ReferenceParseError
from updates.image import Image

logger = logging.getLogger(__name__)


def _repository_key(reference: str) -> Optional[Tuple[str, str]]:
    """(registry, repository) for a reference, or None if it cannot be parsed"""
    try:
        image = Image.from_reference(reference)
    except ReferenceParseError:
        return None
    return image.registry, image.repository


def find_repo_digest(repo_tag: str, repo_digests: Sequence[str]) -> Optional[str]:
    """
    Find the digest an image tag was pulled with.

    RepoDigests is a list like ["ghcr.io/org/app@sha256:abc123..."]; the
    entry for the same registry/repository as repo_tag wins.

    Returns:
        Digest (e.g., "sha256:abc123...") or None for locally built images
    """
    tag_key = _repository_key(repo_tag)
    if tag_key is None:
        return None

    for repo_digest in repo_digests:
        name, sep, digest = repo_digest.partition("@")
        if sep and _repository_key(name) == tag_key:
            return digest
    return None


class DockerImageLister:
    """
    Reads images from the Docker Engine.

    Fails open: when the daemon is unreachable the lister logs a warning and
    returns an empty list, so explicitly requested references are still checked.
    """

    def __init__(self, socket: Optional[str] = None, client: Optional[DockerClient] = None):
        """
        Args:
            socket: Docker socket path or URL (default: DOCKER_HOST / local socket)
            client: Preconfigured Docker client (mainly for tests)
        """
        self.socket = socket
        self._client = client

    def _get_client(self) -> DockerClient:
        if self._client is None:
            if self.socket:
                base_url = self.socket if "://" in self.socket else f"unix://{self.socket}"
                self._client = docker.DockerClient(base_url=base_url)
            else:
                self._client = docker.from_env()
        return self._client

    async def list_images(self, references: Optional[Sequence[str]] = None) -> List[Image]:
        """
        List local images, optionally filtered to the given references.

        Returns:
            One Image per repository tag, with current_digest from RepoDigests
        """
        try:
            # Docker SDK is blocking - keep it off the event loop
            return await asyncio.to_thread(self._list_images_sync, references)
        except (DockerException, OSError) as e:
            logger.warning(f"Could not list images from Docker, continuing without them: {e}")
            return []

    def _list_images_sync(self, references: Optional[Sequence[str]]) -> List[Image]:
        wanted: Optional[Set[str]] = None
        if references:
            wanted = set()
            for reference in references:
                try:
                    wanted.add(Image.from_reference(reference).name)
                except ReferenceParseError:
                    continue  # reported by the update checker

        client = self._get_client()
        images: List[Image] = []
        seen: Set[str] = set()

        for docker_image in client.images.list():
            attrs = docker_image.attrs or {}
            repo_digests = attrs.get("RepoDigests") or []

            for repo_tag in attrs.get("RepoTags") or []:
                if repo_tag.startswith("<none>"):
                    continue
                try:
                    image = Image.from_reference(repo_tag, current_digest=find_repo_digest(repo_tag, repo_digests))
                except ReferenceParseError as e:
                    logger.debug(f"Skipping local image tag: {e}")
                    continue

                if wanted is not None and image.name not in wanted:
                    continue
                if image.name in seen:
                    continue
                seen.add(image.name)
                images.append(image)

        logger.debug(f"Found {len(images)} local image tags")
        return images

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None
