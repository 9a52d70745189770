"""
Unit tests for local image discovery.

Uses a mocked Docker SDK client; verifies the RepoTags/RepoDigests mapping,
reference filtering and that an unreachable daemon yields no images.
"""

import pytest
from unittest.mock import MagicMock, patch

from docker.errors import DockerException

from docker_monitor.image_discovery import DockerImageLister, find_repo_digest
from tests.conftest import DIGEST_1, DIGEST_2


def docker_image(repo_tags, repo_digests=None):
    image = MagicMock()
    image.attrs = {"RepoTags": repo_tags, "RepoDigests": repo_digests or []}
    return image


class TestFindRepoDigest:

    def test_matching_repository(self):
        digests = [f"ghcr.io/other/app@{DIGEST_2}", f"ghcr.io/org/app@{DIGEST_1}"]

        assert find_repo_digest("ghcr.io/org/app:1.0", digests) == DIGEST_1

    def test_docker_hub_short_names_match(self):
        assert find_repo_digest("nginx:latest", [f"nginx@{DIGEST_1}"]) == DIGEST_1
        assert find_repo_digest("nginx:latest", [f"docker.io/library/nginx@{DIGEST_1}"]) == DIGEST_1

    def test_locally_built_image(self):
        assert find_repo_digest("myapp:dev", []) is None


class TestDockerImageLister:

    @pytest.mark.asyncio
    async def test_maps_tags_and_digests(self, mock_docker_client):
        mock_docker_client.images.list.return_value = [
            docker_image(["nginx:1.25", "nginx:latest"], [f"nginx@{DIGEST_1}"]),
            docker_image(["ghcr.io/org/app:2"], [f"ghcr.io/org/app@{DIGEST_2}"]),
        ]
        lister = DockerImageLister(client=mock_docker_client)

        images = await lister.list_images()

        assert [image.reference for image in images] == ["nginx:1.25", "nginx:latest", "ghcr.io/org/app:2"]
        assert images[0].current_digest == DIGEST_1
        assert images[2].current_digest == DIGEST_2

    @pytest.mark.asyncio
    async def test_skips_untagged_and_duplicate_images(self, mock_docker_client):
        mock_docker_client.images.list.return_value = [
            docker_image(["<none>:<none>"]),
            docker_image(None),
            docker_image(["redis:7", "docker.io/library/redis:7"]),
        ]
        lister = DockerImageLister(client=mock_docker_client)

        images = await lister.list_images()

        assert [image.reference for image in images] == ["redis:7"]
        assert images[0].current_digest is None

    @pytest.mark.asyncio
    async def test_filters_by_reference(self, mock_docker_client):
        mock_docker_client.images.list.return_value = [
            docker_image(["nginx:1.25"]),
            docker_image(["redis:7"]),
        ]
        lister = DockerImageLister(client=mock_docker_client)

        images = await lister.list_images(["docker.io/library/redis:7", "not a reference"])

        assert [image.reference for image in images] == ["redis:7"]

    @pytest.mark.asyncio
    async def test_docker_unavailable_fails_open(self, mock_docker_client):
        mock_docker_client.images.list.side_effect = DockerException("Error while fetching server API version")
        lister = DockerImageLister(client=mock_docker_client)

        assert await lister.list_images() == []

    def test_socket_path_becomes_unix_url(self):
        with patch("docker_monitor.image_discovery.docker.DockerClient") as mock_client_cls:
            DockerImageLister(socket="/var/run/docker.sock")._get_client()

        mock_client_cls.assert_called_once_with(base_url="unix:///var/run/docker.sock")

    def test_default_client_from_env(self):
        with patch("docker_monitor.image_discovery.docker.from_env") as mock_from_env:
            DockerImageLister()._get_client()

        mock_from_env.assert_called_once()

    def test_close(self, mock_docker_client):
        lister = DockerImageLister(client=mock_docker_client)

        lister.close()

        mock_docker_client.close.assert_called_once()
        assert lister._client is None
