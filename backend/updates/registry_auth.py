"""
Registry Authentication

Discovers whether a registry needs token auth and fetches one bearer token
per registry covering every repository checked in a run.

Follows the Docker Registry V2 token flow:
1. GET /v2/ without credentials
2. 200 → anonymous access, no token needed
3. 401 → parse WWW-Authenticate to find the token realm and service
4. GET realm?service=...&scope=repository:a:pull&scope=repository:b:pull
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from models.config_models import CheckerConfig, RegistryCredential
from updates.errors import AuthProbeError, RegistryRequestError, TokenAcquisitionError
from updates.http_client import RetryingClient
from updates.image import Image

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class AuthChallenge:
    """Parsed WWW-Authenticate challenge."""
    scheme: str                      # "bearer" or "basic"
    realm: str
    service: Optional[str] = None


def parse_www_authenticate(header: Optional[str]) -> Optional[AuthChallenge]:
    """
    Parse a WWW-Authenticate header.

    Example:
        Input:  'Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="repository:user/app:pull"'
        Output: AuthChallenge(scheme="bearer", realm="https://ghcr.io/token", service="ghcr.io")

    Returns:
        AuthChallenge, or None if the header is missing, uses another scheme
        or a bearer challenge has no realm
    """
    if not header:
        return None

    scheme, _, params_str = header.strip().partition(" ")
    scheme = scheme.lower()
    if scheme not in ("bearer", "basic"):
        logger.warning(f"Unexpected WWW-Authenticate scheme: {header[:20]}")
        return None

    params = {key.lower(): value for key, value in _CHALLENGE_PARAM_PATTERN.findall(params_str)}

    if scheme == "basic":
        return AuthChallenge(scheme="basic", realm=params.get("realm", ""))

    if not params.get("realm"):
        logger.warning("WWW-Authenticate missing 'realm' parameter")
        return None

    return AuthChallenge(scheme="bearer", realm=params["realm"], service=params.get("service"))


def basic_authorization(credentials: RegistryCredential) -> str:
    """Encode credentials as a Basic Authorization header value."""
    raw = f"{credentials.username}:{credentials.password}"
    return f"Basic {base64.b64encode(raw.encode()).decode()}"


async def check_auth(
    registry: str,
    config: CheckerConfig,
    client: RetryingClient
) -> Optional[AuthChallenge]:
    """
    Probe a registry to find out whether it requires authentication.

    Args:
        registry: Registry host (e.g., "ghcr.io", "localhost:5000")
        config: Checker configuration (insecure registries use plain HTTP)
        client: Shared retrying client

    Returns:
        None if the registry allows anonymous access, else the parsed challenge

    Raises:
        AuthProbeError: request failed, unexpected status, or unusable challenge
    """
    probe_url = f"{config.registry_base_url(registry)}/v2/"

    try:
        response = await client.request("GET", probe_url)
    except RegistryRequestError as e:
        raise AuthProbeError(f"Auth probe for {registry} failed: {e.reason}", registry=registry) from e

    if response.ok:
        logger.debug(f"Registry {registry} allows anonymous access")
        return None

    if response.status == 401:
        www_auth = response.header("WWW-Authenticate")
        if not www_auth:
            raise AuthProbeError(
                f"Registry {registry} returned 401 without a WWW-Authenticate header",
                registry=registry
            )
        challenge = parse_www_authenticate(www_auth)
        if challenge is None:
            raise AuthProbeError(
                f"Registry {registry} sent an unusable auth challenge: {www_auth[:100]}",
                registry=registry
            )
        logger.debug(f"Registry {registry} requires {challenge.scheme} auth (realm={challenge.realm})")
        return challenge

    raise AuthProbeError(
        f"Unexpected status {response.status} during auth probe for {registry}",
        registry=registry
    )


def build_scopes(images: Iterable[Image]) -> List[str]:
    """One pull scope per distinct repository, in first-seen order."""
    repositories = dict.fromkeys(image.repository for image in images)
    return [f"repository:{repository}:pull" for repository in repositories]


async def get_token(
    images: Iterable[Image],
    challenge: AuthChallenge,
    credentials: Optional[RegistryCredential],
    client: RetryingClient
) -> str:
    """
    Fetch a single bearer token covering every repository in `images`.

    Args:
        images: Images on one registry (duplicates share a scope)
        challenge: Bearer challenge returned by check_auth
        credentials: Optional credentials (sent as Basic auth to the realm)
        client: Shared retrying client

    Returns:
        Raw token string (without the "Bearer " prefix)

    Raises:
        TokenAcquisitionError: request failed, was rejected, or returned no token
    """
    scopes = build_scopes(images)
    params: List[Tuple[str, str]] = []
    if challenge.service:
        params.append(("service", challenge.service))
    params.extend(("scope", scope) for scope in scopes)

    headers: Dict[str, str] = {}
    if credentials:
        headers["Authorization"] = basic_authorization(credentials)

    try:
        response = await client.request("GET", challenge.realm, headers=headers, params=params)
    except RegistryRequestError as e:
        raise TokenAcquisitionError(f"Token request to {challenge.realm} failed: {e.reason}") from e

    if response.status != 200:
        snippet = response.body[:200].decode("utf-8", errors="replace")
        raise TokenAcquisitionError(
            f"Token request to {challenge.realm} failed with status {response.status}: {snippet}"
        )

    try:
        data = response.json()
    except ValueError as e:
        raise TokenAcquisitionError(f"Token endpoint {challenge.realm} returned invalid JSON: {e}") from e

    token = None
    if isinstance(data, dict):
        token = data.get("token") or data.get("access_token")
    if not token:
        raise TokenAcquisitionError(f"Token endpoint {challenge.realm} returned 200 but no token in response")

    logger.debug(f"Obtained token from {challenge.realm} for {len(scopes)} scope(s)")
    return token
