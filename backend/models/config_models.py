"""
Configuration Models for dockcup
Pydantic models for registry credentials, retry tuning and checker settings
"""

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from updates.image import DEFAULT_REGISTRY, DOCKER_HUB_ALIASES


class RegistryCredential(BaseModel):
    """Username/secret pair for one registry"""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    def __repr__(self) -> str:
        return f"RegistryCredential(username={self.username!r}, password='***')"


class RetrySettings(BaseModel):
    """Retry and backoff settings for registry requests"""
    max_retries: int = Field(3, ge=0, le=10)
    initial_delay: float = Field(0.5, ge=0)
    max_delay: float = Field(8.0, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1)
    jitter: bool = False


def _normalize_registry(value: str) -> str:
    """Lowercase a registry host and drop any scheme or trailing slash."""
    value = re.sub(r'^https?://', '', value.strip().lower()).rstrip('/')
    # "docker.io" in a config file means Docker Hub
    if value in DOCKER_HUB_ALIASES:
        return DEFAULT_REGISTRY
    return value


class CheckerConfig(BaseModel):
    """
    Settings for an update-check run.

    Loaded from the JSON/YAML config file (see config.loader); every field
    has a default so an empty file is a valid configuration.
    """
    authentication: Dict[str, RegistryCredential] = Field(default_factory=dict)
    insecure_registries: List[str] = Field(default_factory=list)
    socket: Optional[str] = None
    request_timeout: float = Field(10.0, gt=0, le=300)
    # None = launch every digest check at once
    max_concurrency: Optional[int] = Field(None, ge=1)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator('authentication')
    @classmethod
    def normalize_authentication_keys(cls, v: Dict[str, RegistryCredential]) -> Dict[str, RegistryCredential]:
        """Registry hosts are matched case-insensitively"""
        normalized = {}
        for registry, credential in v.items():
            key = _normalize_registry(registry)
            if not key:
                raise ValueError('Registry name in authentication cannot be empty')
            normalized[key] = credential
        return normalized

    @field_validator('insecure_registries')
    @classmethod
    def normalize_insecure_registries(cls, v: List[str]) -> List[str]:
        return [_normalize_registry(registry) for registry in v if registry.strip()]

    def credentials_for(self, registry: str) -> Optional[RegistryCredential]:
        """Look up credentials by registry host. None means anonymous access."""
        return self.authentication.get(_normalize_registry(registry))

    def is_insecure(self, registry: str) -> bool:
        return _normalize_registry(registry) in self.insecure_registries

    def registry_base_url(self, registry: str) -> str:
        """Base URL for registry API calls (plain HTTP only for insecure registries)"""
        scheme = "http" if self.is_insecure(registry) else "https"
        return f"{scheme}://{registry}"
