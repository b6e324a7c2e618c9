"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping

HOST_ENV = "NEXTCLOUD_HOST"
USERNAME_ENV = "NEXTCLOUD_USERNAME"
PASSWORD_ENV = "NEXTCLOUD_PASSWORD"


@dataclass(slots=True)
class SearchConfig:
    """Limits and cache lifetimes for the search pipeline (seconds, bytes)."""

    index_ttl: float = 15 * 60
    content_ttl: float = 5 * 60
    result_ttl: float = 60
    max_index_size: int = 10_000
    max_content_size: int = 100 * 1024 * 1024
    max_file_size: int = 10 * 1024 * 1024
    max_depth: int = 10
    quick_depth: int = 2
    root_depth: int = 3
    quick_timeout: float = 15.0
    root_timeout: float = 20.0
    subdir_timeout: float = 30.0
    listing_timeout: float = 10.0
    subdir_concurrency: int = 3
    content_batch_size: int = 10
    result_cache_size: int = 100
    fallback_limit: int = 20
    quick_result_limit: int = 25
    search_timeout: float = 20.0
    preview_lines: int = 3


def _read_env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


@dataclass(slots=True)
class AppConfig:
    host: str | None = None
    username: str | None = None
    password: str | None = None
    search: SearchConfig = field(default_factory=SearchConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Build a config from the ``NEXTCLOUD_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            host=_read_env(env, HOST_ENV),
            username=_read_env(env, USERNAME_ENV),
            password=_read_env(env, PASSWORD_ENV),
        )

    def missing_credentials(self) -> List[str]:
        missing = []
        if not self.host:
            missing.append(HOST_ENV)
        if not self.username:
            missing.append(USERNAME_ENV)
        if not self.password:
            missing.append(PASSWORD_ENV)
        return missing

    def require_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ValueError(
                "Missing Nextcloud credentials: "
                + ", ".join(missing)
                + ". Set them in the environment or pass them explicitly."
            )
