"""Configuration constants and the remote connection config."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from workreplica.errors import ConfigError

# Environment variable names
ENV_ORG = "WORKREPLICA_ORG"
ENV_AREA_PATH = "WORKREPLICA_AREA_PATH"
ENV_EMAIL = "WORKREPLICA_EMAIL"
ENV_PAT = "WORKREPLICA_PAT"
ENV_POLL_INTERVAL = "WORKREPLICA_POLL_INTERVAL"

API_VERSION = "6.0"
DEFAULT_BASE_URL = "https://dev.azure.com"

# matches the remote batch fetch ceiling
PAGE_SIZE = 200

DEFAULT_POLL_INTERVAL = 10.0

# snapshot export completion polling
EXPORT_POLL_INTERVAL = 1.0
EXPORT_GRACE_PERIOD = 1.0
EXPORT_TIMEOUT = 30.0

SEARCH_LIMIT = 100
RECENT_LIMIT = 100


def get_poll_interval() -> float:
    """Polling interval in seconds from WORKREPLICA_POLL_INTERVAL."""
    env = os.environ.get(ENV_POLL_INTERVAL, "").strip()
    if not env:
        return DEFAULT_POLL_INTERVAL
    try:
        return max(float(env), 1.0)
    except ValueError:
        return DEFAULT_POLL_INTERVAL


def normalize_area_path(area_path: str) -> str:
    """Normalize separators and whitespace in an area path.

    Examples:
        " Fabrikam / Web " -> "Fabrikam\\Web"
        "Fabrikam\\\\Web\\" -> "Fabrikam\\Web"
    """
    segments = area_path.strip().replace("/", "\\").split("\\")
    return "\\".join(s.strip() for s in segments if s.strip())


def project_from_area_path(area_path: str) -> str:
    return normalize_area_path(area_path).split("\\")[0]


@dataclass
class RemoteConfig:
    """Connection settings for the remote work item store.

    Environment variables:
        WORKREPLICA_ORG: Organization name
        WORKREPLICA_AREA_PATH: Root area path; first segment is the project
        WORKREPLICA_EMAIL: Account email used for basic auth
        WORKREPLICA_PAT: Personal access token
    """

    org: str = field(default_factory=lambda: os.environ.get(ENV_ORG, ""))
    area_path: str = field(
        default_factory=lambda: os.environ.get(ENV_AREA_PATH, "")
    )
    email: str = field(default_factory=lambda: os.environ.get(ENV_EMAIL, ""))
    pat: str = field(default_factory=lambda: os.environ.get(ENV_PAT, ""))
    base_url: str = DEFAULT_BASE_URL

    def __post_init__(self) -> None:
        self.area_path = normalize_area_path(self.area_path)

    @property
    def project(self) -> str:
        return project_from_area_path(self.area_path)

    @property
    def is_complete(self) -> bool:
        return bool(
            self.org
            and self.project
            and self.area_path
            and self.email
            and self.pat
        )

    def require_complete(self) -> None:
        if not self.is_complete:
            raise ConfigError(
                f"incomplete remote config - set {ENV_ORG}, {ENV_AREA_PATH}, "
                f"{ENV_EMAIL} and {ENV_PAT}"
            )
