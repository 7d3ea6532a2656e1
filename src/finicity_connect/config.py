"""Environment-driven configuration for the Finicity client."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

logger = logging.getLogger(__name__)

__all__ = ["FinicityConfig", "DEFAULT_API_URL", "load_dotenv"]

DEFAULT_API_URL = "https://api.finicity.com"

ENV_API_URL = "FINICITY_API_URL"
ENV_APP_KEY = "FINICITY_APP_KEY"
ENV_PARTNER_ID = "FINICITY_PARTNER_ID"
ENV_PARTNER_SECRET = "FINICITY_PARTNER_SECRET"
ENV_CACHE_EXPIRE = "FINICITY_CACHE_EXPIRE"


@dataclass(frozen=True)
class FinicityConfig:
    """Credentials and settings for a :class:`~finicity_connect.client.FinicityClient`.

    Attributes:
        api_url: Base URL of the Finicity API.
        app_key: Value sent in the ``Finicity-App-Key`` header.
        partner_id: Partner ID used for authentication and Connect links.
        partner_secret: Partner secret used for authentication.
        cache_expire_after: Seconds to cache institution directory lookups.
            ``0`` disables response caching.
    """

    api_url: str = DEFAULT_API_URL
    app_key: str = ""
    partner_id: str = ""
    partner_secret: str = ""
    cache_expire_after: int = 0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "FinicityConfig":
        """Build a config from ``FINICITY_*`` environment variables.

        Unset or empty variables fall back to defaults; missing credentials
        are reported by the client, not here.

        Raises:
            ValueError: If ``FINICITY_CACHE_EXPIRE`` is not a non-negative integer.
        """
        env = os.environ if env is None else env
        raw_expire = env.get(ENV_CACHE_EXPIRE) or "0"
        try:
            cache_expire_after = int(raw_expire)
        except ValueError:
            raise ValueError(
                f"{ENV_CACHE_EXPIRE} must be an integer number of seconds, got {raw_expire!r}"
            ) from None
        if cache_expire_after < 0:
            raise ValueError(f"{ENV_CACHE_EXPIRE} must not be negative")

        return cls(
            api_url=(env.get(ENV_API_URL) or DEFAULT_API_URL).rstrip("/"),
            app_key=env.get(ENV_APP_KEY) or "",
            partner_id=env.get(ENV_PARTNER_ID) or "",
            partner_secret=env.get(ENV_PARTNER_SECRET) or "",
            cache_expire_after=cache_expire_after,
        )

    def missing_credentials(self) -> List[str]:
        """Return the environment variable names of unset credentials."""
        missing = []
        if not self.app_key:
            missing.append(ENV_APP_KEY)
        if not self.partner_id:
            missing.append(ENV_PARTNER_ID)
        if not self.partner_secret:
            missing.append(ENV_PARTNER_SECRET)
        return missing


def load_dotenv(dotenv_path: Optional[str] = None) -> Optional[Path]:
    """Load ``KEY=VALUE`` lines from a ``.env`` file into ``os.environ``.

    Without an explicit path, the current directory and then each parent is
    searched and the first ``.env`` found is used. Variables that are already
    set are left alone.

    Returns:
        The path that was loaded, or ``None`` if no file was found.
    """
    if dotenv_path:
        candidates = [Path(dotenv_path)]
    else:
        cwd = Path.cwd().resolve()
        candidates = [d / ".env" for d in (cwd, *cwd.parents)]

    path = next((p for p in candidates if p.is_file()), None)
    if path is None:
        logger.debug("No .env file found")
        return None

    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]
        key, value = (part.strip() for part in line.split("=", 1))
        if key and key not in os.environ:
            os.environ[key] = value.strip("'\"")
    logger.debug("Loaded environment from %s", path)
    return path
