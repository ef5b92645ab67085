"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Tokengate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or better, accept a Settings instance at construction time.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Dev mode (DEBUG=true) fills missing values with development
      defaults and a warning; production mode refuses to start and names
      every missing variable.

Security notes:
  [S1] Signing secrets shorter than 32 chars are rejected outright.
  [S2] The access and refresh secrets must differ. Verifying a token with the
       other kind's secret must fail on signature alone.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}

_DEV_DEFAULTS = {
    "port": 8000,
    "database_url": "sqlite:///tokengate.db",
    "cors_origin": "http://localhost:3000",
    "access_token_expiry": "15m",
    "refresh_token_expiry": "10d",
}


def parse_duration(value: str) -> int:
    """Convert an expiry string to seconds.

    Accepts a bare integer ("900") or an integer with a single unit suffix:
    s, m, h, d, w ("15m", "10d"). Raises ValueError for anything else,
    including zero.
    """
    match = _DURATION_RE.match(str(value).lower())
    if match is None:
        raise ValueError(f"Invalid duration {value!r}. Use seconds or <n>s/m/h/d/w, e.g. '15m'.")
    seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}.")
    return seconds


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Required in production: PORT, DATABASE_URL, CORS_ORIGIN,
    ACCESS_TOKEN_SECRET, ACCESS_TOKEN_EXPIRY, REFRESH_TOKEN_SECRET,
    REFRESH_TOKEN_EXPIRY. Empty values are the sentinel for "not configured".
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    port: Optional[int] = None
    database_url: str = ""
    cors_origin: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_secret: str = ""
    access_token_expiry: str = ""
    refresh_token_secret: str = ""
    refresh_token_expiry: str = ""

    # ------------------------------------------------------------------
    # Sessions and passwords
    # ------------------------------------------------------------------

    secure_cookies: bool = True
    bcrypt_rounds: int = 10
    revoke_sessions_on_password_change: bool = True

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def access_token_ttl(self) -> int:
        return parse_duration(self.access_token_expiry)

    @property
    def refresh_token_ttl(self) -> int:
        return parse_duration(self.refresh_token_expiry)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Fill or reject missing values, then check secrets and expiries."""
        missing = [name for name in _DEV_DEFAULTS if getattr(self, name) in (None, "")]
        missing += [name for name in ("access_token_secret", "refresh_token_secret") if not getattr(self, name)]

        if missing and not self.debug:
            raise ValueError(
                "Missing required configuration: "
                + ", ".join(name.upper() for name in missing)
                + ". Set them in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        for name in missing:
            if name.endswith("_secret"):
                setattr(self, name, secrets.token_hex(32))
            else:
                setattr(self, name, _DEV_DEFAULTS[name])
        if missing:
            logger.warning(
                "Using development defaults for %s. Sessions will not persist across restarts.",
                ", ".join(name.upper() for name in missing),
            )

        for name in ("access_token_secret", "refresh_token_secret"):
            if len(getattr(self, name)) < 32:  # [S1]
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        if self.access_token_secret == self.refresh_token_secret:  # [S2]
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different.")

        parse_duration(self.access_token_expiry)
        parse_duration(self.refresh_token_expiry)
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
