"""
Runtime configuration read from environment variables.

All settings have development defaults so the service boots locally
against SQLite without any environment set up.
"""

import os


def _env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag ("1", "true", "yes", "on" are truthy)."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./exam_preview.db")
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Bearer credentials (issued by the auth service, only verified here)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ADMIN_ROLE = os.getenv("ADMIN_ROLE", "admin")

# Workflow policy: when true, an exam must complete preview before it
# can be finalized. Off by default to allow finalizing straight from draft.
REQUIRE_PREVIEW_BEFORE_FINALIZE = _env_flag("REQUIRE_PREVIEW_BEFORE_FINALIZE", False)
