"""Database URL resolution.

Supports two configuration modes:
1. Profile mode (snapshot.toml profiles + DB_PROFILE env var or --profile)
2. Direct mode (DATABASE_URL env var) for CI jobs without a profile table

Both env var names honour an optional prefix (``--env-prefix APP_`` reads
``APP_DB_PROFILE`` and ``APP_DATABASE_URL``).
"""

import os
from urllib.parse import quote

from db_snapshot.config.models import DatabaseProfile, SnapshotConfig


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the environment.

    Args:
        env_prefix: Prefix for the ``DB_PROFILE`` env var.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_prefix}DB_PROFILE=<name> db-snapshot <command>\n"
        "or pass --profile <name>"
    )


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted

    Example:
        >>> p = DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="p@ss")
        >>> resolve_url(p)
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def resolve_database_url(
    config: SnapshotConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> tuple[str, str]:
    """Resolve the connection URL to use for a command.

    Priority:
    1. Explicit *profile_name*
    2. ``<prefix>DB_PROFILE`` env var
    3. ``<prefix>DATABASE_URL`` env var (source label ``"env"``)

    Returns:
        Tuple of (source label, connection URL)

    Raises:
        ProfileNotFoundError: If nothing is configured or the profile is unknown
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError:
            direct_url = os.environ.get(f"{env_prefix}DATABASE_URL")
            if direct_url:
                return "env", direct_url
            raise

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in snapshot.toml.\n"
            f"Available profiles: {available}"
        )

    return profile_name, resolve_url(config.profiles[profile_name])
