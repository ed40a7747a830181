"""Profile resolution and adapter factory.

Resolves which connection profile a command runs against, turns a profile
into a connection URL, and builds adapters.

Profile priority:
1. Explicit ``profile_name`` argument (``--profile/-b`` on the CLI)
2. ``{env_prefix}DBPORTER_PROFILE`` environment variable
3. The ``default`` profile

Usage:
    from dbporter.factory import get_active_profile, get_adapter, check_connection

    name, profile = get_active_profile(config, profile_name="staging")
    adapter = await get_adapter(profile)
    result = await check_connection(profile)
"""

import os
from urllib.parse import quote

from pydantic import BaseModel

from dbporter.adapters.mysql import MySQLAdapter
from dbporter.config.models import ConnectionProfile, PorterConfig

DEFAULT_PROFILE = "default"


# ============================================================================
# Profile Resolution
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when the requested profile is not in the config file."""

    pass


class ConnectionResult(BaseModel):
    """Result of check_connection()."""

    success: bool
    profile_name: str | None = None
    database: str | None = None
    error: str | None = None


def get_active_profile_name(
    profile_name: str | None = None,
    env_prefix: str = "",
) -> str:
    """Get the profile name to use.

    Args:
        profile_name: Explicit profile name; wins when given.
        env_prefix: Prefix for the environment variable lookup
            (e.g. ``"APP_"`` reads ``APP_DBPORTER_PROFILE``).

    Returns:
        Profile name.
    """
    if profile_name:
        return profile_name

    env_profile = os.environ.get(f"{env_prefix}DBPORTER_PROFILE")
    if env_profile:
        return env_profile

    return DEFAULT_PROFILE


def get_active_profile(
    config: PorterConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> tuple[str, ConnectionProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, ConnectionProfile)

    Raises:
        ProfileNotFoundError: If the profile is not defined in the config.
    """
    name = get_active_profile_name(profile_name, env_prefix=env_prefix)

    if name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in config.\n"
            f"Available profiles: {available}"
        )

    return name, config.profiles[name]


# ============================================================================
# Adapter Factory
# ============================================================================


def resolve_url(profile: ConnectionProfile) -> str:
    """Build a ``mysql://`` URL from a profile, quoting the credentials."""
    user = quote(profile.user, safe="")
    password = quote(profile.password, safe="")
    return (
        f"mysql://{user}:{password}@{profile.host}:{profile.port}/"
        f"{quote(profile.database, safe='')}"
    )


async def get_adapter(
    profile: ConnectionProfile | None = None,
    database_url: str | None = None,
) -> MySQLAdapter:
    """Create a new MySQLAdapter.

    A direct ``database_url`` takes precedence over ``profile``.  No caching:
    each call returns a fresh adapter the caller must ``close()``.

    Raises:
        ValueError: If neither a profile nor a URL is given.
    """
    if database_url is None:
        if profile is None:
            raise ValueError("get_adapter() needs a profile or a database_url")
        database_url = resolve_url(profile)
    return MySQLAdapter(database_url)


async def check_connection(
    profile: ConnectionProfile,
    profile_name: str | None = None,
) -> ConnectionResult:
    """Run ``SELECT 1`` against the profile's database.

    Never raises for connectivity problems; the error is returned in the
    result so callers can print a diagnostic.
    """
    adapter = await get_adapter(profile)
    try:
        await adapter.test_connection()
    except Exception as e:
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            database=profile.database,
            error=f"Cannot connect to database: {e}",
        )
    finally:
        await adapter.close()

    return ConnectionResult(
        success=True,
        profile_name=profile_name,
        database=profile.database,
    )
