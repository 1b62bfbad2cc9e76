"""Database adapter factory.

Resolves where to connect and which dialect to use from, in order: an
explicit URL (``--db-uri`` or ``{PREFIX}DB_URI``), then a named db.toml
profile (``--profile`` or ``{PREFIX}DB_PROFILE``).

Usage:
    from governor_backup.factory import get_adapter, resolve_database_url, resolve_driver

    adapter = await get_adapter(profile_name="local", env_prefix="GOVERNOR_")
    url, profile = resolve_database_url(profile_name="local", env_prefix="GOVERNOR_")
    driver = resolve_driver(profile=profile, env_prefix="GOVERNOR_")
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from governor_backup.adapters.postgres import AsyncPostgresAdapter
from governor_backup.config.loader import load_db_config
from governor_backup.config.models import DatabaseProfile
from governor_backup.dialects import Driver, resolve_dialect
from governor_backup.errors import UnsupportedDialectError
from governor_backup.schema.comparator import expected_columns, validate_schema
from governor_backup.schema.introspector import get_column_names
from governor_backup.schema.models import ConnectionResult

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = Driver.POSTGRES.value


class ProfileNotFoundError(Exception):
    """Raised when no database URL or profile is configured."""

    pass


def get_active_profile_name(env_prefix: str = "", profile_name: str | None = None) -> str:
    """Get active profile name from the argument or the environment.

    Priority:
    1. ``profile_name`` argument (``--profile``)
    2. ``{env_prefix}DB_PROFILE`` env var
    3. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database configured.\n"
        f"Pass --db-uri or --profile <name>, or set {env_prefix}DB_URI "
        f"or {env_var}."
    )


def get_active_profile(
    env_prefix: str = "",
    profile_name: str | None = None,
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured
        FileNotFoundError: If db.toml does not exist
        KeyError: If profile not found in db.toml
    """
    name = get_active_profile_name(env_prefix=env_prefix, profile_name=profile_name)
    config = load_db_config(config_path)

    if name not in config.profiles:
        raise KeyError(
            f"Profile '{name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return name, config.profiles[name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    ``[YOUR-PASSWORD]`` in the URL is replaced by the URL-encoded
    ``db_password``.
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def resolve_database_url(
    database_url: str | None = None,
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile | None]:
    """Resolve the connection URL and the profile it came from, if any.

    An explicit ``database_url`` or ``{env_prefix}DB_URI`` wins over any
    profile.

    Raises:
        ProfileNotFoundError: If neither a URL nor a profile is configured
        FileNotFoundError: If a profile is named but db.toml does not exist
        KeyError: If the profile is not in db.toml
    """
    url = database_url or os.environ.get(f"{env_prefix}DB_URI")
    if url:
        return url, None

    name, profile = get_active_profile(
        env_prefix=env_prefix, profile_name=profile_name, config_path=config_path
    )
    logger.debug("Using database profile %s", name)
    return resolve_url(profile), profile


def resolve_driver(
    driver: str | None = None,
    profile: DatabaseProfile | None = None,
    env_prefix: str = "",
) -> str:
    """Pick the driver identifier.

    Priority: ``driver`` argument, ``{env_prefix}DB_DRIVER``, the profile's
    ``driver``, then ``"postgres"``.  The value is not validated here;
    ``resolve_dialect`` rejects unknown drivers.
    """
    return (
        driver
        or os.environ.get(f"{env_prefix}DB_DRIVER")
        or (profile.driver if profile else None)
        or DEFAULT_DRIVER
    )


def check_explicit_driver(driver: str | None = None, env_prefix: str = "") -> None:
    """Reject an unknown ``driver`` argument or ``{env_prefix}DB_DRIVER``.

    Runs before any URL or profile is resolved, so a bad driver is
    reported as such even when no database is configured.  A driver that
    only a profile names is checked later, once the profile is loaded.

    Raises:
        UnsupportedDialectError: If the explicit driver is not crdb or postgres
    """
    explicit = driver or os.environ.get(f"{env_prefix}DB_DRIVER")
    if explicit:
        resolve_dialect(explicit)


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    jsonb_columns: list[str] | frozenset[str] | None = None,
    config_path: Path | None = None,
    driver: str | None = None,
) -> AsyncPostgresAdapter:
    """Create a new adapter.  Adapters are not cached.

    Args:
        profile_name: db.toml profile (used when no URL is given).
        env_prefix: Prefix for ``DB_URI`` / ``DB_PROFILE`` env vars.
        database_url: Explicit connection URL; overrides any profile.
        jsonb_columns: Column names bound as jsonb on insert.
        config_path: Alternative db.toml path.
        driver: ``crdb`` or ``postgres``; picks the SQLAlchemy dialect.

    Raises:
        ProfileNotFoundError: If no database is configured
        FileNotFoundError: If db.toml does not exist
        KeyError: If the profile is not in db.toml
    """
    url, _ = resolve_database_url(
        database_url=database_url,
        profile_name=profile_name,
        env_prefix=env_prefix,
        config_path=config_path,
    )
    return AsyncPostgresAdapter(database_url=url, jsonb_columns=jsonb_columns, driver=driver)


async def connect_and_validate(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    driver: str | None = None,
    config_path: Path | None = None,
) -> ConnectionResult:
    """Connect and compare the live schema against the dialect's row models.

    Never raises for configuration or connection problems; they are
    reported in ``ConnectionResult.error``.

    Example:
        >>> result = await connect_and_validate("local")
        >>> if not result.success:
        ...     print(result.error)
    """
    try:
        check_explicit_driver(driver, env_prefix)
    except UnsupportedDialectError as e:
        return ConnectionResult(
            success=False, profile_name=profile_name, driver=e.driver, error=str(e)
        )

    try:
        url, profile = resolve_database_url(
            database_url=database_url,
            profile_name=profile_name,
            env_prefix=env_prefix,
            config_path=config_path,
        )
    except (ProfileNotFoundError, FileNotFoundError, KeyError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    name = get_active_profile_name(env_prefix, profile_name) if profile is not None else None
    chosen = resolve_driver(driver, profile, env_prefix)
    try:
        model_set = resolve_dialect(chosen)
    except UnsupportedDialectError as e:
        return ConnectionResult(success=False, profile_name=name, driver=chosen, error=str(e))

    adapter = AsyncPostgresAdapter(database_url=url, driver=chosen)
    try:
        actual = await get_column_names(adapter)
    except Exception as e:
        return ConnectionResult(
            success=False,
            profile_name=name,
            driver=chosen,
            error=f"Failed to connect to database: {e}",
        )
    finally:
        await adapter.close()

    validation = validate_schema(actual, expected_columns(model_set))
    return ConnectionResult(
        success=validation.valid,
        profile_name=name,
        driver=chosen,
        schema_valid=validation.valid,
        schema_report=validation,
        error=(
            None
            if validation.valid
            else f"Schema validation failed: {validation.error_count} errors"
        ),
    )
