"""TOML configuration loading for dbporter."""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from dbporter.config.models import PorterConfig, Workspace

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "dbporter" / "dbporter.toml"

DEFAULT_CONFIG_TEMPLATE = """\
# dbporter configuration file
#
# Each [profiles.<name>] table describes one database. The "default" profile
# is used when no --profile/-b option or DBPORTER_PROFILE variable is given.

[profiles.default]
database = "your_database"
user = "your_user"
password = "your_password"
host = "localhost"
port = 3306
description = "Default database"

# [profiles.production]
# database = "prod_database"
# user = "prod_user"
# password = "prod_password"
# host = "prod.example.com"
# port = 3306
#
# dbporter -b production export
# dbporter -b production import dump.tar.gz

[settings]
# 0 = detect (logical CPUs - 2, at least 1)
threads_override = 0
# true: always remove temporary files and apply buffer pool optimization
# without prompting
auto_cleanup = false
base_directory = "~/database_operations"
buffer_optimization = true
service_name = "mariadb"
log_level = "info"
"""


def load_config(config_path: Path | None = None) -> PorterConfig:
    """Load dbporter configuration from a TOML file.

    Args:
        config_path: Path to dbporter.toml (default:
            ``~/.config/dbporter/dbporter.toml``)

    Returns:
        PorterConfig with all profiles and global settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            f"Run: dbporter setup to create the configuration file."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    try:
        return PorterConfig(
            profiles=data.get("profiles", {}),
            settings=data.get("settings", {}),
        )
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path}:\n{e}") from e


def write_default_config(config_path: Path | None = None) -> bool:
    """Write the commented configuration template.

    An existing file is never overwritten.  The file holds credentials and is
    created with mode 0600.

    Returns:
        True if the file was created, False if it already existed.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        return False

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
    config_path.chmod(0o600)
    return True


def resolve_workspace(base_directory: str) -> Workspace:
    """Expand ``~`` and ``$HOME`` in ``base_directory`` into a Workspace."""
    expanded = os.path.expandvars(os.path.expanduser(base_directory))
    return Workspace(base_dir=Path(expanded))
