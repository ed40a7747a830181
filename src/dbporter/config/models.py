"""Pydantic models for dbporter configuration."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Configuration Models
# ============================================================================


class ConnectionProfile(BaseModel):
    """Database connection profile from dbporter.toml."""

    database: str
    user: str
    password: str
    host: str = "localhost"
    port: int = 3306
    description: str = ""

    @field_validator("database", "user", "password")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class PorterSettings(BaseModel):
    """Global ``[settings]`` table from dbporter.toml."""

    threads_override: int = Field(default=0, ge=0)
    auto_cleanup: bool = False
    base_directory: str = "~/database_operations"
    buffer_optimization: bool = True
    service_name: str = "mariadb"
    log_level: str = "info"


class PorterConfig(BaseModel):
    """Complete configuration from dbporter.toml."""

    profiles: dict[str, ConnectionProfile]
    settings: PorterSettings = Field(default_factory=PorterSettings)


# ============================================================================
# Workspace
# ============================================================================


class Workspace(BaseModel):
    """On-disk layout under ``base_directory``.

    Every import and export works inside one workspace::

        <base>/dumps/               per-table dumps written by export
        <base>/restore/             archive extraction target for import
        <base>/logs/                per-file diagnostic output of import attempts
        <base>/error_report.txt     FAILED records, consumed by the retry pass
        <base>/success_log.txt      names of imported files
        <base>/temp_config_backup   pointer to the engine config backup
    """

    base_dir: Path

    @property
    def dump_dir(self) -> Path:
        return self.base_dir / "dumps"

    @property
    def extract_dir(self) -> Path:
        return self.base_dir / "restore"

    @property
    def error_log_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def error_report(self) -> Path:
        return self.base_dir / "error_report.txt"

    @property
    def success_log(self) -> Path:
        return self.base_dir / "success_log.txt"

    @property
    def backup_pointer(self) -> Path:
        return self.base_dir / "temp_config_backup"

    def ensure(self) -> None:
        """Create the base directory and its subdirectories."""
        for directory in (self.dump_dir, self.extract_dir, self.error_log_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def clean_logs(self) -> None:
        """Remove the success log, error report and per-file diagnostics."""
        self.error_report.unlink(missing_ok=True)
        self.success_log.unlink(missing_ok=True)
        empty_directory(self.error_log_dir)


def empty_directory(directory: Path) -> None:
    """Delete everything inside ``directory`` but keep the directory itself."""
    if not directory.is_dir():
        return
    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            empty_directory(entry)
            entry.rmdir()
        else:
            entry.unlink()
