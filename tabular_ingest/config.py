# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules.
#
# CLASSES:
# --------
# - MySQLConfig       destination database connection
# - FolderConfig      source / archive / retry folders, status file
# - ImportConfig      batch size, table prefix, schema policy
# - ProcessingConfig  retries, parallelism, timer, watch mode
# - LoggingConfig     level + rotating log file
# - AppConfig         all of the above
#
# FUNCTION:
# ---------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# - reset_config() -> None
#     Drop the singleton (tests, or after editing .env).
#
# USAGE:
# ------
#   from tabular_ingest.config import get_config
#   config = get_config()
#   print(config.mysql.host)
#   print(config.processing.max_retry_count)
#
# ==============================================

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


DEFAULT_EXTENSIONS = (".mdb", ".accdb")
STATUS_FILE_NAME = "_import_status.json"


@dataclass
class MySQLConfig:
    """MySQL database configuration."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "tabular_ingest"
    charset: str = "utf8mb4"
    connect_timeout: int = 30


@dataclass
class FolderConfig:
    """Where source files come from and where copies go."""
    source_folder: str = "data/incoming"
    archive_folder: str = "data/archive"
    retry_folder: str = "data/retry"
    status_file: Optional[str] = None
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    recursive: bool = False

    @property
    def status_path(self) -> str:
        # The status file lives next to the files it tracks unless overridden
        if self.status_file:
            return self.status_file
        return os.path.join(self.source_folder, STATUS_FILE_NAME)


@dataclass
class ImportConfig:
    """How tables are created and rows are moved."""
    batch_size: int = 5000
    table_prefix: str = "MDB_"
    auto_create_tables: bool = True
    sync_table_structure: bool = False
    max_varchar_length: int = 255
    add_source_file_column: bool = False
    add_import_time_column: bool = False
    archive_processed_files: bool = True
    progress_interval: int = 10000
    access_driver: str = "Microsoft Access Driver (*.mdb, *.accdb)"
    access_password: Optional[str] = None


@dataclass
class ProcessingConfig:
    """Retry and scheduling policy."""
    max_retry_count: int = 3
    parallel_processing: bool = False
    max_degree_of_parallelism: int = 4
    batch_processing_interval_minutes: int = 60
    monitor_source_folder: bool = False
    processing_delay_seconds: int = 5
    retention_days: int = 30
    generate_report: bool = True


@dataclass
class LoggingConfig:
    """Log level and rotating file handler settings."""
    level: str = "INFO"
    log_file: Optional[str] = "logs/tabular_ingest.log"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class AppConfig:
    """Main application configuration."""
    mysql: MySQLConfig = field(default_factory=MySQLConfig)
    folders: FolderConfig = field(default_factory=FolderConfig)
    imports: ImportConfig = field(default_factory=ImportConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Singleton instance
_config_instance: Optional[AppConfig] = None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_extensions(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return DEFAULT_EXTENSIONS
    extensions = []
    for part in raw.split(","):
        part = part.strip().lower()
        if not part:
            continue
        if not part.startswith("."):
            part = "." + part
        extensions.append(part)
    return tuple(extensions) or DEFAULT_EXTENSIONS


def load_config(env_path: Optional[Path] = None) -> AppConfig:
    """
    Build an AppConfig from the environment.

    Values already present in the process environment win over the .env
    file. Numeric and boolean variables that cannot be parsed raise
    ValueError naming the variable.
    """
    if env_path is None:
        env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    mysql_config = MySQLConfig(
        host=os.getenv("MYSQL_HOST", "localhost"),
        port=_env_int("MYSQL_PORT", 3306),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", "root"),
        database=os.getenv("MYSQL_DATABASE", "tabular_ingest"),
        charset=os.getenv("MYSQL_CHARSET", "utf8mb4"),
        connect_timeout=_env_int("MYSQL_CONNECT_TIMEOUT", 30),
    )

    folder_config = FolderConfig(
        source_folder=os.getenv("SOURCE_FOLDER", "data/incoming"),
        archive_folder=os.getenv("ARCHIVE_FOLDER", "data/archive"),
        retry_folder=os.getenv("RETRY_FOLDER", "data/retry"),
        status_file=os.getenv("STATUS_FILE") or None,
        extensions=_env_extensions("FILE_EXTENSIONS"),
        recursive=_env_bool("SCAN_RECURSIVE", False),
    )

    import_config = ImportConfig(
        batch_size=_env_int("BATCH_SIZE", 5000),
        table_prefix=os.getenv("TABLE_PREFIX", "MDB_"),
        auto_create_tables=_env_bool("AUTO_CREATE_TABLES", True),
        sync_table_structure=_env_bool("SYNC_TABLE_STRUCTURE", False),
        max_varchar_length=_env_int("MAX_VARCHAR_LENGTH", 255),
        add_source_file_column=_env_bool("ADD_SOURCE_FILE_COLUMN", False),
        add_import_time_column=_env_bool("ADD_IMPORT_TIME_COLUMN", False),
        archive_processed_files=_env_bool("ARCHIVE_PROCESSED_FILES", True),
        progress_interval=_env_int("PROGRESS_INTERVAL", 10000),
        access_driver=os.getenv("ACCESS_DRIVER", ImportConfig.access_driver),
        access_password=os.getenv("ACCESS_PASSWORD") or None,
    )

    processing_config = ProcessingConfig(
        max_retry_count=_env_int("MAX_RETRY_COUNT", 3),
        parallel_processing=_env_bool("PARALLEL_PROCESSING", False),
        max_degree_of_parallelism=_env_int("MAX_DEGREE_OF_PARALLELISM", 4),
        batch_processing_interval_minutes=_env_int("BATCH_PROCESSING_INTERVAL_MINUTES", 60),
        monitor_source_folder=_env_bool("MONITOR_SOURCE_FOLDER", False),
        processing_delay_seconds=_env_int("PROCESSING_DELAY_SECONDS", 5),
        retention_days=_env_int("RETENTION_DAYS", 30),
        generate_report=_env_bool("GENERATE_REPORT", True),
    )

    logging_config = LoggingConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE", "logs/tabular_ingest.log") or None,
        max_bytes=_env_int("LOG_MAX_BYTES", 10 * 1024 * 1024),
        backup_count=_env_int("LOG_BACKUP_COUNT", 5),
    )

    if import_config.batch_size <= 0:
        raise ValueError("BATCH_SIZE must be positive")
    if processing_config.max_degree_of_parallelism <= 0:
        raise ValueError("MAX_DEGREE_OF_PARALLELISM must be positive")

    return AppConfig(
        mysql=mysql_config,
        folders=folder_config,
        imports=import_config,
        processing=processing_config,
        logging=logging_config,
    )


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    global _config_instance
    _config_instance = None
