import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_port(name: str, default: int) -> int:
    port = _get_env_int(name, default)
    if not 0 <= port <= 65535:
        raise ValueError(f"Environment variable {name} must be a TCP port")
    return port


@dataclass
class Config:
    queue_host: str
    queue_port: int
    command_host: str
    command_port: int
    tick_duration_ms: int
    database_path: Optional[Path]
    timezone_name: Optional[str]
    subscriber_buffer: int
    debug: bool
    log_level: str
    log_dir: Path


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    queue_host = os.getenv("CLOCKROBUSTUS_INTERNAL_QUEUE_HOST", "127.0.0.1")
    queue_port = _get_env_port("CLOCKROBUSTUS_INTERNAL_QUEUE_PORT", 5555)
    command_host = os.getenv("CLOCKROBUSTUS_COMMAND_HOST", "127.0.0.1")
    command_port = _get_env_port("CLOCKROBUSTUS_COMMAND_PORT", 5556)
    tick_duration_ms = _get_env_int("CLOCKROBUSTUS_TICK_DURATION_MS", 1000)
    if tick_duration_ms <= 0:
        raise ValueError("Environment variable CLOCKROBUSTUS_TICK_DURATION_MS must be positive")
    db_env = os.getenv("CLOCKROBUSTUS_DB_PATH")
    database_path = Path(db_env) if db_env else None
    timezone_name = os.getenv("CLOCKROBUSTUS_TIMEZONE") or None
    subscriber_buffer = max(1, _get_env_int("CLOCKROBUSTUS_SUBSCRIBER_BUFFER", 64))
    debug = _get_env_bool("DEBUG", False)
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", "logs"))

    if queue_host == command_host and queue_port == command_port and queue_port != 0:
        raise ValueError("Subscribe and command channels cannot share the same address")

    return Config(
        queue_host=queue_host,
        queue_port=queue_port,
        command_host=command_host,
        command_port=command_port,
        tick_duration_ms=tick_duration_ms,
        database_path=database_path,
        timezone_name=timezone_name,
        subscriber_buffer=subscriber_buffer,
        debug=debug,
        log_level=log_level,
        log_dir=log_dir,
    )


def ensure_database_path(path: Optional[Path] = None) -> Path:
    """Return the alarm database location, creating its directory."""
    if path is None:
        path = Path.home() / ".config" / "clockrobustus" / "dbase.sqlite"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"


def setup_logging(config: Config) -> None:
    """Log to ``<log_dir>/clockd.log`` and the console.

    In debug mode records carry the thread name, since ticks, command
    handlers and subscriber writers all log from their own threads.
    """
    config.log_dir.mkdir(parents=True, exist_ok=True)

    log_path = config.log_dir / "clockd.log"
    formatter = logging.Formatter(DEBUG_LOG_FORMAT if config.debug else LOG_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    level = logging.DEBUG if config.debug else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, handlers=[file_handler, console_handler], force=True)
