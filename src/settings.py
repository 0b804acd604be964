"""
Application settings loaded from config.ini.

Example config.ini:
    [Storage]
    DataDir = /srv/packing/data
    ExportDir = /srv/packing/exports
    RemoteLogDir = /srv/packing/scan_events

    [Scanner]
    DebounceMs = 1200
    DeviceId = DOCK-2

    [Labels]
    Dpi = 203
    WidthMm = 65
    HeightMm = 35

    [Logging]
    LogLevel = INFO
"""
import os
import configparser
from dataclasses import dataclass
from pathlib import Path

from exceptions import ConfigError
from logger import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_DIR = Path(os.path.expanduser("~")) / ".packers_assistant"


@dataclass(frozen=True)
class AppSettings:
    """
    Resolved settings for one packing station.

    Attributes:
        data_dir: Local data (packed_orders.db, operators.json)
        export_dir: Default destination for CSV scan-log exports
        remote_log_dir: Shared folder receiving one JSONL file per day of scan events
        debounce_seconds: Window in which an identical scanner read is dropped
        device_id: Station name attached to log entries
        label_dpi: Thermal printer resolution
        label_width_mm: Label width
        label_height_mm: Label height
    """
    data_dir: Path = DEFAULT_BASE_DIR / "data"
    export_dir: Path = DEFAULT_BASE_DIR / "exports"
    remote_log_dir: Path = DEFAULT_BASE_DIR / "scan_events"
    debounce_seconds: float = 1.2
    device_id: str = ""
    label_dpi: int = 203
    label_width_mm: float = 65
    label_height_mm: float = 35


def _load_config(config_path: str) -> configparser.ConfigParser:
    config = configparser.ConfigParser()

    if not Path(config_path).exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return config

    try:
        config.read(config_path, encoding='utf-8')
        logger.info(f"Configuration loaded from {config_path}")
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    return config


def load_settings(config_path: str = "config.ini") -> AppSettings:
    """
    Build AppSettings from config.ini, falling back to defaults per key.

    Args:
        config_path: Path to config.ini

    Returns:
        The resolved settings

    Raises:
        ConfigError: If the file cannot be parsed or a numeric value is invalid
    """
    config = _load_config(config_path)
    defaults = AppSettings()

    try:
        debounce_ms = config.getint('Scanner', 'DebounceMs', fallback=int(defaults.debounce_seconds * 1000))
        label_dpi = config.getint('Labels', 'Dpi', fallback=defaults.label_dpi)
        label_width_mm = config.getfloat('Labels', 'WidthMm', fallback=defaults.label_width_mm)
        label_height_mm = config.getfloat('Labels', 'HeightMm', fallback=defaults.label_height_mm)
    except ValueError as e:
        raise ConfigError(f"Invalid number in {config_path}: {e}") from e

    if debounce_ms < 0:
        raise ConfigError(f"DebounceMs must not be negative, got {debounce_ms}")
    if label_dpi <= 0 or label_width_mm <= 0 or label_height_mm <= 0:
        raise ConfigError("Label Dpi, WidthMm and HeightMm must be positive")

    settings = AppSettings(
        data_dir=Path(config.get('Storage', 'DataDir', fallback=str(defaults.data_dir))),
        export_dir=Path(config.get('Storage', 'ExportDir', fallback=str(defaults.export_dir))),
        remote_log_dir=Path(config.get('Storage', 'RemoteLogDir', fallback=str(defaults.remote_log_dir))),
        debounce_seconds=debounce_ms / 1000.0,
        device_id=config.get('Scanner', 'DeviceId', fallback=defaults.device_id),
        label_dpi=label_dpi,
        label_width_mm=label_width_mm,
        label_height_mm=label_height_mm,
    )
    logger.debug(f"Settings resolved: {settings}")
    return settings
