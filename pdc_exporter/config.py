"""Configuration loading module.

Every setting can be given as a command-line flag or as an environment
variable (a .env file in the working directory is loaded first). Flags win
over the environment.

Required:
    --pdc.baseurl / PDC_BASEURL: Portal base URL
    --pdc.username / PDC_USERNAME: Portal username
    --pdc.password / PDC_PASSWORD: Portal password
    --pdc.serialnumber / PDC_SERIALNUMBER: Inverter serial number

Optional:
    --log.level / PDC_LOG_LEVEL: Log level, "warn" is accepted for "warning"
        (default: info)
    --web.listen-address / PDC_LISTEN_ADDRESS: Listen address (default: :8080)
    --web.telemetry-path / PDC_TELEMETRY_PATH: Metrics path (default: /metrics)
    --pdc.interval / PDC_INTERVAL: Polling interval in seconds (default: 60)
"""

import argparse
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from pdc_exporter.errors import ConfigError

# Configure module logger
logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
LOG_LEVEL_ALIASES = {"warn": "warning"}


@dataclass
class Config:
    """Exporter configuration, built once at startup."""
    base_url: str
    username: str
    password: str
    serial_number: str
    log_level: str = "info"
    listen_address: str = ":8080"
    metrics_path: str = "/metrics"
    interval: int = 60

    def validate(self) -> None:
        """Check required values and ranges.

        Raises:
            ConfigError: Describing every problem found
        """
        problems = []

        missing = [
            name for name, value in (
                ("pdc.baseurl", self.base_url),
                ("pdc.username", self.username),
                ("pdc.password", self.password),
                ("pdc.serialnumber", self.serial_number),
            )
            if not value
        ]
        if missing:
            problems.append(f"missing required settings: {', '.join(missing)}")

        if self.log_level.lower() not in LOG_LEVELS:
            problems.append(f"invalid log level {self.log_level!r}")

        if self.interval <= 0:
            problems.append(f"interval must be positive, got {self.interval}")

        if not self.metrics_path.startswith("/"):
            problems.append(f"telemetry path must start with '/', got {self.metrics_path!r}")

        if problems:
            raise ConfigError("; ".join(problems))


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}, using default: {default}")
        return default


def normalize_log_level(level: str) -> str:
    level = level.lower()
    return LOG_LEVEL_ALIASES.get(level, level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdc-exporter",
        description="Prometheus exporter for Power Datacenter inverters"
    )

    parser.add_argument(
        "--log.level",
        dest="log_level",
        default=os.getenv("PDC_LOG_LEVEL", "info"),
        help="Log level for logging"
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=os.getenv("PDC_LISTEN_ADDRESS", ":8080"),
        help="The address to listen on for HTTP requests"
    )
    parser.add_argument(
        "--web.telemetry-path",
        dest="metrics_path",
        default=os.getenv("PDC_TELEMETRY_PATH", "/metrics"),
        help="Path under which to expose metrics"
    )
    parser.add_argument(
        "--pdc.baseurl",
        dest="base_url",
        default=os.getenv("PDC_BASEURL", ""),
        help="Base URL to use"
    )
    parser.add_argument(
        "--pdc.username",
        dest="username",
        default=os.getenv("PDC_USERNAME", ""),
        help="Username for logging in"
    )
    parser.add_argument(
        "--pdc.password",
        dest="password",
        default=os.getenv("PDC_PASSWORD", ""),
        help="Password for logging in"
    )
    parser.add_argument(
        "--pdc.serialnumber",
        dest="serial_number",
        default=os.getenv("PDC_SERIALNUMBER", ""),
        help="Serial number of device"
    )
    parser.add_argument(
        "--pdc.interval",
        dest="interval",
        type=int,
        default=_env_int("PDC_INTERVAL", 60),
        help="Interval in seconds for data polling"
    )

    return parser


def load_config(argv: Optional[Sequence[str]] = None, dotenv: bool = True) -> Config:
    """Load configuration from flags, environment and .env file.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        dotenv: Whether to load a .env file before reading the environment

    Returns:
        Validated Config

    Raises:
        ConfigError: If required settings are missing or invalid
    """
    if dotenv:
        load_dotenv()

    args = build_parser().parse_args(argv)

    config = Config(
        base_url=args.base_url,
        username=args.username,
        password=args.password,
        serial_number=args.serial_number,
        log_level=normalize_log_level(args.log_level),
        listen_address=args.listen_address,
        metrics_path=args.metrics_path,
        interval=args.interval,
    )
    config.validate()
    return config


def describe(config: Config) -> List[str]:
    """Summarize the configuration for the startup log, without secrets."""
    return [
        f"base_url={config.base_url}",
        f"serial_number={config.serial_number}",
        f"listen_address={config.listen_address}",
        f"metrics_path={config.metrics_path}",
        f"interval={config.interval}s",
    ]
