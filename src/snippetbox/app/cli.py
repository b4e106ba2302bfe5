import argparse
import asyncio
import os
import logging
from logging.config import dictConfig
import json
import sys
from typing import Any, Dict, List, Optional

from snippetbox.app.config import Settings

logger = logging.getLogger(__name__)


class MaxLevelFilter(logging.Filter):
    """Pass only records below `level`, so info and error output go to separate streams."""

    def __init__(self, level: str = "ERROR") -> None:
        super().__init__()
        self.level = logging.getLevelName(level)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "below_error": {"()": MaxLevelFilter, "level": "ERROR"},
    },
    "formatters": {
        "info": {
            "format": "%(levelname)s\t%(asctime)s %(message)s",
            "datefmt": "%Y/%m/%d %H:%M:%S",
        },
        "error": {
            "format": "%(levelname)s\t%(asctime)s %(filename)s:%(lineno)d: %(message)s",
            "datefmt": "%Y/%m/%d %H:%M:%S",
        },
    },
    "handlers": {
        "info": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "info",
            "filters": ["below_error"],
        },
        "error": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "error",
            "level": "ERROR",
        },
    },
    "root": {"level": "INFO", "handlers": ["info", "error"]},
}


def configure_logging(debug: bool = False):
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")

    if len(logging_config_file) > 0:
        with open(logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    dictConfig(DEFAULT_LOGGING_CONFIG)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snippetbox", description="Snippetbox web server")
    parser.add_argument(
        "--addr", "-addr", default=None, help="HTTP network address (default \":4000\")"
    )
    parser.add_argument(
        "--dsn", "-dsn", default=None, help="SQLAlchemy data source name for the database"
    )
    parser.add_argument(
        "--tls",
        dest="tls_enabled",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve HTTPS (default on)",
    )
    parser.add_argument("--tls-cert", dest="tls_cert_file", default=None, help="PEM certificate file")
    parser.add_argument("--tls-key", dest="tls_key_file", default=None, help="PEM private key file")
    parser.add_argument(
        "--debug", action="store_const", const=True, default=None, help="Enable debug logging"
    )
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """
    Build the configuration record from flags, environment and defaults, in that order of
    precedence. Malformed flags make argparse exit with status 2.
    """
    args = vars(build_parser().parse_args(argv))
    overrides = {key: value for key, value in args.items() if value is not None}
    return Settings(**overrides)


def invoke(argv: Optional[List[str]] = None):
    settings = load_settings(argv)
    configure_logging(settings.debug)

    from snippetbox.app.server import serve

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        pass
    except Exception:
        logger.critical("Server failed", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    invoke()
