import copy
from logging.config import dictConfig

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(levelname)-8s %(asctime)s [%(name)s] %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stderr",
            "level": "INFO",
        },
        # This handler ensures package logs are very visible
        "cosmic_spec": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
            "level": "DEBUG",
        },
    },
    "loggers": {
        "root": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "openai": {"handlers": ["default"], "level": "WARNING", "propagate": False},
        "httpx": {"handlers": ["default"], "level": "WARNING", "propagate": False},
        "cosmic_spec": {"handlers": ["cosmic_spec"], "level": "INFO", "propagate": False},
        "cosmic_spec.services": {"handlers": ["cosmic_spec"], "level": "INFO", "propagate": False},
        "cosmic_spec.generation_logic": {"handlers": ["cosmic_spec"], "level": "INFO", "propagate": False},
    },
}


def setup_logging(level: str | None = None) -> None:
    """Configures application-wide logging using dictConfig."""
    config = copy.deepcopy(LOGGING_CONFIG)
    if level:
        for name in ("cosmic_spec", "cosmic_spec.services", "cosmic_spec.generation_logic"):
            config["loggers"][name]["level"] = level.upper()
    dictConfig(config)
