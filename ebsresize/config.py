import configparser
from pathlib import Path
from typing import NamedTuple, Optional

import structlog
from ebsresize.errors import ConfigError

_log = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path("/etc/ebs-autoresize.conf")
CONFIG_SECTION = "resize"

# Largest size of gp2/gp3/io1/io2/st1/sc1 volumes.
MAX_VOLUME_SIZE_GIB = 16384


class ResizeConfig(NamedTuple):
    increase_percent: float = 20.0
    threshold_percent: float = 85.0
    poll_interval: float = 15.0
    max_polls: int = 240
    max_volume_size_gib: int = MAX_VOLUME_SIZE_GIB
    continue_on_error: bool = False
    region: Optional[str] = None


def validate(config: ResizeConfig) -> ResizeConfig:
    for name in ("increase_percent", "threshold_percent"):
        value = getattr(config, name)
        if not 0 <= value <= 100:
            raise ConfigError(f"{name} must be within [0, 100], got {value}")
    if config.increase_percent <= 0:
        raise ConfigError("increase_percent must be greater than 0")
    if config.poll_interval <= 0:
        raise ConfigError("poll_interval must be greater than 0")
    if config.max_polls < 1:
        raise ConfigError("max_polls must be at least 1")
    if config.max_volume_size_gib < 1:
        raise ConfigError("max_volume_size_gib must be at least 1")
    return config


def parse_config_file(config_file: Optional[Path], log=_log):
    config = configparser.ConfigParser()
    if config_file:
        if config_file.is_file():
            log.debug("parse-config", config_file=str(config_file))
            config.read(config_file)
        else:
            log.warning("parse-config-not-found", config_file=str(config_file))
    return config


def load_config(config_file: Optional[Path] = None, log=_log, **overrides):
    """Builds a validated ResizeConfig.

    Values come from the `[resize]` section of `config_file` (option names
    use dashes, e.g. `increase-percent`), then from `overrides`. Overrides
    which are None are ignored so CLI options that were not given do not
    mask the file.
    """
    parser = parse_config_file(config_file, log)
    values = {}
    if parser.has_section(CONFIG_SECTION):
        section = parser[CONFIG_SECTION]
        getters = {
            "increase_percent": section.getfloat,
            "threshold_percent": section.getfloat,
            "poll_interval": section.getfloat,
            "max_polls": section.getint,
            "max_volume_size_gib": section.getint,
            "continue_on_error": section.getboolean,
            "region": section.get,
        }
        for field, getter in getters.items():
            option = field.replace("_", "-")
            if option not in section:
                continue
            try:
                values[field] = getter(option)
            except ValueError as e:
                raise ConfigError(
                    f"{config_file}: invalid value for {option}: {e}"
                ) from e

    unknown = set(overrides) - set(ResizeConfig._fields)
    if unknown:
        raise ConfigError(f"unknown config fields: {sorted(unknown)}")
    values.update({k: v for k, v in overrides.items() if v is not None})

    config = validate(ResizeConfig(**values))
    log.debug("resize-config", **config._asdict())
    return config
