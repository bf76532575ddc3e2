from pybatis.config.properties import (
    ConfigurationProperties,
    get_config,
    log_config_sources,
    reload_config,
)

__all__ = [
    "ConfigurationProperties",
    "get_config",
    "reload_config",
    "log_config_sources",
]
