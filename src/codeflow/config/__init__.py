"""
codeflow.config - Configuration loading and defaults
"""

from codeflow.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG
from codeflow.config.loader import (
    CodeflowConfig,
    _try_parse_env_value,
    find_config_file,
    get_config,
    load_config,
    merge_configs,
)

__all__ = [
    "CONFIG_FILENAME",
    "CodeflowConfig",
    "DEFAULT_CONFIG",
    "find_config_file",
    "get_config",
    "load_config",
    "merge_configs",
    "_try_parse_env_value",
]
