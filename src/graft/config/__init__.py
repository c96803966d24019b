"""
Configuration loading and editing.
"""

from .loader import (  # noqa: F401
    DEFAULTS,
    ConfigError,
    get_config_path,
    get_config_value,
    load_config,
    mask_secret,
    save_config,
    set_config_value,
)
