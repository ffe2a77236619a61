"""Device configuration loading, validation and string settings."""

from laser_control.configs.loader import (
    BedConfig,
    ConfigError,
    ConnectionConfig,
    EncodingConfig,
    LaserConfig,
    RasterConfig,
    apply_settings,
    get_setting_value,
    load_config,
    setting_attributes,
)

__all__ = [
    "BedConfig",
    "ConfigError",
    "ConnectionConfig",
    "EncodingConfig",
    "LaserConfig",
    "RasterConfig",
    "apply_settings",
    "get_setting_value",
    "load_config",
    "setting_attributes",
]
