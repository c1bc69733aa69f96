from .settings import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ProviderSettings,
    ProxySettings,
    load_settings,
    settings_from_dict,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "ConfigError",
    "ProviderSettings",
    "ProxySettings",
    "load_settings",
    "settings_from_dict",
]
