"""Configuration module for Herdbook."""

from herdbook.config.logging import bind_tenant, configure_logging
from herdbook.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "bind_tenant"]
