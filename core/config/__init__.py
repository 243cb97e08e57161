# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# ============================================================================
"""
Configuration Module

Provides centralized, environment-driven configuration for the health
service.
"""

from core.config.defaults import (
    HealthConfig,
    get_config,
    reset_config,
    TRUTHY,
)

__all__ = [
    "HealthConfig",
    "get_config",
    "reset_config",
    "TRUTHY",
]
