# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Shared configuration and structured logging
# ============================================================================

from core.config import HealthConfig, get_config
from core.logging import configure_logging, get_logger, log_context

__all__ = [
    # Config
    "HealthConfig",
    "get_config",
    # Logging
    "configure_logging",
    "get_logger",
    "log_context",
]
