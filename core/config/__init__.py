# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the health check executor.
"""

from core.config.defaults import (
    STICKY_INDEFINITE,
    ExecutorDefaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "STICKY_INDEFINITE",
    "ExecutorDefaults",
    "get_defaults",
    "reset_defaults",
]
