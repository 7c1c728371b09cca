# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Core module initialization
# PURPOSE: Shared logging and configuration for the executor
# CREATED: 19 OCT 2026
# ============================================================================

from core.config import ExecutorDefaults, get_defaults
from core.logging import configure_logging, get_logger, log_context

__all__ = [
    # Config
    "ExecutorDefaults",
    "get_defaults",
    # Logging
    "configure_logging",
    "get_logger",
    "log_context",
]
