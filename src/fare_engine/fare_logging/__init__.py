from .context import log_context, log_fare_context
from .setup import setup_logging, setup_logging_from_settings

__all__ = ["log_context", "log_fare_context", "setup_logging", "setup_logging_from_settings"]
