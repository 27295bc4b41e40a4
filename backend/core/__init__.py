from .logging import log, configure_console_log

__all__ = [
    "log",
    "configure_console_log",
]
