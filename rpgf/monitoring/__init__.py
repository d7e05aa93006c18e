"""
RPGF - Monitoring Module

Structured logging configuration and context helpers.
"""

from .logging import bind_round_context, clear_context, configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_round_context",
    "clear_context",
]
