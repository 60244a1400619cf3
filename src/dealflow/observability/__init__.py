"""Observability package for structured logging.

Provides:
- configure_structlog: Configure structlog processors for the environment
"""

from __future__ import annotations

from src.dealflow.observability.logging import configure_structlog

__all__ = [
    "configure_structlog",
]
