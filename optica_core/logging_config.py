"""Logging estructurado con structlog.

Logs en JSON sobre el logging estándar, con el request id de cada petición
inyectado desde contextvars.
"""
import logging
import sys
import uuid

import structlog


def setup_structured_logging(log_level: str = "INFO") -> None:
    """
    Configura structlog y el logging estándar.

    Args:
        log_level: DEBUG, INFO, WARNING o ERROR
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """Genera un id de petición con formato req-<12 hex>."""
    return f"req-{uuid.uuid4().hex[:12]}"
