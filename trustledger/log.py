"""
Briq Trust Ledger — Logging setup

Every module logs through structlog with snake_case event names:

    logger = structlog.get_logger()
    logger.info("payment_recorded", address=address, trust_score=score)

configure_logging() is called once by the entry points (API app, CLI).
"""
import logging

import structlog


def configure_logging(json_logs: bool = False, level: int = logging.INFO) -> None:
    """Install the structlog processor chain."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
