"""Root logging setup for the JSON lines emitted by StructuredLogger."""
import logging
import sys

# Loggers of the relational store stack that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio")


def configure_structured_logging(level: str = "INFO", echo_sql: bool = False):
    """
    Configure root logging for a binder runtime.

    Args:
        level: Root level name, e.g. ``"INFO"`` (validated by LoggingSettings)
        echo_sql: Leave the SQLAlchemy engine logger at ``level`` so emitted
            SQL is visible
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",  # JSON already formatted
        stream=sys.stdout,
    )

    for name in QUIET_LOGGERS:
        if echo_sql and name == "sqlalchemy.engine":
            continue
        logging.getLogger(name).setLevel(logging.WARNING)
