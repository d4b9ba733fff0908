"""
Logging setup: console logging plus optional CloudWatch shipping via watchtower.

Only generation, reconciliation and billing milestones (and errors from
anywhere) are shipped to CloudWatch to keep costs down.

Environment variables:
  LOG_LEVEL             - Console log level (default: INFO)
  CLOUDWATCH_ENABLED    - Set to "true" to enable CloudWatch (default: disabled)
  CLOUDWATCH_LOG_GROUP  - Log group name (default: /app/pet-portrait-api)
  CLOUDWATCH_LOG_STREAM - Stream name (default: chosen by watchtower)
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure root console logging. Safe to call more than once."""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


class PipelineLogFilter(logging.Filter):
    """Pass INFO+ from pipeline modules and ERROR+ from everywhere else."""

    PIPELINE_MODULES = (
        "src.services.",
        "src.core.kie_client",
        "src.api.routes.webhooks",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True
        if record.levelno >= logging.INFO:
            return record.name.startswith(self.PIPELINE_MODULES)
        return False


def setup_cloudwatch_logging() -> bool:
    """
    Attach a CloudWatch handler to the root logger.

    Returns True if CloudWatch logging was enabled. A missing watchtower
    install or missing AWS credentials only produce a warning.
    """
    if os.getenv("CLOUDWATCH_ENABLED", "").lower() != "true":
        return False

    try:
        import watchtower
    except ImportError:
        logger.warning("CLOUDWATCH_ENABLED=true but watchtower is not installed")
        return False

    log_group = os.getenv("CLOUDWATCH_LOG_GROUP", "/app/pet-portrait-api")

    try:
        handler = watchtower.CloudWatchLogHandler(
            log_group_name=log_group,
            log_stream_name=os.getenv("CLOUDWATCH_LOG_STREAM"),
            send_interval=10,
            max_batch_count=100,
        )
    except Exception as e:
        logger.warning("Failed to initialize CloudWatch logging: %s", e)
        return False

    handler.setLevel(logging.INFO)
    handler.addFilter(PipelineLogFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    logger.info("CloudWatch logging enabled: group=%s", log_group)
    return True


def flush_cloudwatch_logging() -> None:
    """Flush and close CloudWatch handlers. Call on app shutdown."""
    try:
        import watchtower
    except ImportError:
        return

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, watchtower.CloudWatchLogHandler):
            handler.flush()
            handler.close()
            root.removeHandler(handler)
