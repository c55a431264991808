import logging
import sys
from src.config.settings import settings

def _add_file_handler(logger: logging.Logger, filename: str, formatter: logging.Formatter):
    try:
        # Create logs directory if it doesn't exist
        settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(settings.LOGS_DIR / filename)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except Exception as e:
        print(f"Warning: Could not setup file logging: {e}")

def setup_logger():
    """Configure and return a logger instance."""
    logger = logging.getLogger("docs_expert")

    # Only add handlers if they haven't been added already
    if not logger.handlers:
        logger.setLevel(logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        _add_file_handler(logger, "app.log", formatter)

    return logger

def setup_alert_logger():
    """Operator-facing channel for failures that are hidden from chat users.

    Records also propagate to the main logger, so they show up on the console.
    """
    alert_logger = logging.getLogger("docs_expert.alerts")

    if not alert_logger.handlers:
        alert_logger.setLevel(logging.WARNING)
        formatter = logging.Formatter(
            '%(asctime)s - ALERT - %(levelname)s - %(message)s'
        )
        _add_file_handler(alert_logger, "alerts.log", formatter)

    return alert_logger

# Create singleton logger instances
logger = setup_logger()
alert_logger = setup_alert_logger()
