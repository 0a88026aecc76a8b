import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

def setup_logging(log_dir: str = "logs", level: int = logging.INFO):
    """Setup application logging"""
    # Create logs directory if it doesn't exist
    log_path = Path(log_dir)
    log_path.mkdir(exist_ok=True)

    # Create formatters
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    # File handler
    file_handler = RotatingFileHandler(
        log_path / "app.log",
        maxBytes=10485760,  # 10MB
        backupCount=5
    )
    file_handler.setFormatter(formatter)

    # Telemetry events get their own file for the collector to tail
    telemetry_handler = RotatingFileHandler(
        log_path / "telemetry.log",
        maxBytes=10485760,
        backupCount=5
    )
    telemetry_handler.setFormatter(formatter)
    logging.getLogger("app.telemetry").addHandler(telemetry_handler)

    # Set root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Set specific log levels for noisy libraries
    logging.getLogger("aiomysql").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    # Route warnings.warn (PartialHydrationWarning) through logging
    logging.captureWarnings(True)
