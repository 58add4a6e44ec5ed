# src/labelkit/utils/logging_config.py

import logging
import sys
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config=None):
    """Configures the root logger from the configuration."""

    if config is not None:
        log_level_str = config.get_str("logging.level", "INFO").upper()
        log_file_path = config.path("logs") if config.get_bool("logging.file") else None
    else:
        log_level_str = 'INFO'
        log_file_path = None

    # Validate level
    log_level = getattr(logging, log_level_str, None)
    if not isinstance(log_level, int):
        print(f"Warning: invalid log level '{log_level_str}'. Using INFO.", file=sys.stderr)
        log_level_str = 'INFO'
        log_level = logging.INFO

    log_formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()

    # Drop existing handlers
    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    root_logger.setLevel(log_level)

    # Console handler (always)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    # File handler (when configured)
    if log_file_path:
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)

            max_bytes = 5 * 1024 * 1024  # 5 MB
            backup_count = 3
            file_handler = RotatingFileHandler(
                filename=log_file_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(log_formatter)
            file_handler.setLevel(log_level)
            root_logger.addHandler(file_handler)

            logging.info(f"File logging configured: level={log_level_str}, file={log_file_path}")
        except OSError as e:
            print(f"Warning: could not configure file handler for {log_file_path}: {e}", file=sys.stderr)
            logging.error(f"Failed to configure file handler: {e}")
    else:
        logging.info(f"Console logging configured: level={log_level_str}. File logging disabled.")
