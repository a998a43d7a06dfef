"""
Logging configuration for TicsTracker Bot.

Features:
- Separate log files for system events, transfer alerts and errors
- Rotating file handlers (max 50MB per file, keep 5 backups)
- Automatic cleanup of old logs (keeps last 7 days)
- Console output for real-time monitoring
"""
import glob
import logging
import logging.handlers
from datetime import datetime, timedelta
from pathlib import Path
from typing import Union

# Rotation settings
MAX_BYTES = 50 * 1024 * 1024  # 50 MB per file
BACKUP_COUNT = 5  # Keep 5 backup files

# Cleanup settings
LOG_RETENTION_DAYS = 7


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Union[str, Path] = "logs") -> dict:
    """
    Configure logging with rotation and cleanup.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the rotating log files

    Returns:
        dict: Dictionary of specialized loggers
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler (for real-time monitoring)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Configure root logger (catches all logs)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler(log_path / "system.log", level, formatter))
    # Errors only (easier to monitor)
    root_logger.addHandler(_rotating_handler(log_path / "errors.log", logging.ERROR, formatter))

    # Every classified transfer goes to its own file as well
    alerts_logger = logging.getLogger('alerts')
    alerts_logger.handlers.clear()
    alerts_logger.addHandler(_rotating_handler(log_path / "alerts.log", logging.INFO, formatter))
    alerts_logger.propagate = True

    cleanup_old_logs(log_path)

    root_logger.info("=" * 80)
    root_logger.info("TicsTracker Bot logging system initialized")
    root_logger.info(f"Log directory: {log_path.absolute()}")
    root_logger.info(f"Log level: {log_level}")
    root_logger.info(f"Rotation: {MAX_BYTES // (1024*1024)} MB per file, {BACKUP_COUNT} backups")
    root_logger.info("=" * 80)

    return {
        'system': root_logger,
        'alerts': alerts_logger,
    }


def cleanup_old_logs(log_dir: Union[str, Path] = "logs", retention_days: int = LOG_RETENTION_DAYS) -> int:
    """
    Delete log files older than the retention period.

    Runs on startup to prevent disk space issues.

    Returns:
        Number of files deleted
    """
    log_path = Path(log_dir)
    cutoff_time = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0
    total_size_freed = 0

    # Current logs and their backups (.log.1, .log.2, ...)
    for pattern in (log_path / "*.log", log_path / "*.log.*"):
        for log_file in glob.glob(str(pattern)):
            path = Path(log_file)
            if not path.exists():
                continue

            try:
                mtime = datetime.fromtimestamp(path.stat().st_mtime)
                if mtime < cutoff_time:
                    file_size = path.stat().st_size
                    path.unlink()
                    deleted_count += 1
                    total_size_freed += file_size
            except OSError as e:
                logging.error(f"Error cleaning up {path}: {e}")

    if deleted_count > 0:
        size_mb = total_size_freed / (1024 * 1024)
        logging.info(f"Cleaned up {deleted_count} old log files ({size_mb:.2f} MB freed)")

    return deleted_count
