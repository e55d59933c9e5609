import logging
import os
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "app.log"

LOG_MODE_ENV = "JSON_TRANSLATOR_LOG_MODE"

# Cache for log mode to avoid repeated config reads
_log_mode_cache = None


def _get_log_mode():
    """Get log mode from the environment, then the stored config."""
    global _log_mode_cache
    if _log_mode_cache is not None:
        return _log_mode_cache

    log_mode = os.environ.get(LOG_MODE_ENV)
    if not log_mode:
        try:
            from json_translator.core import database as db
            # Never create the database just to read the log mode
            if db.DB_FILE.exists():
                from json_translator.config import load_config
                log_mode = load_config().get('log_mode', 'info')
        except Exception:
            log_mode = None
    log_mode = log_mode or 'info'
    _log_mode_cache = log_mode
    return log_mode


def _apply_log_mode(logger: logging.Logger, log_mode: str) -> None:
    """Set levels and add/remove handlers for the given mode."""
    log_format = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if log_mode == 'debug':
        target_level = logging.DEBUG
    elif log_mode == 'off':
        # Higher than CRITICAL disables everything
        target_level = logging.CRITICAL + 1
    else:
        target_level = logging.INFO
    logger.setLevel(target_level)

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    console_handlers = [
        h for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]

    if log_mode == 'off':
        for handler in file_handlers:
            handler.close()
            logger.removeHandler(handler)
        for handler in console_handlers:
            handler.setLevel(target_level)
        return

    if not file_handlers:
        LOG_DIR.mkdir(exist_ok=True)
        f_handler = logging.FileHandler(LOG_FILE)
        f_handler.setLevel(logging.DEBUG)
        f_handler.setFormatter(log_format)
        logger.addHandler(f_handler)

    if not console_handlers:
        c_handler = logging.StreamHandler()
        c_handler.setFormatter(log_format)
        logger.addHandler(c_handler)
        console_handlers = [c_handler]
    for handler in console_handlers:
        handler.setLevel(target_level)


def refresh_log_mode():
    """Clear the log mode cache and update all existing loggers (call this when config is updated)."""
    global _log_mode_cache
    _log_mode_cache = None
    log_mode = _get_log_mode()

    # Only loggers that have handlers were created by get_logger
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        if logger.handlers and logger_name.startswith('json_translator'):
            _apply_log_mode(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    _apply_log_mode(logger, _get_log_mode())
    # Handlers are attached per logger
    logger.propagate = False
    return logger
