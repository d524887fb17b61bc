import logging


def setup_logging(level: str = "INFO", logger_name: str = "shortlink_app") -> logging.Logger:
    """
    Configure the package logger.

    Handlers are cleared first so calling this again (every create_app in tests)
    does not stack duplicate output. Records still propagate to the root logger.
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)

    return logger
