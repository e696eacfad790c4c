import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Installe un handler console unique sur le logger "backend".
    Rappel possible sans dupliquer les handlers.
    """
    logger = logging.getLogger("backend")
    logger.setLevel(level)

    if not any(getattr(h, "_backend_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._backend_handler = True
        logger.addHandler(handler)

    return logger
