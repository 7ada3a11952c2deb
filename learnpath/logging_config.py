import logging


def setup_logging(app=None, log_level: str = "INFO") -> logging.Logger:
    """Configure the ``learnpath`` logger once per process."""
    level = getattr(logging, str(log_level).upper(), logging.INFO)

    logger = logging.getLogger("learnpath")
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(module)s: %(message)s",
                                  datefmt="%Y-%m-%d %H:%M:%S")
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if app is not None:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logger.debug("logging initialized: level=%s", log_level)
    return logger
