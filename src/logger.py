import logging

LOGGER_NAME = "vbtopics"


def setup_logger(name=LOGGER_NAME, log_file="vbtopics.log", level=logging.INFO):
    """Configure or refresh a named logger each time this is called.

    Every model instance calls this on construction, so old handlers are
    closed first to keep a single file and console handler per logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False
    return logger
