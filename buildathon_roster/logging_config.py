import logging
import sys

def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("buildathon_roster")
    if logger.handlers:
        return logger  # already configured
    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    return logger
