"""Debug logging for `safe --debug`.

Tree workers issue requests concurrently, so every record carries the
name of the thread that made it.

"""
import logging

TRACE_FORMAT = "%(asctime)s %(threadName)s %(levelname)s: %(message)s"

_handler = None


def setup_logging(debug, loggers=("safe",)):
    """Send the records of `loggers` to stderr if `debug` is set.

    Returns the handler in use, or None when debugging is off. Repeated
    calls share one handler so no record is printed twice.

    """
    global _handler
    if not debug:
        return None
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(TRACE_FORMAT))
    for name in loggers:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        if _handler not in logger.handlers:
            logger.addHandler(_handler)
    return _handler
