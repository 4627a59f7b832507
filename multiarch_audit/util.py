"""Logging and configuration helpers shared by the multiarch_audit modules."""

import logging
import sys
from contextlib import contextmanager
from traceback import extract_stack

# Ref: https://github.com/rconradharris/envparse
from envparse import env

# Container engines able to run `<engine> manifest inspect`
CONTAINER_ENGINES = ("docker", "podman")

DEFAULT_ENGINE = "docker"

# Log record format, 'loc' is supplied at call time by the helpers below.
LOG_FORMAT = '{levelname}: {message} {loc}'

# Nested debug output is easier on human eyeballs.  See indented_output().
_indent = 0


def _loc(limit=3):
    caller = extract_stack(limit=limit)[0]
    return dict(loc=f'(line {caller.lineno})')


def dbg(msg: str) -> None:
    """Shorthand for calling logging.debug() with indentation."""
    indent = " " * 2 * _indent
    logging.debug(f"{indent}{msg}", extra=_loc())


def warn(msg: str) -> None:
    """Shorthand for calling logging.warning()."""
    logging.warning(msg, extra=_loc())


def error(msg: str) -> None:
    """Shorthand for calling logging.error(), execution continues."""
    logging.error(msg, extra=_loc())


def err(msg: str) -> None:
    """Log an error message and exit non-zero."""
    logging.error(msg, extra=_loc())
    sys.exit(1)


@contextmanager
def indented_output(dbgmsg=None):
    """Increment debug-message indentation level within an execution context."""
    global _indent
    if dbgmsg is not None:
        dbg(dbgmsg)
    _indent += 1
    try:
        yield _indent
    finally:
        _indent -= 1


def setup_logging(debug: bool = False) -> None:
    """Configure the root logger, DEBUG level when requested."""
    logging.basicConfig(format=LOG_FORMAT, style='{')
    logger = logging.getLogger()
    if debug:
        logger.setLevel(logging.DEBUG)
        dbg("Debugging enabled")
    else:
        logger.setLevel(logging.WARNING)


def config_from_env() -> dict:
    """Return default settings from $MULTIARCH_CONTAINER_ENGINE and $MULTIARCH_FILTER."""
    return {
        "engine": env.str('MULTIARCH_CONTAINER_ENGINE', default=DEFAULT_ENGINE).strip(),
        "name_filter": env.str('MULTIARCH_FILTER', default="").strip(),
    }
