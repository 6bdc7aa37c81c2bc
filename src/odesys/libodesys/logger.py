"""
Logging for the integrators.

Everything logs under the ``odesys`` logger.  Two levels below DEBUG
trace the stepping loops:

    DEBUG   workspace construction, bootstrap, driver start / finish
    DEBUG2  once per accepted step (predictor, roll-forward)
    DEBUG3  once per corrector iteration

State vectors go into messages through ``brief``, which defers the
formatting until a handler actually emits the record, so a disabled
DEBUG2 call inside the step loop costs one level check.

Usage
-----
>>> from odesys.libodesys.logger import brief, get_logger
>>> log = get_logger(__name__)
>>> log.debug2("accepted x=%g y=%s", x, brief(y))
"""

import logging
import sys

import numpy as np

ROOT = "odesys"

DEBUG2 = 9
DEBUG3 = 8

logging.addLevelName(DEBUG2, "DEBUG2")
logging.addLevelName(DEBUG3, "DEBUG3")

# Integer verbosity 0..6 -> logging level
VERBOSITY_LEVEL_MAP = dict(enumerate((
    logging.ERROR,
    logging.WARNING,
    logging.INFO,
    logging.DEBUG,
    logging.DEBUG,
    DEBUG2,
    DEBUG3,
)))


class _OdesysLogger(logging.Logger):
    """Logger with ``debug2`` (per step) and ``debug3`` (per iteration)."""

    def debug2(self, msg, *args, **kwargs):
        if self.isEnabledFor(DEBUG2):
            self._log(DEBUG2, msg, args, **kwargs)

    def debug3(self, msg, *args, **kwargs):
        if self.isEnabledFor(DEBUG3):
            self._log(DEBUG3, msg, args, **kwargs)


logging.setLoggerClass(_OdesysLogger)


class brief:
    """Lazy, abbreviated rendering of a state vector for log messages.

    Only the first and last *edge* components are shown for long vectors.
    The vector is read when the record is formatted, not when ``brief``
    is created.
    """

    __slots__ = ("vector", "edge", "precision")

    def __init__(self, vector, edge: int = 3, precision: int = 6):
        self.vector = vector
        self.edge = edge
        self.precision = precision

    def __str__(self) -> str:
        return np.array2string(
            np.asarray(self.vector),
            precision=self.precision,
            threshold=2 * self.edge,
            edgeitems=self.edge,
            separator=", ",
        )

    __repr__ = __str__


def get_logger(name: str | None = None) -> _OdesysLogger:
    """Return a logger inside the ``odesys`` hierarchy.

    Names outside the hierarchy are nested under it, so ``set_level``
    always reaches them.
    """
    if not name or name == ROOT:
        return logging.getLogger(ROOT)
    if not name.startswith(ROOT + "."):
        name = f"{ROOT}.{name}"
    return logging.getLogger(name)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level {level!r}")
        return resolved
    return VERBOSITY_LEVEL_MAP.get(level, level)


def set_level(level: int | str = logging.INFO) -> None:
    """Set the level of every odesys logger.

    Accepts a verbosity 0-6, a logging level number, or a level name
    (case-insensitive, ``"debug2"`` included).
    """
    logging.getLogger(ROOT).setLevel(_resolve_level(level))


def setup(level: int | str = logging.INFO, stream=None) -> None:
    """Attach a stream handler to the odesys logger, once."""
    root = logging.getLogger(ROOT)
    if root.handlers:
        return
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)-7s: %(message)s"))
    root.addHandler(handler)
    set_level(level)
