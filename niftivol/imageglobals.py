# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Logger and error level shared across the package

Header checks log each problem they find to ``logger`` and raise once the
problem level (see :mod:`niftivol.batteryrunners`) reaches ``error_level``.
The default of 40 raises only for headers that cannot be trusted; 0 raises
for anything, 50 for nothing.

The same logger carries the other diagnostics: unknown datatype codes,
ignored SPM matrix files and short data writes.  It prints warnings and
above; ``logger.setLevel(1)`` shows everything.
"""
import logging

error_level = 40
logger = logging.getLogger('niftivol.global')
logger.addHandler(logging.StreamHandler())


class ErrorLevel:
    """Set ``error_level`` for the duration of a ``with`` block

    >>> from niftivol import imageglobals
    >>> with ErrorLevel(50):
    ...     imageglobals.error_level
    50
    >>> imageglobals.error_level
    40
    """

    def __init__(self, level):
        self.level = level
        self._saved = None

    def __enter__(self):
        global error_level
        self._saved, error_level = error_level, self.level
        return self

    def __exit__(self, exc, value, tb):
        global error_level
        error_level = self._saved


class LoggingOutputSuppressor:
    """Detach the handlers of ``logger`` inside a ``with`` block"""

    def __enter__(self):
        self._handlers = list(logger.handlers)
        for handler in self._handlers:
            logger.removeHandler(handler)
        return self

    def __exit__(self, exc, value, tb):
        for handler in self._handlers:
            logger.addHandler(handler)
