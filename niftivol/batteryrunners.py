# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Consistency checks on volume headers

A check is a callable ``check(hdr, fix=False) -> (hdr, report)``.  It looks
for one problem; asked to fix, it repairs `hdr` in place and says how in the
report.  Levels in the report are :mod:`logging` levels, from 0 (no problem)
through 30 (suspicious) and 40 (not to be trusted) to 50 (unusable).

>>> def chk_sizeof_hdr(hdr, fix=False):
...     report = Report()
...     if hdr['sizeof_hdr'] == 348:
...         return hdr, report
...     report.problem_level = 40
...     report.problem_msg = 'sizeof_hdr should be 348'
...     if fix:
...         hdr['sizeof_hdr'] = 348
...         report.fix_msg = 'set sizeof_hdr to 348'
...     return hdr, report
>>> battery = BatteryRunner([chk_sizeof_hdr])
>>> battery.check_only({'sizeof_hdr': 0})[0].message
'sizeof_hdr should be 348'
>>> hdr, reports = battery.check_fix({'sizeof_hdr': 0})
>>> hdr, reports[0].message
({'sizeof_hdr': 348}, 'sizeof_hdr should be 348; set sizeof_hdr to 348')
"""
from .errors import FormatError


class BatteryRunner:
    """Ordered checks over one object

    Parameters
    ----------
    checks : sequence
        check callables, run in order
    """

    def __init__(self, checks):
        self._checks = tuple(checks)

    def __len__(self):
        return len(self._checks)

    def check_only(self, obj):
        """Reports from each check on `obj`, fixing nothing"""
        return [check(obj, False)[1] for check in self._checks]

    def check_fix(self, obj):
        """Run each check with fixing on

        Later checks see the object returned by earlier ones.

        Returns
        -------
        obj : object
            `obj` after fixes
        reports : list
            one :class:`Report` per check
        """
        reports = []
        for check in self._checks:
            obj, report = check(obj, True)
            reports.append(report)
        return obj, reports


class Report:
    """Outcome of one check

    Parameters
    ----------
    error : None or exception class, optional
        raised by :meth:`log_raise` for serious enough problems; None never
        raises
    problem_level : int, optional
        logging level of the problem, 0 for none
    problem_msg : str, optional
        what is wrong
    fix_msg : str, optional
        what the fix did, empty if nothing was fixed

    Examples
    --------
    >>> Report().problem_level
    0
    >>> Report(problem_level=10) == Report(problem_level=10)
    True
    """

    def __init__(self, error=FormatError, problem_level=0, problem_msg='', fix_msg=''):
        self.error = error
        self.problem_level = problem_level
        self.problem_msg = problem_msg
        self.fix_msg = fix_msg

    def _state(self):
        return (self.error, self.problem_level, self.problem_msg, self.fix_msg)

    def __eq__(self, other):
        if not isinstance(other, Report):
            return NotImplemented
        return self._state() == other._state()

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        error = getattr(self.error, '__name__', None)
        return f'Report({error}, {self.problem_level}, {self.problem_msg!r}, {self.fix_msg!r})'

    @property
    def message(self):
        """``problem; fix``, or just the problem when nothing was fixed"""
        return '; '.join(msg for msg in (self.problem_msg, self.fix_msg) if msg)

    def log_raise(self, logger, error_level=40):
        """Log the message at the problem level, then maybe raise

        ``self.error`` is raised when there is a problem at or above
        `error_level`.
        """
        logger.log(self.problem_level, self.message)
        if self.error is not None and self.problem_level and self.problem_level >= error_level:
            raise self.error(self.problem_msg)
