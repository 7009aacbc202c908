# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Fixed-layout binary records backed by numpy structured arrays

Every volume header is a :class:`WrapStruct`: one record of a structured
dtype, read from and written to a byte block of exactly ``itemsize``
bytes.  Fields are reached by item access::

    hdr['dim'][0] = 3
    hdr.keys()

The byte order of a block is guessed by the subclass (see
:meth:`WrapStruct.guessed_endian`) unless given.  Blocks are checked on
creation by the battery of checks from :meth:`WrapStruct._get_checks`;
failures are logged to ``niftivol.imageglobals.logger`` and raise once
they reach ``niftivol.imageglobals.error_level``.  To see problems without
fixing or raising::

    print(AnalyzeHeader.diagnose_binaryblock(block))

:class:`LabeledWrapStruct` prints coded fields by their labels.
"""
import numpy as np

from . import imageglobals as imageglobals
from .batteryrunners import BatteryRunner
from .errors import FormatError
from .volumeutils import endian_codes, native_code, pretty_mapping, swapped_code


class WrapStructError(FormatError):
    """Binary block of the wrong size for the record"""


class WrapStruct:
    """One binary record with mapping access to its fields

    Parameters
    ----------
    binaryblock : None or bytes, optional
        block of ``template_dtype.itemsize`` bytes.  None gives the record
        from :meth:`default_structarr`.
    endianness : None or str, optional
        byte order code or alias of `binaryblock` (or of the default
        record).  None guesses the order of a block with
        :meth:`guessed_endian`, and means native for the default record.
    check : bool, optional
        whether to run the checks on a given block

    Examples
    --------
    >>> wstr = WrapStruct()
    >>> wstr.endianness == native_code
    True
    >>> wstr['integer'] = 1
    >>> int(wstr['integer'])
    1
    """

    #: dtype of the record; subclasses replace this
    template_dtype = np.dtype([('integer', 'i2')])

    def __init__(self, binaryblock=None, endianness=None, check=True):
        if binaryblock is None:
            self._structarr = self.default_structarr(endianness)
            return
        self._structarr = self._record_from_block(binaryblock, endianness)
        if check:
            self.check_fix()

    @classmethod
    def _record_from_block(klass, binaryblock, endianness):
        size = klass.template_dtype.itemsize
        if len(binaryblock) != size:
            raise WrapStructError(
                f'Binary block is {len(binaryblock)} bytes, expecting {size}', offset=0
            )
        if endianness is None:
            # guess from the block viewed in native order
            native = np.ndarray((), klass.template_dtype, buffer=binaryblock)
            endianness = klass.guessed_endian(native)
        else:
            endianness = endian_codes[endianness]
        dtype = klass.template_dtype
        if endianness != native_code:
            dtype = dtype.newbyteorder(endianness)
        return np.ndarray((), dtype, buffer=binaryblock).copy()

    @classmethod
    def from_fileobj(klass, fileobj, endianness=None, check=True):
        """Read one record from the current position of `fileobj`

        Raises
        ------
        WrapStructError
            if `fileobj` ends before a whole record
        """
        return klass(fileobj.read(klass.template_dtype.itemsize), endianness, check)

    @classmethod
    def default_structarr(klass, endianness=None):
        """Zeroed record in byte order `endianness` (native if None)

        Subclasses fill in the defaults of their format.
        """
        dtype = klass.template_dtype
        if endianness is not None:
            dtype = dtype.newbyteorder(endian_codes[endianness])
        return np.zeros((), dtype=dtype)

    @classmethod
    def guessed_endian(klass, mapping):
        """Byte order ``'<'`` or ``'>'`` intended for record `mapping`

        `mapping` is the block read in native byte order.
        """
        raise NotImplementedError

    @classmethod
    def _get_checks(klass):
        """Check functions, each ``check(obj, fix=False) -> (obj, report)``"""
        return ()

    @property
    def binaryblock(self):
        """The record as bytes, in its own byte order

        >>> len(WrapStruct().binaryblock)
        2
        """
        return self._structarr.tobytes()

    @property
    def structarr(self):
        """The wrapped 0-d structured array"""
        return self._structarr

    @property
    def endianness(self):
        """Byte order code of the record; see :meth:`as_byteswapped`"""
        return native_code if self._structarr.dtype.isnative else swapped_code

    def write_to(self, fileobj):
        """Write the record at the current position of `fileobj`

        >>> from io import BytesIO
        >>> bio = BytesIO()
        >>> WrapStruct().write_to(bio)
        >>> bio.getvalue()
        b'\\x00\\x00'
        """
        fileobj.write(self.binaryblock)

    def copy(self):
        """Unchecked copy of the record with the same byte order"""
        return self.__class__(self.binaryblock, self.endianness, check=False)

    def as_byteswapped(self, endianness=None):
        """Copy of the record in byte order `endianness`

        None swaps from the current order.  The copy is not checked.

        >>> wstr = WrapStruct()
        >>> swapped = wstr.as_byteswapped()
        >>> swapped.endianness == swapped_code
        True
        >>> swapped == wstr
        True
        """
        if endianness is None:
            endianness = swapped_code if self.endianness == native_code else native_code
        else:
            endianness = endian_codes[endianness]
        if endianness == self.endianness:
            return self.copy()
        return self.__class__(
            self._structarr.byteswap().tobytes(), endianness, check=False
        )

    def __eq__(self, other):
        """Records are equal if their fields are, whatever the byte order

        >>> WrapStruct() == WrapStruct(endianness=swapped_code)
        True
        """
        try:
            other_arr = other._structarr
        except AttributeError:
            return False
        if other.endianness != self.endianness:
            other_arr = other_arr.byteswap()
        return self.binaryblock == other_arr.tobytes()

    def __ne__(self, other):
        return not self == other

    def __getitem__(self, item):
        return self._structarr[item]

    def __setitem__(self, item, value):
        self._structarr[item] = value

    def __iter__(self):
        return iter(self.keys())

    def keys(self):
        return list(self.template_dtype.names)

    def values(self):
        return [self._structarr[key] for key in self.keys()]

    def items(self):
        return zip(self.keys(), self.values())

    def get(self, k, d=None):
        return self._structarr[k] if k in self.keys() else d

    def check_fix(self, logger=None, error_level=None):
        """Fix the record in place, logging each problem

        Parameters
        ----------
        logger : None or logging.Logger, optional
            None means ``imageglobals.logger``
        error_level : None or int, optional
            problems at or above this level raise after logging.  None means
            ``imageglobals.error_level``.
        """
        if logger is None:
            logger = imageglobals.logger
        if error_level is None:
            error_level = imageglobals.error_level
        _, reports = BatteryRunner(self._get_checks()).check_fix(self)
        for report in reports:
            report.log_raise(logger, error_level)

    @classmethod
    def diagnose_binaryblock(klass, binaryblock, endianness=None):
        """Problems found in `binaryblock`, one per line, without fixing"""
        wstr = klass(binaryblock, endianness=endianness, check=False)
        reports = BatteryRunner(klass._get_checks()).check_only(wstr)
        return '\n'.join(report.message for report in reports if report.message)

    def _str_value(self, key):
        return self._structarr[key]

    def __str__(self):
        summary = f"{self.__class__} object, endian='{self.endianness}'"
        return '\n'.join((summary, pretty_mapping(self, lambda obj, key: obj._str_value(key))))


class LabeledWrapStruct(WrapStruct):
    """Record whose coded fields print as labels

    ``_field_recoders`` maps field names to
    :class:`~niftivol.volumeutils.Recoder` instances.
    """

    _field_recoders = {}

    def get_value_label(self, fieldname):
        """Label of the code in coded field `fieldname`

        Codes missing from the recoder give ``'<unknown code N>'``.

        Raises
        ------
        ValueError
            if `fieldname` is not a coded field of the record

        Examples
        --------
        >>> from niftivol.volumeutils import Recoder
        >>> recoder = Recoder(((1, 'one'), (2, 'two')), ('code', 'label'))
        >>> class C(LabeledWrapStruct):
        ...     template_dtype = np.dtype([('datatype', 'i2')])
        ...     _field_recoders = dict(datatype=recoder)
        >>> hdr = C()
        >>> hdr.get_value_label('datatype')
        '<unknown code 0>'
        >>> hdr['datatype'] = 2
        >>> hdr.get_value_label('datatype')
        'two'
        """
        if fieldname not in self._field_recoders or fieldname not in self.keys():
            raise ValueError(f'{fieldname} not a coded field')
        code = int(self._structarr[fieldname])
        try:
            return self._field_recoders[fieldname].label[code]
        except KeyError:
            return f'<unknown code {code}>'

    def _str_value(self, key):
        if key in self._field_recoders:
            return self.get_value_label(key)
        return super()._str_value(key)
