# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Read / write access to the basic Mayo Analyze 7.5 header

===========================
 The Analyze header format
===========================

A fixed 348 byte record in three parts (``header_key``,
``image_dimension``, ``data_history``), stored in the byte order of the
machine that wrote it.  The header class is a :class:`LabeledWrapStruct`
with these additions:

Class attributes::

    .sizeof_hdr
    .dialect

Methods::

    .get/set_data_shape
    .get/set_data_dtype
    .get/set_datatype
    .get/set_dim
    .get/set_pixdim
    .get/set_zooms
    .get/set_data_offset
    .get/set_description
    .get/set_cal_range
    .get_extents()
    .get_plain_affine()
    .get_best_affine()
    .raw_data_from_fileobj(fileobj)
    .data_to_fileobj(data, fileobj)

Basic Analyze cannot store a full affine.  Its affine is the diagonal of the
voxel spacings with no translation; see :mod:`niftivol.transforms`.

Byte order is detected from the rank in ``dim[0]`` (offset 40), which must
lie in [1, 7] in the right byte order.
"""
import numpy as np

from . import imageglobals as imageglobals
from .batteryrunners import Report
from .errors import BadByteOrderError, FormatError, UnsupportedTypeError
from .transforms import pixdim_affine, resolve_affine
from .volumeutils import (
    array_from_file,
    array_to_file,
    bitpix_for_code,
    data_type_codes,
    native_code,
    swapped_code,
)
from .wrapstruct import LabeledWrapStruct

# Sub-parts of standard analyze header from Mayo dbh.h file
header_key_dtd = [
    ('sizeof_hdr', 'i4'),  # 0; must be 348
    ('data_type', 'S10'),  # 4; unused
    ('db_name', 'S18'),  # 14; unused
    ('extents', 'i4'),  # 32; unused
    ('session_error', 'i2'),  # 36; unused
    ('regular', 'S1'),  # 38; unused
    ('hkey_un0', 'S1'),  # 39; unused
]
image_dimension_dtd = [
    ('dim', 'i2', (8,)),  # 40; data array dimensions
    ('vox_units', 'S4'),  # 56
    ('cal_units', 'S8'),  # 60
    ('unused1', 'i2'),  # 68
    ('datatype', 'i2'),  # 70; code for data type
    ('bitpix', 'i2'),  # 72; number of bits per voxel
    ('dim_un0', 'i2'),  # 74
    ('pixdim', 'f4', (8,)),  # 76; grid spacings (units below)
    ('vox_offset', 'f4'),  # 108; offset to data in image file
    ('funused1', 'f4'),  # 112
    ('funused2', 'f4'),  # 116
    ('funused3', 'f4'),  # 120
    ('cal_max', 'f4'),  # 124; max display intensity
    ('cal_min', 'f4'),  # 128; min display intensity
    ('compressed', 'i4'),  # 132
    ('verified', 'i4'),  # 136
    ('glmax', 'i4'),  # 140
    ('glmin', 'i4'),  # 144
]
data_history_dtd = [
    ('descrip', 'S80'),  # 148; any text
    ('aux_file', 'S24'),  # 228; auxiliary filename
    ('orient', 'S1'),  # 252
    ('originator', 'S10'),  # 253
    ('generated', 'S10'),  # 263
    ('scannum', 'S10'),  # 273
    ('patient_id', 'S10'),  # 283
    ('exp_date', 'S10'),  # 293
    ('exp_time', 'S10'),  # 303
    ('hist_un0', 'S3'),  # 313
    ('views', 'i4'),  # 316
    ('vols_added', 'i4'),  # 320
    ('start_field', 'i4'),  # 324
    ('field_skip', 'i4'),  # 328
    ('omax', 'i4'),  # 332
    ('omin', 'i4'),  # 336
    ('smax', 'i4'),  # 340
    ('smin', 'i4'),  # 344
]

# Full header numpy dtype combined across sub-fields
header_dtype = np.dtype(header_key_dtd + image_dimension_dtd + data_history_dtd)

#: byte offset of the rank field used for byte order detection
DIM0_OFFSET = 40


class AnalyzeHeader(LabeledWrapStruct):
    """Mayo Analyze 7.5 header: shape, datatype and voxel sizes, no scaling

    >>> hdr = AnalyzeHeader()
    >>> hdr.endianness == native_code
    True
    >>> hdr.set_data_shape((1, 2, 3))

    The byte order of a block is found from ``dim[0]``:

    >>> swapped = AnalyzeHeader(hdr.as_byteswapped().binaryblock)
    >>> swapped.endianness == swapped_code
    True
    >>> swapped.get_data_shape()
    (1, 2, 3)
    """

    template_dtype = header_dtype
    _data_type_codes = data_type_codes
    _field_recoders = {'datatype': data_type_codes}

    has_data_slope = False
    has_data_intercept = False

    sizeof_hdr = 348
    dialect = 'analyze'
    is_nifti = False

    @classmethod
    def guessed_endian(klass, hdr):
        """Detect the byte order of mapping-like ``hdr`` from ``dim[0]``

        ``dim[0]`` is read little-endian first; if the rank is outside [1, 7]
        it is read big-endian.

        Parameters
        ----------
        hdr : mapping-like
           header data, as read in native byte order

        Returns
        -------
        endianness : {'<', '>'}

        Raises
        ------
        BadByteOrderError
            if ``dim[0]`` is outside [1, 7] in both byte orders

        Examples
        --------
        >>> hdr_data = np.zeros((), dtype=header_dtype)
        >>> hdr_data['dim'][0] = 3
        >>> AnalyzeHeader.guessed_endian(hdr_data) == native_code
        True
        >>> AnalyzeHeader.guessed_endian(hdr_data.byteswap()) == swapped_code
        True
        """
        raw = np.asarray(hdr['dim'][0]).astype(native_code + 'i2').tobytes()
        for code in ('<', '>'):
            dim0 = int(np.frombuffer(raw, dtype=code + 'i2')[0])
            if 1 <= dim0 <= 7:
                return code
        raise BadByteOrderError(
            'Rank outside [1, 7] in both byte orders', field='dim[0]', offset=DIM0_OFFSET
        )

    @classmethod
    def default_structarr(klass, endianness=None):
        """A single float32 voxel of size 1"""
        record = super().default_structarr(endianness)
        record['sizeof_hdr'] = klass.sizeof_hdr
        record['dim'] = record['pixdim'] = 1
        record['datatype'] = data_type_codes['float32']
        record['bitpix'] = 32
        return record

    def get_datatype(self):
        """Return the integer datatype code"""
        return int(self._structarr['datatype'])

    def set_datatype(self, code):
        """Set datatype `code`, deriving ``bitpix`` from the code table

        Unknown codes are stored anyway, with ``bitpix`` 0 and a warning in
        the log, so headers from foreign writers survive a round trip.

        Examples
        --------
        >>> hdr = AnalyzeHeader()
        >>> hdr.set_datatype(4)
        >>> int(hdr['bitpix'])
        16
        >>> from niftivol.imageglobals import LoggingOutputSuppressor
        >>> with LoggingOutputSuppressor():
        ...     hdr.set_datatype(3)
        >>> int(hdr['datatype']), int(hdr['bitpix'])
        (3, 0)
        """
        code = int(code)
        bitpix = bitpix_for_code(code)
        if bitpix is None:
            imageglobals.logger.warning(
                'Unrecognized datatype code %d; setting bitpix to 0', code
            )
            bitpix = 0
        self._structarr['datatype'] = code
        self._structarr['bitpix'] = bitpix

    def get_data_dtype(self):
        """Get numpy dtype, with header byte order, for the voxel data

        Raises
        ------
        UnsupportedTypeError
            if the datatype code is unknown or has no numpy equivalent

        Examples
        --------
        >>> hdr = AnalyzeHeader()
        >>> hdr.set_data_dtype(np.int16)
        >>> hdr.get_data_dtype().kind, hdr.get_data_dtype().itemsize
        ('i', 2)
        """
        code = int(self._structarr['datatype'])
        try:
            dtype = self._data_type_codes.dtype[code]
        except KeyError:
            raise UnsupportedTypeError(f'datatype code {code} not recognized', code=code)
        if dtype.itemsize == 0:
            label = self._data_type_codes.label[code]
            raise UnsupportedTypeError(
                f'datatype "{label}" (code {code}) known but not supported', code=code
            )
        return dtype.newbyteorder(self.endianness)

    def set_data_dtype(self, datatype):
        """Set numpy dtype for data from code, dtype, type or label

        Examples
        --------
        >>> hdr = AnalyzeHeader()
        >>> hdr.set_data_dtype(np.uint8)
        >>> hdr.get_datatype()
        2
        >>> hdr.set_data_dtype('float64')
        >>> hdr.get_datatype()
        64
        """
        dt = datatype
        if dt not in self._data_type_codes:
            try:
                dt = np.dtype(dt)
            except TypeError:
                raise UnsupportedTypeError(f'data dtype "{datatype}" not recognized')
            if dt not in self._data_type_codes:
                dt = dt.newbyteorder('=')
            if dt not in self._data_type_codes:
                raise UnsupportedTypeError(f'data dtype "{datatype}" not supported')
        code = self._data_type_codes[dt]
        if self._data_type_codes.dtype[code].itemsize == 0:
            raise UnsupportedTypeError(
                f'data dtype "{datatype}" known but not supported', code=code
            )
        self.set_datatype(code)

    def get_dim(self):
        """Return the 8 raw ``dim`` values as a tuple of ints"""
        return tuple(int(d) for d in self._structarr['dim'])

    def set_dim(self, dim):
        """Set the raw ``dim`` field from up to 8 values"""
        dim = np.asarray(dim)
        if dim.size > 8:
            raise FormatError('dim takes at most 8 values', field='dim', offset=40)
        self._structarr['dim'][:] = 0
        self._structarr['dim'][: dim.size] = dim

    def get_pixdim(self):
        """Return the 8 raw ``pixdim`` values as float64 array"""
        return self._structarr['pixdim'].astype(np.float64)

    def set_pixdim(self, pixdim):
        """Set the raw ``pixdim`` field from up to 8 values"""
        pixdim = np.asarray(pixdim)
        if pixdim.size > 8:
            raise FormatError('pixdim takes at most 8 values', field='pixdim', offset=76)
        self._structarr['pixdim'][:] = 0
        self._structarr['pixdim'][: pixdim.size] = pixdim

    def get_data_shape(self):
        """Data shape from ``dim``; rank 0 gives ``(0,)``

        >>> hdr = AnalyzeHeader()
        >>> hdr.get_data_shape()
        (1,)
        """
        dim = self._structarr['dim']
        rank = int(dim[0])
        return tuple(int(n) for n in dim[1 : rank + 1]) if rank else (0,)

    def set_data_shape(self, shape):
        """Store a shape of 1 to 7 axes; spacings past the last axis become 1

        >>> hdr = AnalyzeHeader()
        >>> hdr.set_data_shape((1, 2, 3))
        >>> hdr.get_dim()
        (3, 1, 2, 3, 1, 1, 1, 1)
        """
        values = np.asarray(shape)
        if values.ndim != 1 or not 1 <= values.size <= 7:
            raise FormatError(f'shape {shape} must have 1 to 7 dimensions', field='dim[0]')
        limits = np.iinfo(self.template_dtype['dim'].base)
        if values.min() < limits.min or values.max() > limits.max or np.any(values % 1):
            raise FormatError(f'shape {shape} does not fit in dim datatype', field='dim')
        rank = values.size
        dim = np.ones(8, dtype=np.int64)
        dim[0] = rank
        dim[1 : rank + 1] = values
        self._structarr['dim'] = dim
        self._structarr['pixdim'][rank + 1 :] = 1.0

    def get_extents(self):
        """Return the five sampling extents ``(x, y, z, time, i5)``

        Axes beyond the rank, and axes of length 0, have extent 1.

        Examples
        --------
        >>> hdr = AnalyzeHeader()
        >>> hdr.set_data_shape((4, 5, 6))
        >>> hdr.get_extents()
        (4, 5, 6, 1, 1)
        """
        dims = self._structarr['dim']
        ndims = int(dims[0])
        extents = []
        for axis in range(1, 6):
            extent = int(dims[axis]) if ndims >= axis else 1
            extents.append(extent if extent > 0 else 1)
        return tuple(extents)

    def get_n_voxels(self):
        """Number of voxels the sampling extents describe"""
        return int(np.prod(self.get_extents()))

    @property
    def is_single_file(self):
        """Analyze data always live in a separate image file"""
        return False

    @property
    def version(self):
        """Format version; None for Analyze dialects"""
        return None

    def get_zooms(self):
        """Voxel spacing along each of the ``dim[0]`` axes

        >>> hdr = AnalyzeHeader()
        >>> hdr.set_data_shape((1, 2))
        >>> hdr.set_zooms((3, 4))
        >>> hdr.get_zooms()
        (3.0, 4.0)
        """
        rank = int(self._structarr['dim'][0])
        if rank == 0:
            return (1.0,)
        return tuple(float(p) for p in self._structarr['pixdim'][1 : rank + 1])

    def set_zooms(self, zooms):
        """Store one non-negative spacing per axis of the data shape"""
        rank = int(self._structarr['dim'][0])
        zooms = np.asarray(zooms, dtype=np.float64)
        if zooms.shape != (rank,):
            raise FormatError(f'Expecting {rank} zoom values for ndim {rank}', field='pixdim')
        if (zooms < 0).any():
            raise FormatError('zooms must be positive', field='pixdim')
        self._structarr['pixdim'][1 : rank + 1] = zooms

    def get_data_offset(self):
        """Byte offset of the first voxel in the image file

        >>> hdr = AnalyzeHeader()
        >>> hdr['vox_offset'] = 12
        >>> hdr.get_data_offset()
        12
        """
        return int(self._structarr['vox_offset'])

    def set_data_offset(self, offset):
        self._structarr['vox_offset'] = offset

    get_vox_offset = get_data_offset
    set_vox_offset = set_data_offset

    def get_description(self):
        """Return the ``descrip`` text field as str"""
        return self._structarr['descrip'].item().decode('latin-1')

    def set_description(self, text):
        """Set ``descrip`` text, truncated to the 80 byte field"""
        self._structarr['descrip'] = text.encode('latin-1')[:80]

    def get_cal_range(self):
        """Return ``(cal_min, cal_max)`` display range"""
        return float(self._structarr['cal_min']), float(self._structarr['cal_max'])

    def set_cal_range(self, cal_min, cal_max):
        self._structarr['cal_min'] = cal_min
        self._structarr['cal_max'] = cal_max

    def get_slope_inter(self):
        """``(None, None)``; plain Analyze stores no scaling"""
        return None, None

    def set_slope_inter(self, slope, inter=None):
        """Check that `slope` and `inter` need no storage

        Basic Analyze cannot store scaling, so `slope` must be None, NaN or
        1.0 and `inter` None, NaN or 0.
        """
        if (slope in (None, 1) or np.isnan(slope)) and (inter in (None, 0) or np.isnan(inter)):
            return
        raise UnsupportedTypeError('Cannot set slope != 1 or intercept != 0 for Analyze headers')

    def get_plain_affine(self):
        """Diagonal affine of voxel spacings, zero translation

        Examples
        --------
        >>> hdr = AnalyzeHeader()
        >>> hdr.set_data_shape((3, 5, 7))
        >>> hdr.set_zooms((3, 2, 1))
        >>> hdr.get_plain_affine()
        array([[3., 0., 0., 0.],
               [0., 2., 0., 0.],
               [0., 0., 1., 0.],
               [0., 0., 0., 1.]])
        """
        return pixdim_affine(self.get_pixdim())

    def get_best_affine(self, mat_lookup=None, prefer_standard=True):
        """Index to space affine chosen by :func:`~niftivol.transforms.resolve_affine`"""
        return resolve_affine(self, mat_lookup, prefer_standard)

    def raw_data_from_fileobj(self, fileobj, offset=None):
        """Read flat voxel array, in on-disk order, from `fileobj`

        Parameters
        ----------
        fileobj : file-like
            open at the image data
        offset : None or int, optional
            byte offset of the first voxel.  None means
            :meth:`get_data_offset`.

        Returns
        -------
        arr : ndarray
            1D array of ``get_n_voxels()`` values of ``get_data_dtype()``
        """
        if offset is None:
            offset = self.get_data_offset()
        return array_from_file(self.get_n_voxels(), self.get_data_dtype(), fileobj, offset)

    def data_to_fileobj(self, data, fileobj, offset=None):
        """Write `data` as the header datatype and byte order to `fileobj`

        `data` is written with the x index varying fastest.
        """
        if offset is None:
            offset = self.get_data_offset()
        array_to_file(data, fileobj, self.get_data_dtype(), offset, order='F')

    @classmethod
    def _get_checks(klass):
        return (klass._chk_sizeof_hdr, klass._chk_datatype, klass._chk_bitpix, klass._chk_pixdims)

    @classmethod
    def _chk_sizeof_hdr(klass, hdr, fix=False):
        report = Report(FormatError)
        size = klass.sizeof_hdr
        if hdr['sizeof_hdr'] != size:
            report.problem_level = 40
            report.problem_msg = f'sizeof_hdr should be {size}'
            if fix:
                hdr['sizeof_hdr'] = size
                # a header with the field fixed is only suspicious
                report.problem_level = 30
                report.fix_msg = f'set sizeof_hdr to {size}'
        return hdr, report

    @classmethod
    def _chk_datatype(klass, hdr, fix=False):
        # the header is still readable with an unknown datatype
        report = Report(UnsupportedTypeError)
        code = int(hdr['datatype'])
        if code not in klass._data_type_codes.dtype:
            report.problem_msg = f'data code {code} not recognized'
        elif klass._data_type_codes.dtype[code].itemsize == 0:
            report.problem_msg = f'data code {code} not supported'
        else:
            return hdr, report
        report.problem_level = 30
        if fix:
            report.fix_msg = 'not attempting fix'
        return hdr, report

    @classmethod
    def _chk_bitpix(klass, hdr, fix=False):
        report = Report(FormatError)
        bitpix = bitpix_for_code(hdr['datatype'])
        if bitpix == hdr['bitpix']:
            return hdr, report
        report.problem_level = 10
        if bitpix is None:
            report.problem_msg = 'no valid datatype to fix bitpix'
            if fix:
                report.fix_msg = 'no way to fix bitpix'
            return hdr, report
        report.problem_msg = 'bitpix does not match datatype'
        if fix:
            hdr['bitpix'] = bitpix
            report.fix_msg = 'setting bitpix to match datatype'
        return hdr, report

    @staticmethod
    def _chk_pixdims(hdr, fix=False):
        report = Report(FormatError)
        spacings = hdr['pixdim'][1:4]
        zero = spacings == 0
        negative = spacings < 0
        problems, fixes = [], []
        if zero.any():
            report.problem_level = 30
            problems.append('pixdim[1,2,3] should be non-zero')
            fixes.append('setting 0 dims to 1')
        if negative.any():
            report.problem_level = 35
            problems.append('pixdim[1,2,3] should be positive')
            fixes.append('setting to abs of pixdim values')
        if not problems:
            return hdr, report
        report.problem_msg = ' and '.join(problems)
        if fix:
            # spacings is a view into the header
            spacings[zero] = 1
            spacings[negative] *= -1
            report.fix_msg = ' and '.join(fixes)
        return hdr, report

    @classmethod
    def may_contain_header(klass, binaryblock):
        """True if `binaryblock` starts with ``sizeof_hdr`` 348 in either byte order"""
        if len(binaryblock) < klass.sizeof_hdr:
            return False
        size = np.frombuffer(binaryblock[:4], dtype=np.int32)
        return klass.sizeof_hdr in (int(size[0]), int(size.byteswap()[0]))
