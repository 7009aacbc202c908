# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Read / write access to NIfTI1 headers and their extensions

NIfTI1 reuses the 348 byte Analyze record with new meanings for most of the
unused fields.  The magic at offset 344 tells NIfTI from Analyze:
``b'n+1'`` for a single ``.nii`` file with the data after the header,
``b'ni1'`` for a ``.hdr`` / ``.img`` pair.

This module also picks the right header class for a block of bytes; see
:func:`detect_format` and :func:`load_header`.
"""
from io import BytesIO

import numpy as np
import numpy.linalg as npl

from . import analyze  # module import
from . import imageglobals as imageglobals
from .batteryrunners import Report
from .errors import FormatError, TruncatedDataError
from .quaternions import fillpositive, mat2quat
from .spm99analyze import SpmAnalyzeHeader
from .transforms import quaternion_affine, srow_affine
from .volumeutils import Recoder, data_type_codes, native_code

# the 348 byte record; comments give the byte offset of each field
header_dtd = [
    ('sizeof_hdr', 'i4'),  # 0; must be 348
    ('data_type', 'S10'),  # 4; unused
    ('db_name', 'S18'),  # 14; unused
    ('extents', 'i4'),  # 32; unused
    ('session_error', 'i2'),  # 36; unused
    ('regular', 'S1'),  # 38; unused
    ('dim_info', 'u1'),  # 39; MRI slice ordering code
    ('dim', 'i2', (8,)),  # 40; data array dimensions
    ('intent_p1', 'f4'),  # 56; first intent parameter
    ('intent_p2', 'f4'),  # 60; second intent parameter
    ('intent_p3', 'f4'),  # 64; third intent parameter
    ('intent_code', 'i2'),  # 68; NIFTI intent code
    ('datatype', 'i2'),  # 70; code for data type
    ('bitpix', 'i2'),  # 72; number of bits per voxel
    ('slice_start', 'i2'),  # 74; first slice index
    ('pixdim', 'f4', (8,)),  # 76; grid spacings (units below)
    ('vox_offset', 'f4'),  # 108; offset to data in image file
    ('scl_slope', 'f4'),  # 112; data scaling slope
    ('scl_inter', 'f4'),  # 116; data scaling intercept
    ('slice_end', 'i2'),  # 120; last slice index
    ('slice_code', 'u1'),  # 122; slice timing order
    ('xyzt_units', 'u1'),  # 123; units of pixdim[1..4]
    ('cal_max', 'f4'),  # 124; max display intensity
    ('cal_min', 'f4'),  # 128; min display intensity
    ('slice_duration', 'f4'),  # 132; time for 1 slice
    ('toffset', 'f4'),  # 136; time axis shift
    ('glmax', 'i4'),  # 140; unused
    ('glmin', 'i4'),  # 144; unused
    ('descrip', 'S80'),  # 148; any text
    ('aux_file', 'S24'),  # 228; auxiliary filename
    ('qform_code', 'i2'),  # 252; xform code
    ('sform_code', 'i2'),  # 254; xform code
    ('quatern_b', 'f4'),  # 256; quaternion b param
    ('quatern_c', 'f4'),  # 260; quaternion c param
    ('quatern_d', 'f4'),  # 264; quaternion d param
    ('qoffset_x', 'f4'),  # 268; quaternion x shift
    ('qoffset_y', 'f4'),  # 272; quaternion y shift
    ('qoffset_z', 'f4'),  # 276; quaternion z shift
    ('srow_x', 'f4', (4,)),  # 280; 1st row affine transform
    ('srow_y', 'f4', (4,)),  # 296; 2nd row affine transform
    ('srow_z', 'f4', (4,)),  # 312; 3rd row affine transform
    ('intent_name', 'S16'),  # 328; name or meaning of data
    ('magic', 'S4'),  # 344; must be 'ni1\0' or 'n+1\0'
]
header_dtype = np.dtype(header_dtd)

#: byte offset of the extension flag following the header
EXTENSION_FLAG_OFFSET = 348

# Transform (qform, sform) codes
xform_codes = Recoder(
    (  # code, label, niistring
        (0, 'unknown', 'NIFTI_XFORM_UNKNOWN'),
        (1, 'scanner', 'NIFTI_XFORM_SCANNER_ANAT'),
        (2, 'aligned', 'NIFTI_XFORM_ALIGNED_ANAT'),
        (3, 'talairach', 'NIFTI_XFORM_TALAIRACH'),
        (4, 'mni', 'NIFTI_XFORM_MNI_152'),
    ),
    fields=('code', 'label', 'niistring'),
)

# unit codes; spatial units in the low 3 bits, time units above
unit_codes = Recoder(
    (  # code, label
        (0, 'unknown'),
        (1, 'meter'),
        (2, 'mm'),
        (3, 'micron'),
        (8, 'sec'),
        (16, 'msec'),
        (24, 'usec'),
        (32, 'hz'),
        (40, 'ppm'),
        (48, 'rads'),
    ),
    fields=('code', 'label'),
)

slice_order_codes = Recoder(
    (  # code, label
        (0, 'unknown'),
        (1, 'sequential increasing', 'seq inc'),
        (2, 'sequential decreasing', 'seq dec'),
        (3, 'alternating increasing', 'alt inc'),
        (4, 'alternating decreasing', 'alt dec'),
        (5, 'alternating increasing 2', 'alt inc 2'),
        (6, 'alternating decreasing 2', 'alt dec 2'),
    ),
    fields=('code', 'label'),
)

intent_codes = Recoder(
    (
        # code, label, parameters description tuple, niistring
        (0, 'none', (), 'NIFTI_INTENT_NONE'),
        (2, 'correlation', ('p1 = DOF',), 'NIFTI_INTENT_CORREL'),
        (3, 't test', ('p1 = DOF',), 'NIFTI_INTENT_TTEST'),
        (4, 'f test', ('p1 = numerator DOF', 'p2 = denominator DOF'), 'NIFTI_INTENT_FTEST'),
        (5, 'z score', (), 'NIFTI_INTENT_ZSCORE'),
        (6, 'chi2', ('p1 = DOF',), 'NIFTI_INTENT_CHISQ'),
        (7, 'beta', ('p1 = a', 'p2 = b'), 'NIFTI_INTENT_BETA'),
        (8, 'binomial', ('p1 = trials', 'p2 = probability'), 'NIFTI_INTENT_BINOM'),
        (9, 'gamma', ('p1 = shape', 'p2 = scale'), 'NIFTI_INTENT_GAMMA'),
        (10, 'poisson', ('p1 = mean',), 'NIFTI_INTENT_POISSON'),
        (11, 'normal', ('p1 = mean', 'p2 = standard deviation'), 'NIFTI_INTENT_NORMAL'),
        (
            12,
            'non central f test',
            ('p1 = numerator DOF', 'p2 = denominator DOF', 'p3 = noncentrality'),
            'NIFTI_INTENT_FTEST_NONC',
        ),
        (13, 'non central chi2', ('p1 = DOF', 'p2 = noncentrality'), 'NIFTI_INTENT_CHISQ_NONC'),
        (14, 'logistic', ('p1 = location', 'p2 = scale'), 'NIFTI_INTENT_LOGISTIC'),
        (15, 'laplace', ('p1 = location', 'p2 = scale'), 'NIFTI_INTENT_LAPLACE'),
        (16, 'uniform', ('p1 = lower end', 'p2 = upper end'), 'NIFTI_INTENT_UNIFORM'),
        (17, 'non central t test', ('p1 = DOF', 'p2 = noncentrality'), 'NIFTI_INTENT_TTEST_NONC'),
        (18, 'weibull', ('p1 = location', 'p2 = scale', 'p3 = power'), 'NIFTI_INTENT_WEIBULL'),
        (19, 'chi', ('p1 = DOF',), 'NIFTI_INTENT_CHI'),
        (20, 'inverse gaussian', ('p1 = mu', 'p2 = lambda'), 'NIFTI_INTENT_INVGAUSS'),
        (21, 'extreme value 1', ('p1 = location', 'p2 = scale'), 'NIFTI_INTENT_EXTVAL'),
        (22, 'p value', (), 'NIFTI_INTENT_PVAL'),
        (23, 'log p value', (), 'NIFTI_INTENT_LOGPVAL'),
        (24, 'log10 p value', (), 'NIFTI_INTENT_LOG10PVAL'),
        (1001, 'estimate', (), 'NIFTI_INTENT_ESTIMATE'),
        (1002, 'label', (), 'NIFTI_INTENT_LABEL'),
        (1003, 'neuroname', (), 'NIFTI_INTENT_NEURONAME'),
        (1004, 'general matrix', ('p1 = M', 'p2 = N'), 'NIFTI_INTENT_GENMATRIX'),
        (1005, 'symmetric matrix', ('p1 = M',), 'NIFTI_INTENT_SYMMATRIX'),
        (1006, 'displacement vector', (), 'NIFTI_INTENT_DISPVECT'),
        (1007, 'vector', (), 'NIFTI_INTENT_VECTOR'),
        (1008, 'pointset', (), 'NIFTI_INTENT_POINTSET'),
        (1009, 'triangle', (), 'NIFTI_INTENT_TRIANGLE'),
        (1010, 'quaternion', (), 'NIFTI_INTENT_QUATERNION'),
        (1011, 'dimensionless', (), 'NIFTI_INTENT_DIMLESS'),
        (2001, 'time series', (), 'NIFTI_INTENT_TIME_SERIES'),
        (2002, 'node index', (), 'NIFTI_INTENT_NODE_INDEX'),
        (2003, 'rgb vector', (), 'NIFTI_INTENT_RGB_VECTOR'),
        (2004, 'rgba vector', (), 'NIFTI_INTENT_RGBA_VECTOR'),
        (2005, 'shape', (), 'NIFTI_INTENT_SHAPE'),
    ),
    fields=('code', 'label', 'parameters', 'niistring'),
)

#: intents marking a volume of integer labels into an atlas
LABEL_INTENTS = (1002, 1003)


# extension codes (ecode) registered with the NIfTI maintainers
extension_codes = Recoder(
    (
        (0, 'ignore'),
        (2, 'dicom'),
        (4, 'afni'),
        (6, 'comment'),
        (8, 'xcede'),
        (10, 'jimdiminfo'),
        (12, 'workflow_fwds'),
        (14, 'freesurfer'),
        (16, 'pypickle'),
    ),
    fields=('code', 'label'),
)

#: each extension is ``esize`` (int32), ``ecode`` (int32) and padded content
_EXT_PREFIX = 8
_EXT_ALIGN = 16


class Nifti1Extension:
    """One header extension, kept as uninterpreted bytes

    Parameters
    ----------
    code : int or str
        ``ecode``, as a number or a label from :data:`extension_codes`.
        Numbers missing from the table are kept as they are.
    content : bytes
        payload without its NUL padding
    """

    def __init__(self, code, content):
        self._code = extension_codes.code[code] if code in extension_codes else int(code)
        self._content = bytes(content)

    def get_code(self):
        return self._code

    def get_content(self):
        return self._content

    def get_sizeondisk(self):
        """``esize``: prefix plus content, rounded up to 16 bytes

        >>> Nifti1Extension('comment', b'abc').get_sizeondisk()
        16
        >>> Nifti1Extension('comment', b'12345678').get_sizeondisk()
        16
        >>> Nifti1Extension('comment', b'123456789').get_sizeondisk()
        32
        """
        size = _EXT_PREFIX + len(self._content)
        return -(-size // _EXT_ALIGN) * _EXT_ALIGN

    def __repr__(self):
        label = extension_codes.label[self._code] if self._code in extension_codes else self._code
        return f'Nifti1Extension({label!r}, {self._content!r})'

    def __eq__(self, other):
        if not isinstance(other, Nifti1Extension):
            return NotImplemented
        return (self._code, self._content) == (other._code, other._content)

    def __ne__(self, other):
        return not self == other

    def write_to(self, fileobj, byteswap):
        """Write prefix, content and padding; `byteswap` for non-native headers"""
        esize = self.get_sizeondisk()
        prefix = np.array([esize, self._code], dtype=np.int32)
        fileobj.write((prefix.byteswap() if byteswap else prefix).tobytes())
        fileobj.write(self._content.ljust(esize - _EXT_PREFIX, b'\x00'))


class Nifti1Extensions(list):
    """The extensions of one header, in file order"""

    def count(self, ecode):
        """Number of extensions with code or label `ecode`"""
        code = extension_codes.code[ecode]
        return len([ext for ext in self if ext.get_code() == code])

    def get_codes(self):
        return [ext.get_code() for ext in self]

    def get_sizeondisk(self):
        """Bytes taken by all extensions, not counting the 4 flag bytes"""
        return sum(ext.get_sizeondisk() for ext in self)

    def __repr__(self):
        return f"Nifti1Extensions({', '.join(map(repr, self))})"

    def write_to(self, fileobj, byteswap):
        for ext in self:
            ext.write_to(fileobj, byteswap)

    @classmethod
    def from_fileobj(klass, fileobj, size, byteswap):
        """Read extensions from the current position of `fileobj`

        Parameters
        ----------
        fileobj : file-like
            positioned just after the 4 extension flag bytes
        size : int
            bytes of extensions to read.  Negative means read to the end of
            `fileobj`, as for a ``.hdr`` file.
        byteswap : bool
            whether the prefixes are in non-native byte order

        Raises
        ------
        TruncatedDataError
            if `fileobj` ends inside an extension
        FormatError
            for an ``esize`` smaller than the prefix
        """
        extensions = klass()
        offset = EXTENSION_FLAG_OFFSET + 4
        while size < 0 or size >= _EXT_ALIGN:
            prefix = fileobj.read(_EXT_PREFIX)
            if size < 0 and prefix == b'':
                break
            if len(prefix) < _EXT_PREFIX:
                raise TruncatedDataError('failed to read extension header', offset=offset)
            prefix = np.frombuffer(prefix, dtype=np.int32)
            esize, ecode = (int(v) for v in (prefix.byteswap() if byteswap else prefix))
            if esize < _EXT_PREFIX:
                raise FormatError(f'extension size {esize} too small', field='esize', offset=offset)
            if esize % _EXT_ALIGN:
                imageglobals.logger.warning(
                    'Extension size %d is not a multiple of %d; reading it anyway',
                    esize,
                    _EXT_ALIGN,
                )
            content = fileobj.read(esize - _EXT_PREFIX)
            if len(content) < esize - _EXT_PREFIX:
                raise TruncatedDataError(
                    'failed to read extension content', offset=offset + _EXT_PREFIX
                )
            extensions.append(Nifti1Extension(ecode, content.rstrip(b'\x00')))
            size -= esize
            offset += esize
        return extensions


_QUATERN_FIELDS = ('quatern_b', 'quatern_c', 'quatern_d')
_QOFFSET_FIELDS = ('qoffset_x', 'qoffset_y', 'qoffset_z')
_SROW_FIELDS = ('srow_x', 'srow_y', 'srow_z')
_INTENT_PARAMS = ('intent_p1', 'intent_p2', 'intent_p3')
# bit positions of freq, phase and slice axes in dim_info
_DIM_INFO_SHIFTS = (0, 2, 4)


def _qform_parameters(affine, strip_shears=True):
    """Quaternion ``(b, c, d)``, offset, zooms and qfac for 4x4 `affine`

    Columns of a left handed rotation are made right handed by flipping the
    last one, giving qfac -1.
    """
    affine = np.asarray(affine, dtype=np.float64)
    if affine.shape != (4, 4):
        raise TypeError('Need 4x4 affine as input')
    rzs = affine[:3, :3]
    zooms = np.sqrt((rzs**2).sum(axis=0))
    rotation = rzs / zooms
    qfac = 1 if npl.det(rotation) > 0 else -1
    rotation[:, 2] *= qfac
    left, _, right = npl.svd(rotation)
    orthogonal = left.dot(right)
    if not strip_shears and not np.allclose(orthogonal, rotation):
        raise FormatError('Shears in affine and `strip_shears` is False')
    return mat2quat(orthogonal)[1:], affine[:3, 3], zooms, qfac


class Nifti1Header(analyze.AnalyzeHeader):
    """NIfTI1 header for a single ``.nii`` file

    Besides the Analyze fields, NIfTI1 stores two voxel to world transforms
    (qform and sform, each with a code), data scaling, intent and units, and
    may be followed by :class:`Nifti1Extensions`.  The data of a single file
    start at ``vox_offset``, at least 352 bytes in.
    """

    template_dtype = header_dtype
    _data_type_codes = data_type_codes

    _field_recoders = {
        'datatype': data_type_codes,
        'qform_code': xform_codes,
        'sform_code': xform_codes,
        'intent_code': intent_codes,
        'slice_code': slice_order_codes,
    }

    has_data_slope = True
    has_data_intercept = True
    dialect = 'nifti'
    is_nifti = True
    exts_klass = Nifti1Extensions

    #: data follow the header in the same file
    is_single = True
    pair_vox_offset = 0
    single_vox_offset = 352
    pair_magic = b'ni1'
    single_magic = b'n+1'

    def __init__(self, binaryblock=None, endianness=None, check=True, extensions=()):
        super().__init__(binaryblock, endianness, check)
        self.extensions = self.exts_klass(extensions)

    def copy(self):
        """Unchecked copy; the extensions are shared, not copied"""
        return self.__class__(self.binaryblock, self.endianness, False, self.extensions)

    def __eq__(self, other):
        return super().__eq__(other) and list(self.extensions) == list(
            getattr(other, 'extensions', [])
        )

    @classmethod
    def default_structarr(klass, endianness=None):
        record = super().default_structarr(endianness)
        record['magic'] = klass.single_magic if klass.is_single else klass.pair_magic
        record['scl_slope'] = 1
        return record

    @classmethod
    def from_fileobj(klass, fileobj, endianness=None, check=True):
        """Header and its extensions from the current position of `fileobj`"""
        hdr = klass(fileobj.read(klass.template_dtype.itemsize), endianness, check)
        hdr.extensions = klass._read_extensions(hdr, fileobj)
        return hdr

    @classmethod
    def _read_extensions(klass, hdr, fileobj):
        # 4 flag bytes follow the header; a first byte of 0 or a short
        # stream means no extensions
        flag = fileobj.read(4)
        if len(flag) < 4 or flag[:1] == b'\x00':
            return klass.exts_klass()
        if klass.is_single:
            size = max(hdr.get_data_offset() - (EXTENSION_FLAG_OFFSET + 4), 0)
        else:
            size = -1
        return klass.exts_klass.from_fileobj(fileobj, size, hdr.endianness != native_code)

    def write_to(self, fileobj):
        """Write header, extension flag and extensions

        ``vox_offset`` is updated first: 0 for a pair header, and for a single
        file at least 352 plus the size of the extensions.
        """
        record = self._structarr
        if self.is_single:
            needed = self.single_vox_offset + self.extensions.get_sizeondisk()
            record['vox_offset'] = max(self.get_data_offset(), needed)
        else:
            record['vox_offset'] = self.pair_vox_offset
        super().write_to(fileobj)
        if self.extensions:
            fileobj.write(b'\x01\x00\x00\x00')
            self.extensions.write_to(fileobj, self.endianness != native_code)
        elif self.is_single:
            fileobj.write(b'\x00\x00\x00\x00')

    @property
    def is_single_file(self):
        return self._structarr['magic'].item() == self.single_magic

    @property
    def version(self):
        """Digit of a valid magic, None otherwise

        >>> Nifti1Header().version
        1
        """
        magic = self._structarr['magic'].item()
        if len(magic) != 3 or magic[:2] not in (b'n+', b'ni') or not magic[2:].isdigit():
            return None
        return int(magic[2:])

    def get_qform_code(self):
        return int(self._structarr['qform_code'])

    def set_qform_code(self, code):
        self._structarr['qform_code'] = xform_codes[code]

    def get_sform_code(self):
        return int(self._structarr['sform_code'])

    def set_sform_code(self, code):
        self._structarr['sform_code'] = xform_codes[code]

    def _fields_array(self, names):
        return np.array([self._structarr[name] for name in names], dtype=np.float64)

    def _set_fields(self, names, values):
        for name, value in zip(names, values):
            self._structarr[name] = value

    def get_quaternion(self):
        """Stored ``(b, c, d)`` as float64"""
        return self._fields_array(_QUATERN_FIELDS)

    def set_quaternion(self, bcd):
        self._set_fields(_QUATERN_FIELDS, bcd)

    def get_qoffset(self):
        """Stored qform translation as float64"""
        return self._fields_array(_QOFFSET_FIELDS)

    def set_qoffset(self, offset):
        self._set_fields(_QOFFSET_FIELDS, offset)

    def get_srow(self):
        """sform rows as a (3, 4) float64 array"""
        return self._fields_array(_SROW_FIELDS)

    def set_srow(self, rows):
        rows = np.asarray(rows)
        if rows.shape != (3, 4):
            raise FormatError('srow needs a (3, 4) array', field='srow_x', offset=280)
        self._set_fields(_SROW_FIELDS, rows)

    def get_qform_quaternion(self):
        """Unit quaternion ``(a, b, c, d)`` with ``a`` from the stored ``b, c, d``

        Rounding in the float32 fields can leave ``b**2 + c**2 + d**2``
        slightly above 1; ``a`` is then 0.
        """
        return fillpositive(self.get_quaternion())

    def _coded_xform(self, field, affine, coded):
        code = int(self._structarr[field])
        if not coded:
            return affine()
        return (affine(), code) if code else (None, 0)

    def _next_xform_code(self, field, affine, code):
        # keep a non-zero code when only the affine changes
        if code is not None:
            return xform_codes[code]
        if affine is None:
            return 0
        return int(self._structarr[field]) or xform_codes['aligned']

    def get_qform(self, coded=False):
        """Affine from the quaternion, qoffset and pixdim fields

        Parameters
        ----------
        coded : bool, optional
            return ``(affine, qform_code)``, with affine None for code 0

        Examples
        --------
        >>> hdr = Nifti1Header()
        >>> hdr.set_data_shape((2, 3, 4))
        >>> hdr.set_zooms((2, 3, 4))
        >>> hdr.set_qoffset((-1, -2, -3))
        >>> hdr.get_qform()
        array([[ 2.,  0.,  0., -1.],
               [ 0.,  3.,  0., -2.],
               [ 0.,  0.,  4., -3.],
               [ 0.,  0.,  0.,  1.]])
        """
        return self._coded_xform(
            'qform_code',
            lambda: quaternion_affine(self.get_quaternion(), self.get_qoffset(), self.get_pixdim()),
            coded,
        )

    def set_qform(self, affine, code=None, strip_shears=True):
        """Store `affine` as quaternion, offset, voxel sizes and qfac

        Parameters
        ----------
        affine : None or (4, 4) array-like
            None sets only the code
        code : None or int or str, optional
            None keeps a non-zero code, or uses 'aligned' for a new affine
            and 0 for None
        strip_shears : bool, optional
            replace the rotation with its nearest orthogonal matrix.  If
            False, an affine with shears raises FormatError.

        Examples
        --------
        >>> hdr = Nifti1Header()
        >>> hdr.set_qform(np.diag([1, 2, 3, 1]))
        >>> np.allclose(hdr.get_qform(), np.diag([1, 2, 3, 1]))
        True
        >>> hdr.get_qform_code()
        2
        """
        self._structarr['qform_code'] = self._next_xform_code('qform_code', affine, code)
        if affine is None:
            return
        bcd, offset, zooms, qfac = _qform_parameters(affine, strip_shears)
        self.set_quaternion(bcd)
        self.set_qoffset(offset)
        pixdim = self._structarr['pixdim']
        pixdim[0] = qfac
        pixdim[1:4] = zooms

    def get_sform(self, coded=False):
        """Affine from the srow fields; `coded` as for :meth:`get_qform`"""
        return self._coded_xform('sform_code', lambda: srow_affine(*self.get_srow()), coded)

    def set_sform(self, affine, code=None):
        """Store the top three rows of `affine`; `code` as for :meth:`set_qform`

        >>> hdr = Nifti1Header()
        >>> hdr.set_sform(np.diag([1, 2, 3, 1]), code='talairach')
        >>> hdr.get_sform_code()
        3
        """
        self._structarr['sform_code'] = self._next_xform_code('sform_code', affine, code)
        if affine is not None:
            self.set_srow(np.asarray(affine)[:3])

    def get_slope_inter(self):
        """Scaling ``(slope, inter)``, or ``(None, None)`` if there is none

        A zero or non-finite slope means no scaling.

        Raises
        ------
        FormatError
            for a valid slope with a non-finite intercept

        Examples
        --------
        >>> hdr = Nifti1Header()
        >>> hdr.get_slope_inter()
        (1.0, 0.0)
        >>> hdr['scl_slope'] = 0
        >>> hdr.get_slope_inter()
        (None, None)
        """
        slope = float(self._structarr['scl_slope'])
        inter = float(self._structarr['scl_inter'])
        if not np.isfinite(slope) or slope == 0:
            return None, None
        if np.isfinite(inter):
            return slope, inter
        raise FormatError(f'Valid slope but invalid intercept {inter}', field='scl_inter')

    def set_slope_inter(self, slope, inter=None):
        """Store scaling; None for either means NaN, and both must be NaN or neither"""
        slope = np.nan if slope is None else float(slope)
        inter = np.nan if inter is None else float(inter)
        if slope == 0 or np.isinf(slope):
            raise FormatError('Slope cannot be 0 or infinite', field='scl_slope', offset=112)
        if np.isinf(inter):
            raise FormatError('Intercept cannot be infinite', field='scl_inter', offset=116)
        if np.isnan(slope) != np.isnan(inter):
            raise FormatError('None or both of slope, inter should be nan')
        self._structarr['scl_slope'] = slope
        self._structarr['scl_inter'] = inter

    def get_dim_info(self):
        """Axes ``(freq, phase, slice)`` of MRI encoding, None where unset"""
        info = int(self._structarr['dim_info'])
        axes = ((info >> shift) & 3 for shift in _DIM_INFO_SHIFTS)
        return tuple(axis - 1 if axis else None for axis in axes)

    def set_dim_info(self, freq=None, phase=None, slice=None):
        """Store encoding axes, each None or 0, 1, 2

        >>> hdr = Nifti1Header()
        >>> hdr.set_dim_info(1, None, 0)
        >>> hdr.get_dim_info()
        (1, None, 0)
        """
        info = 0
        for shift, axis in zip(_DIM_INFO_SHIFTS, (freq, phase, slice)):
            if axis not in (None, 0, 1, 2):
                raise FormatError('Inputs must be in [None, 0, 1, 2]', field='dim_info', offset=39)
            if axis is not None:
                info |= (axis + 1) << shift
        self._structarr['dim_info'] = info

    def get_intent(self, code_repr='label'):
        """``(code, params, name)`` of the intent

        `code_repr` is 'label' or 'code'.  Only the parameters the intent
        defines are returned.

        >>> hdr = Nifti1Header()
        >>> hdr.set_intent('t test', (10,), name='some score')
        >>> hdr.get_intent()
        ('t test', (10.0,), 'some score')
        >>> hdr.get_intent('code')
        (3, (10.0,), 'some score')
        """
        if code_repr not in ('label', 'code'):
            raise TypeError('repr can be "label" or "code"')
        record = self._structarr
        code = int(record['intent_code'])
        known = code in intent_codes
        if code_repr == 'code':
            label = code
        else:
            label = intent_codes.label[code] if known else f'<unknown code {code}>'
        n_params = len(intent_codes.parameters[code]) if known else 0
        params = tuple(float(record[name]) for name in _INTENT_PARAMS[:n_params])
        return label, params, record['intent_name'].item().decode('latin-1')

    def set_intent(self, code, params=(), name=''):
        """Store intent `code`, its `params` and `name`

        `params` is empty, setting all three parameters to 0, or has as many
        values as the intent defines.  Numeric codes missing from
        :data:`intent_codes` are stored with whatever parameters are given.

        >>> hdr = Nifti1Header()
        >>> hdr.set_intent('label')
        >>> hdr.get_intent('code')
        (1002, (), '')
        """
        params = tuple(params)
        if code in intent_codes:
            icode = intent_codes.code[code]
            n_params = len(intent_codes.parameters[code])
        elif isinstance(code, (int, np.integer)):
            icode, n_params = int(code), len(params)
        else:
            raise KeyError(code)
        if params and len(params) != n_params or len(params) > len(_INTENT_PARAMS):
            raise FormatError(
                f'Intent {code!r} takes {n_params} parameters, or none', field='intent_p1'
            )
        record = self._structarr
        record['intent_code'] = icode
        record['intent_name'] = name.encode('latin-1')[:16]
        padded = params + (0,) * (len(_INTENT_PARAMS) - len(params))
        self._set_fields(_INTENT_PARAMS, padded)

    def get_xyzt_units(self):
        """``(spatial, temporal)`` unit labels

        >>> hdr = Nifti1Header()
        >>> hdr.set_xyzt_units('mm', 'sec')
        >>> hdr.get_xyzt_units()
        ('mm', 'sec')
        >>> int(hdr['xyzt_units'])
        10
        """
        units = int(self._structarr['xyzt_units'])
        return unit_codes.label[units & 7], unit_codes.label[units & ~7]

    def set_xyzt_units(self, xyz=None, t=None):
        xyz_code = 0 if xyz is None else unit_codes[xyz]
        t_code = 0 if t is None else unit_codes[t]
        self._structarr['xyzt_units'] = xyz_code + t_code

    @classmethod
    def _get_checks(klass):
        # the Analyze checks, less the SPM scale check, plus the NIfTI ones
        return (
            klass._chk_sizeof_hdr,
            klass._chk_datatype,
            klass._chk_bitpix,
            klass._chk_pixdims,
            klass._chk_qfac,
            klass._chk_magic,
            klass._chk_offset,
            klass._chk_qform_code,
            klass._chk_sform_code,
        )

    @staticmethod
    def _chk_qfac(hdr, fix=False):
        report = Report(FormatError)
        if hdr['pixdim'][0] in (1, -1):
            return hdr, report
        report.problem_level = 20
        report.problem_msg = 'pixdim[0] (qfac) should be 1 (default) or -1'
        if fix:
            hdr['pixdim'][0] = 1
            report.fix_msg = 'setting qfac to 1'
        return hdr, report

    @staticmethod
    def _chk_magic(hdr, fix=False):
        report = Report(FormatError)
        magic = hdr['magic'].item()
        if magic not in (hdr.single_magic, hdr.pair_magic):
            # nothing sensible to fix it to
            report.problem_level = 45
            report.problem_msg = f'magic string "{magic.decode("latin-1")}" is not valid'
            if fix:
                report.fix_msg = 'leaving as is, but future errors are likely'
        return hdr, report

    @staticmethod
    def _chk_offset(hdr, fix=False):
        report = Report(FormatError)
        offset = float(hdr['vox_offset'])
        if offset == 0:
            return hdr, report
        minimum = hdr.single_vox_offset
        if hdr['magic'].item() == hdr.single_magic and offset < minimum:
            report.problem_level = 40
            report.problem_msg = f'vox offset {int(offset)} too low for single file nifti1'
            if fix:
                hdr['vox_offset'] = minimum
                report.fix_msg = f'setting to minimum value of {minimum}'
        elif offset % 16:
            # SPM maps the data into memory from 16 byte boundaries
            report.problem_level = 30
            report.problem_msg = f'vox offset (={offset:g}) not divisible by 16, not SPM compatible'
            if fix:
                report.fix_msg = 'leaving at current value'
        return hdr, report

    @classmethod
    def _chk_qform_code(klass, hdr, fix=False):
        return klass._chk_xform_code('qform_code', hdr, fix)

    @classmethod
    def _chk_sform_code(klass, hdr, fix=False):
        return klass._chk_xform_code('sform_code', hdr, fix)

    @classmethod
    def _chk_xform_code(klass, field, hdr, fix):
        report = Report(FormatError)
        code = int(hdr[field])
        if code in klass._field_recoders[field].value_set():
            return hdr, report
        report.problem_level = 30
        report.problem_msg = f'{field} {code} not valid'
        if fix:
            hdr[field] = 0
            report.fix_msg = 'setting to 0'
        return hdr, report

    @classmethod
    def may_contain_header(klass, binaryblock):
        """True for at least 348 bytes with a NIfTI magic"""
        return (
            len(binaryblock) >= klass.sizeof_hdr and detect_format(binaryblock)[0] != 'analyze'
        )


class Nifti1PairHeader(Nifti1Header):
    """NIfTI1 header in a ``.hdr`` file, with the data in a ``.img``"""

    is_single = False


def detect_format(binaryblock):
    """Return ``(kind, version)`` from the magic at offset 344

    `kind` is ``'nifti_single'`` for ``n+<digit>``, ``'nifti_pair'`` for
    ``ni<digit>`` and ``'analyze'`` otherwise, with `version` None.

    Examples
    --------
    >>> detect_format(Nifti1Header().binaryblock)
    ('nifti_single', 1)
    >>> detect_format(Nifti1PairHeader().binaryblock)
    ('nifti_pair', 1)
    >>> detect_format(analyze.AnalyzeHeader().binaryblock)
    ('analyze', None)
    """
    magic = bytes(binaryblock[344:348])
    if len(magic) == 4 and magic[3:4] == b'\x00' and magic[2:3].isdigit():
        if magic[:2] == b'n+':
            return 'nifti_single', int(magic[2:3])
        if magic[:2] == b'ni':
            return 'nifti_pair', int(magic[2:3])
    return 'analyze', None


def header_class_for(binaryblock, spm=False):
    """Header class for `binaryblock`; `spm` picks SPM for non-NIFTI blocks"""
    kind = detect_format(binaryblock)[0]
    if kind == 'nifti_single':
        return Nifti1Header
    if kind == 'nifti_pair':
        return Nifti1PairHeader
    return SpmAnalyzeHeader if spm else analyze.AnalyzeHeader


def load_header(fileobj, spm=False, check=True):
    """Read a header of the detected dialect from `fileobj`

    Parameters
    ----------
    fileobj : file-like
        positioned at the start of the header
    spm : bool, optional
        whether a non-NIFTI header is SPM rather than plain Analyze
    check : bool, optional
        whether to run the header checks

    Returns
    -------
    hdr : header instance
        NIFTI headers carry any extensions read after the header

    Raises
    ------
    TruncatedDataError
        if `fileobj` ends within the 348 header bytes
    BadByteOrderError
        if no byte order gives a valid rank

    Examples
    --------
    >>> from io import BytesIO
    >>> hdr = Nifti1Header()
    >>> hdr.set_data_shape((2, 3, 4))
    >>> bio = BytesIO()
    >>> hdr.write_to(bio)
    >>> _ = bio.seek(0)
    >>> type(load_header(bio)).__name__
    'Nifti1Header'
    """
    raw_str = fileobj.read(analyze.AnalyzeHeader.sizeof_hdr)
    if len(raw_str) < analyze.AnalyzeHeader.sizeof_hdr:
        raise TruncatedDataError(
            f'Header needs 348 bytes, stream has {len(raw_str)}', offset=len(raw_str)
        )
    klass = header_class_for(raw_str, spm)
    hdr = klass(raw_str, check=check)
    if hdr.is_nifti:
        hdr.extensions = klass._read_extensions(hdr, fileobj)
    return hdr


def decode_header(binaryblock, spm=False, check=True):
    """Header from the bytes `binaryblock` (header and optional extensions)"""
    return load_header(BytesIO(binaryblock), spm, check)


def encode_header(header, extensions=None):
    """Bytes for a copy of `header`, with `extensions` if given

    The copy gets its ``vox_offset`` updated as for writing; `header` itself
    is unchanged.
    """
    hdr = header.copy()
    if extensions is not None:
        if not hdr.is_nifti:
            raise FormatError('Only NIFTI headers carry extensions')
        hdr.extensions = hdr.exts_klass(extensions)
    bio = BytesIO()
    hdr.write_to(bio)
    return bio.getvalue()

