# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Storage for volume arrays

Each storage class keeps one flat numpy buffer with exactly one value per
voxel, x fastest.  Unsigned kinds are held in unsigned numpy dtypes, so a
stored bit pattern of ``0xFF`` reads as 255; 64-bit unsigned values are
returned as floats, which may lose precision.

RGB volumes pack three 8-bit channels into one ``uint32`` cell::

    0xff << 24 | r << 16 | g << 8 | b

Two view classes wrap a backing array instead of owning storage:
:class:`MirroredVolumeArray` and :class:`FilteredVolumeArray`.
"""
import math
from enum import Enum

import numpy as np

from .errors import ReadOnlyVolumeError, UnsupportedTypeError
from .volumeutils import array_to_file, endian_codes
from .volumearray import IndexedVolumeArray, Interpolation, _round_nearest

#: alpha byte set in every packed RGB cell
RGB_ALPHA = 0xFF << 24


class DataType(Enum):
    """Voxel kinds with their NIFTI datatype code and bits per entry"""

    BINARY = (1, 1)
    BYTE = (256, 8)
    UBYTE = (2, 8)
    SHORT = (4, 16)
    USHORT = (512, 16)
    INT = (8, 32)
    UINT = (768, 32)
    LONG = (1024, 64)
    ULONG = (1280, 64)
    FLOAT = (16, 32)
    DOUBLE = (64, 64)
    RGB = (128, 24)

    def __init__(self, code, bits):
        self.code = code
        self.bits = bits

    @property
    def dtype(self):
        """numpy dtype of in-memory storage"""
        return np.dtype(_storage_dtypes[self.name])

    @property
    def natural(self):
        """Kind that holds every value of this kind as a signed number"""
        return DataType[_natural_names.get(self.name, self.name)]

    @property
    def is_integer(self):
        return self.dtype.kind in 'iub'

    @classmethod
    def from_code(klass, code):
        """Kind for NIFTI datatype `code`

        Raises
        ------
        UnsupportedTypeError
            if `code` has no voxel kind here

        Examples
        --------
        >>> DataType.from_code(512)
        <DataType.USHORT: (512, 16)>
        """
        code = int(code)
        for member in klass:
            if member.code == code:
                return member
        raise UnsupportedTypeError(f'No volume storage for datatype code {code}', code=code)

    @classmethod
    def from_dtype(klass, dtype):
        """Kind for numpy `dtype`, ignoring byte order

        >>> DataType.from_dtype('>i2')
        <DataType.SHORT: (4, 16)>
        """
        dtype = np.dtype(dtype)
        if dtype.names == ('R', 'G', 'B'):
            return klass.RGB
        dtype = dtype.newbyteorder('=')
        for name, dt in _storage_dtypes.items():
            if name not in ('RGB', 'BINARY') and np.dtype(dt) == dtype:
                return klass[name]
        raise UnsupportedTypeError(f'No volume storage for dtype {dtype}')

    @classmethod
    def coerce(klass, value):
        """DataType from a member, a member name or a NIFTI code"""
        if isinstance(value, klass):
            return value
        if isinstance(value, str):
            try:
                return klass[value.upper()]
            except KeyError:
                raise UnsupportedTypeError(f'Unknown data type "{value}"')
        return klass.from_code(value)


_storage_dtypes = {
    'BINARY': np.bool_,
    'BYTE': np.int8,
    'UBYTE': np.uint8,
    'SHORT': np.int16,
    'USHORT': np.uint16,
    'INT': np.int32,
    'UINT': np.uint32,
    'LONG': np.int64,
    'ULONG': np.uint64,
    'FLOAT': np.float32,
    'DOUBLE': np.float64,
    'RGB': np.uint32,
}

# unsigned kinds widen to the next signed kind
_natural_names = {
    'BINARY': 'UBYTE',
    'UBYTE': 'SHORT',
    'USHORT': 'INT',
    'UINT': 'LONG',
    'ULONG': 'DOUBLE',
}


def _round_half_up(value):
    return math.floor(value + 0.5)


def _wrap_int(value, bits, signed):
    """Two's complement wrap of python int `value` into `bits` bits"""
    span = 1 << bits
    if signed:
        half = span >> 1
        return (value + half) % span - half
    return value % span


def pack_rgb(r, g, b):
    """Packed RGB cell from 8-bit channels

    >>> hex(pack_rgb(1, 2, 3))
    '0xff010203'
    """
    return RGB_ALPHA | (int(r) & 0xFF) << 16 | (int(g) & 0xFF) << 8 | (int(b) & 0xFF)


def unpack_rgb(value):
    """``(r, g, b)`` channels of a packed RGB cell

    >>> unpack_rgb(0xff010203)
    (1, 2, 3)
    """
    value = int(value)
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


def _out_dtype(dtype, endianness):
    if endianness is None:
        return dtype
    return dtype.newbyteorder(endian_codes[endianness])


class NumericVolumeArray(IndexedVolumeArray):
    """Volume stored in a flat numpy array of one numeric dtype

    Parameters
    ----------
    datatype : DataType or int or str
        kind of storage
    shape : sequence of int
        up to 5 extents
    index2space : None or (4, 4) array-like, optional
    data : None or array-like, optional
        initial values.  A flat sequence is taken in on-disk order; an array
        with more than one dimension is indexed ``data[x, y, z, ...]`` and
        flattened in Fortran order.  Values are cast to the storage dtype.
        None gives zeros.

    Examples
    --------
    >>> arr = NumericVolumeArray(DataType.UBYTE, (2, 1, 1), data=[255, 7])
    >>> arr.get_int(0, 0, 0)
    255
    >>> arr.image_min, arr.image_max
    (7.0, 255.0)
    """

    def __init__(self, datatype, shape, index2space=None, data=None):
        super().__init__(shape, index2space)
        self.datatype = DataType.coerce(datatype)
        self._data = self._make_buffer(data)
        self.set_min_max(False)

    def _make_buffer(self, data):
        dtype = self.datatype.dtype
        if data is None:
            return np.zeros(self.n_voxels, dtype=dtype)
        data = np.asarray(data)
        if data.size != self.n_voxels:
            raise ValueError(f'Need {self.n_voxels} values for shape {self.shape}, got {data.size}')
        return np.array(data.ravel(order='F'), dtype=dtype)

    @property
    def natural_type(self):
        return self.datatype.natural

    @property
    def storage_type(self):
        return self.datatype

    def get_data_array(self):
        """The flat storage buffer itself, not a copy"""
        return self._data

    def to_ndarray(self):
        """Copy of the values as an array of shape ``self.shape``

        Indexing is ``arr[x, y, z, t, i5]``.
        """
        return self._data.reshape(self.shape, order='F').copy()

    def get_raw(self, index):
        value = self._data[index].item()
        if self.datatype is DataType.ULONG:
            return float(value)
        if self.datatype is DataType.BINARY:
            return int(value)
        return value

    def set_raw(self, index, value):
        dt = self.datatype
        if dt is DataType.BINARY:
            self._data[index] = bool(value)
        elif dt.is_integer:
            if not isinstance(value, (int, np.integer)):
                value = _round_half_up(float(value))
            self._data[index] = _wrap_int(int(value), dt.bits, dt.dtype.kind == 'i')
        else:
            self._data[index] = value

    def _scan_range(self):
        if self._data.dtype.kind == 'f':
            return float(np.nanmin(self._data)), float(np.nanmax(self._data))
        return float(self._data.min()), float(self._data.max())

    def _write_values(self, values, fileobj, endianness=None):
        if self.datatype is DataType.BINARY:
            raise UnsupportedTypeError('Cannot write bit packed binary volumes', code=1)
        values = np.asarray(values, dtype=self._data.dtype)
        out_dtype = _out_dtype(values.dtype, endianness)
        array_to_file(values, fileobj, out_dtype, offset=fileobj.tell())

    def write(self, fileobj, endianness=None):
        """Write voxels to `fileobj` at its current position

        Parameters
        ----------
        fileobj : file-like
        endianness : None or str, optional
            byte order code or alias (``'<'``, ``'big'`` ...); None for native
        """
        self._write_values(self._data, fileobj, endianness)


class RGBVolumeArray(NumericVolumeArray):
    """Volume of packed RGB colours

    Values read as numbers are the packed cells.  Linear interpolation
    blends each channel separately.  The value range is always ``(0, 0)``.

    Parameters
    ----------
    shape : sequence of int
    index2space : None or (4, 4) array-like, optional
    data : None or array-like, optional
        packed cells, an ``(..., 3)`` array of 8-bit channels, or a
        structured array with fields ``R, G, B``.

    Examples
    --------
    >>> arr = RGBVolumeArray((2, 1, 1), data=[[0, 0, 0], [100, 50, 10]])
    >>> unpack_rgb(arr.interpolate(0.5, 0, 0))
    (50, 25, 5)
    """

    def __init__(self, shape, index2space=None, data=None):
        super().__init__(DataType.RGB, shape, index2space, self._pack(data))

    @staticmethod
    def _pack(data):
        if data is None:
            return None
        data = np.asarray(data)
        if data.dtype.names is not None:
            r, g, b = (data[name].astype(np.uint32) for name in ('R', 'G', 'B'))
        elif data.ndim > 1 and data.shape[-1] == 3:
            data = data.astype(np.uint32)
            r, g, b = data[..., 0], data[..., 1], data[..., 2]
        else:
            return data
        return RGB_ALPHA | (r & 0xFF) << 16 | (g & 0xFF) << 8 | (b & 0xFF)

    def set_min_max(self, high_res=False):
        self.image_min = 0
        self.image_max = 0

    def get_rgb(self, x, y, z, t=0, i5=0):
        """``(r, g, b)`` at integer voxel coordinates"""
        return unpack_rgb(self.get_int(x, y, z, t, i5))

    def interpolate(self, x, y, z, t=0, i5=0):
        """Packed colour blended channel by channel

        Missing corners past the far faces blend in as black; 0 if the lower
        corner is out of range.
        """
        t = int(t)
        i5 = int(i5)
        corners = self._corners(x, y, z, t, i5)
        if corners is None:
            return 0
        channels = np.zeros(3)
        for (i, j, k), weight in corners:
            if weight:
                channels += np.array(unpack_rgb(self.get_int(i, j, k, t, i5))) * weight
        return pack_rgb(*(_round_half_up(c) for c in channels))

    def value_voxels(self, x, y, z, t=0, i5=0, interpolation=Interpolation.LINEAR):
        interpolation = Interpolation(interpolation)
        if interpolation is Interpolation.NEAREST_NEIGHBOR:
            return self.get_int(_round_nearest(x), _round_nearest(y), _round_nearest(z), t, i5)
        return self.interpolate(x, y, z, t, i5)

    def _write_values(self, values, fileobj, endianness=None):
        values = np.asarray(values, dtype=np.uint32)
        rgb = np.empty((values.size, 3), dtype=np.uint8)
        rgb[:, 0] = (values >> 16) & 0xFF
        rgb[:, 1] = (values >> 8) & 0xFF
        rgb[:, 2] = values & 0xFF
        array_to_file(rgb, fileobj, offset=fileobj.tell(), order='C')


def make_volume_array(datatype, shape, affine=None, data=None):
    """Volume array with storage for `datatype`

    Parameters
    ----------
    datatype : DataType or int or str
        kind, NIFTI datatype code, or kind name
    shape : sequence of int
        up to 5 extents
    affine : None or (4, 4) array-like, optional
        index to space affine; None for identity
    data : None or array-like, optional
        initial values, see :class:`NumericVolumeArray`

    Examples
    --------
    >>> arr = make_volume_array('short', (3, 2))
    >>> arr.shape
    (3, 2, 1, 1, 1)
    >>> arr.storage_type
    <DataType.SHORT: (4, 16)>
    """
    datatype = DataType.coerce(datatype)
    if datatype is DataType.RGB:
        return RGBVolumeArray(shape, affine, data)
    return NumericVolumeArray(datatype, shape, affine, data)


class MirroredVolumeArray(IndexedVolumeArray):
    """View doubling the x extent of `backing` with a mirrored second half

    Voxel ``x`` for ``x >= max_x`` of the backing reads backing voxel
    ``2 * max_x - 1 - x``.  Reads and writes go to the backing array.

    Parameters
    ----------
    backing : IndexedVolumeArray
    index2space : None or (4, 4) array-like, optional
        affine of the view; None uses the affine of `backing`

    Examples
    --------
    >>> base = make_volume_array(DataType.INT, (3, 1, 1), data=[1, 2, 3])
    >>> mirrored = MirroredVolumeArray(base)
    >>> [mirrored.get_int(x, 0, 0) for x in range(6)]
    [1, 2, 3, 3, 2, 1]
    """

    def __init__(self, backing, index2space=None):
        shape = (2 * backing.max_x,) + backing.shape[1:]
        if index2space is None:
            index2space = backing.index2space
        super().__init__(shape, index2space)
        self.backing = backing
        self.image_min = backing.image_min
        self.image_max = backing.image_max

    @property
    def natural_type(self):
        return self.backing.natural_type

    @property
    def storage_type(self):
        return self.backing.storage_type

    def backing_index(self, index):
        """Index in the backing array of view `index`"""
        xx = self.backing.max_x
        xx2 = self.max_x
        mod = index % xx2
        index = (index - mod) // 2
        if mod < xx:
            return index + mod
        return index + (xx2 - mod - 1)

    def get_raw(self, index):
        return self.backing.get_raw(self.backing_index(index))

    def set_raw(self, index, value):
        self.backing.set_raw(self.backing_index(index), value)

    def get_double_at(self, index):
        return self.backing.get_double_at(self.backing_index(index))

    def get_int_at(self, index):
        return self.backing.get_int_at(self.backing_index(index))

    def interpolate(self, x, y, z, t=0, i5=0):
        if isinstance(self.backing, RGBVolumeArray):
            return RGBVolumeArray.interpolate(self, x, y, z, t, i5)
        return super().interpolate(x, y, z, t, i5)

    def set_min_max(self, high_res=False):
        self.image_min = self.backing.image_min
        self.image_max = self.backing.image_max

    def write(self, fileobj, endianness=None):
        _to_storage(self).write(fileobj, endianness)


class FilteredVolumeArray(IndexedVolumeArray):
    """Read only view applying `fn` to values of `backing`

    Nothing is computed until a value is read, and `fn` runs on every read.
    The view reports the data types of `backing`.  ``image_min`` and
    ``image_max`` start as the range of `backing`; call :meth:`set_min_max`
    for the range of the filtered values.  Writes raise
    :class:`~niftivol.errors.ReadOnlyVolumeError`.

    Parameters
    ----------
    backing : IndexedVolumeArray
    fn : callable
        called with a float value, returning a number
    """

    def __init__(self, backing, fn):
        super().__init__(backing.shape, backing.index2space)
        self.backing = backing
        self.fn = fn
        self.image_min = backing.image_min
        self.image_max = backing.image_max

    @property
    def natural_type(self):
        return self.backing.natural_type

    @property
    def storage_type(self):
        return self.backing.storage_type

    def get_raw(self, index):
        return self.fn(self.backing.get_double_at(index))

    def get_double_at(self, index):
        return float(self.get_raw(index))

    def get_int_at(self, index):
        return _round_half_up(float(self.get_raw(index)))

    def set_raw(self, index, value):
        raise ReadOnlyVolumeError('Cannot write to a filtered volume view')

    def set_data(self, x, y, z, t, i5, value):
        raise ReadOnlyVolumeError('Cannot write to a filtered volume view')

    def write(self, fileobj, endianness=None):
        _to_storage(self).write(fileobj, endianness)


def _to_storage(view):
    """New storage array of ``view.storage_type`` with the values of `view`"""
    out = make_volume_array(view.storage_type, view.shape, view.index2space)
    for index in range(view.n_voxels):
        out.set_raw(index, view.get_raw(index))
    return out
