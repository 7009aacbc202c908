# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Addressable 5D volumes with sampling in voxel and millimetre space

A volume has five integer extents ``(max_x, max_y, max_z, max_time,
max_i5)``, all at least 1, and an ``index2space`` affine mapping 0-based
voxel coordinates to millimetres.  Voxels are addressed by a linear index,
x fastest and i5 slowest, which is also the on-disk order::

    index = (((i5 * T + t) * Z + z) * Y + y) * X + x

Coordinates outside the extents give :data:`OUT_OF_RANGE` from
:meth:`IndexedVolumeArray.get_index` and 0 from the value getters.  Only
writes raise (:class:`~niftivol.errors.RangeError`).

Concrete storage lives in :mod:`niftivol.storage`; this module holds the
sampling logic, which needs only the primitive ``get_raw`` / ``set_raw``
pair of a storage class.

>>> from niftivol.storage import DataType, make_volume_array
>>> arr = make_volume_array(DataType.FLOAT, (2, 2, 2), np.eye(4))
>>> arr.set_data(1, 0, 0, 0, 0, 4)
>>> arr.get_double(1, 0, 0)
4.0
>>> arr.interpolate(0.5, 0, 0)
2.0
"""
import math
from enum import Enum
from itertools import product

import numpy as np

from . import imageglobals as imageglobals
from .affines import AffineError, apply_affine, apply_vector, invert_affine, is_valid_affine
from .errors import RangeError

#: Fractional parts below this reuse the lower lattice corner
EPSILON = 0.005

#: Linear index returned for coordinates outside the extents
OUT_OF_RANGE = -1

# Direction codes for line_natural
X = 1
Y = 2
Z = 3
MINUS = 0x10
PLUS = 0x20
NONE = 0
X_MINUS = X | MINUS
X_PLUS = X | PLUS
Y_MINUS = Y | MINUS
Y_PLUS = Y | PLUS
Z_MINUS = Z | MINUS
Z_PLUS = Z | PLUS


class Interpolation(Enum):
    """Sampling of fractional voxel coordinates"""

    NEAREST_NEIGHBOR = 'nearest'
    LINEAR = 'linear'


def quick_round_positive(a):
    """Round non-negative `a` to the nearest integer, halves up

    >>> quick_round_positive(2.5)
    3
    >>> quick_round_positive(2.49)
    2
    """
    return int(a + 0.5)


def _round_nearest(a):
    if a >= 0:
        return quick_round_positive(a)
    return math.floor(a + 0.5)


def _normalize_shape(shape):
    shape = tuple(int(s) for s in shape)
    if len(shape) > 5:
        raise ValueError(f'At most 5 dimensions supported, got shape {shape}')
    shape = shape + (1,) * (5 - len(shape))
    if min(shape) < 1:
        raise ValueError(f'All extents must be >= 1, got shape {shape}')
    return shape


class VolumeArray:
    """Volume of values on a 5D grid with an index to space affine

    Subclasses provide ``get_double``, ``get_int`` and ``set_data`` for
    integer voxel coordinates; everything else is built on these.

    Parameters
    ----------
    shape : sequence of int
        up to 5 extents, missing trailing extents are 1
    index2space : None or (4, 4) array-like, optional
        voxel to millimetre affine; None gives the identity.  Must be
        invertible.
    """

    def __init__(self, shape, index2space=None):
        (self.max_x, self.max_y, self.max_z, self.max_time, self.max_i5) = _normalize_shape(shape)
        self.image_min = 0
        self.image_max = 0
        self.index2space = np.eye(4) if index2space is None else index2space

    @property
    def shape(self):
        """Extents ``(max_x, max_y, max_z, max_time, max_i5)``"""
        return (self.max_x, self.max_y, self.max_z, self.max_time, self.max_i5)

    @property
    def n_voxels(self):
        return self.max_x * self.max_y * self.max_z * self.max_time * self.max_i5

    def __len__(self):
        return self.n_voxels

    @property
    def index2space(self):
        """Copy of the voxel to millimetre affine"""
        return self._index2space.copy()

    @index2space.setter
    def index2space(self, affine):
        affine = np.array(affine, dtype=np.float64)
        if not is_valid_affine(affine):
            raise AffineError('index2space must be a finite (4, 4) affine with last row 0 0 0 1')
        self._space2index = invert_affine(affine)
        self._index2space = affine
        self.mm_per_x, self.mm_per_y, self.mm_per_z = (
            float(v) for v in np.abs(apply_vector(affine, (1, 1, 1)))
        )

    @property
    def space2index(self):
        """Copy of the millimetre to voxel affine"""
        return self._space2index.copy()

    @property
    def natural_type(self):
        """:class:`~niftivol.storage.DataType` used for arithmetic"""
        raise NotImplementedError

    @property
    def storage_type(self):
        """:class:`~niftivol.storage.DataType` used for encoding"""
        raise NotImplementedError

    def in_bounds(self, x, y, z, t=0, i5=0):
        return (
            0 <= x < self.max_x
            and 0 <= y < self.max_y
            and 0 <= z < self.max_z
            and 0 <= t < self.max_time
            and 0 <= i5 < self.max_i5
        )

    def get_double(self, x, y, z, t=0, i5=0):
        """Value at integer voxel coordinates as float, 0 if out of range"""
        raise NotImplementedError

    def get_int(self, x, y, z, t=0, i5=0):
        """Value at integer voxel coordinates as int, 0 if out of range"""
        raise NotImplementedError

    def set_data(self, x, y, z, t, i5, value):
        """Store `value` at integer voxel coordinates

        Raises
        ------
        RangeError
            if the coordinates are outside the extents
        """
        raise NotImplementedError

    def _corners(self, x, y, z, t, i5):
        """Lattice corners and weights around fractional ``x, y, z``

        The lower corner truncates toward zero, so ``-1 < x < 0`` blends
        from voxel 0.  Returns None if the lower corner is outside the
        extents.  Corners whose fractional offset is below EPSILON repeat
        the lower corner, so exact lattice points never touch the next voxel.
        Other corners may be out of range; they read as 0.
        """
        lower = [int(v) for v in (x, y, z)]
        if not self.in_bounds(*lower, t, i5):
            return None
        axes = []
        for v, lo in zip((x, y, z), lower):
            frac = v - lo
            hi = lo + 1 if frac >= EPSILON else lo
            axes.append(((lo, 1 - frac), (hi, frac)))
        corners = []
        for (i, wx), (j, wy), (k, wz) in product(*axes):
            corners.append(((i, j, k), wx * wy * wz))
        return corners

    def interpolate(self, x, y, z, t=0, i5=0):
        """Trilinear interpolation at fractional voxel coordinates

        Corners past the far faces read as 0 and still take part in the
        blend.  Returns 0 if the lower corner lies outside the extents.
        Integer coordinates return the voxel value exactly.
        """
        t = int(t)
        i5 = int(i5)
        corners = self._corners(x, y, z, t, i5)
        if corners is None:
            return 0.0
        value = 0.0
        for (i, j, k), weight in corners:
            if weight:
                value += self.get_double(i, j, k, t, i5) * weight
        return value

    def value_voxels(self, x, y, z, t=0, i5=0, interpolation=Interpolation.LINEAR):
        """Sample at fractional voxel coordinates

        Parameters
        ----------
        x, y, z : float
            voxel coordinates
        t, i5 : int, optional
        interpolation : Interpolation, optional
            ``NEAREST_NEIGHBOR`` rounds to the nearest voxel; ``LINEAR``
            (the default) uses :meth:`interpolate`.
        """
        interpolation = Interpolation(interpolation)
        if interpolation is Interpolation.NEAREST_NEIGHBOR:
            return self.get_double(_round_nearest(x), _round_nearest(y), _round_nearest(z), t, i5)
        return self.interpolate(x, y, z, t, i5)

    def mm_to_voxels(self, point):
        """Voxel coordinates of millimetre `point`"""
        return apply_affine(self._space2index, np.asarray(point, dtype=np.float64))

    def voxels_to_mm(self, point):
        """Millimetre coordinates of voxel `point`"""
        return apply_affine(self._index2space, np.asarray(point, dtype=np.float64))

    def value_mm(self, point, t=0, i5=0, interpolation=Interpolation.LINEAR):
        """Sample at millimetre `point` with `interpolation`

        Examples
        --------
        >>> from niftivol.storage import DataType, make_volume_array
        >>> arr = make_volume_array(DataType.DOUBLE, (3, 3, 3), np.diag([2., 2, 2, 1]))
        >>> arr.set_data(1, 1, 1, 0, 0, 10)
        >>> arr.value_mm((2, 2, 2))
        10.0
        >>> arr.value_mm((3, 2, 2))
        5.0
        """
        x, y, z = self.mm_to_voxels(point)
        return self.value_voxels(x, y, z, t, i5, interpolation)

    def get_double_mm(self, point, t=0, i5=0):
        """Nearest voxel value at millimetre `point`

        Single time point volumes ignore `t`.
        """
        if self.max_time == 1:
            t = 0
        x, y, z = self.mm_to_voxels(point)
        return self.get_double(_round_nearest(x), _round_nearest(y), _round_nearest(z), t, i5)

    def get_int_mm(self, point, t=0, i5=0):
        """Integer part of :meth:`get_double_mm`"""
        return int(self.get_double_mm(point, t, i5))

    def get_line(self, p1, p2, t=0, i5=0, n=None):
        """`n` interpolated samples from millimetre `p1` towards `p2`

        Samples start at `p1` and advance by ``(p2 - p1) / n``, so `p2`
        itself is not sampled.  `n` defaults to the voxel distance between
        the points, rounded up, and at least 1.
        """
        v1 = self.mm_to_voxels(p1)
        v2 = self.mm_to_voxels(p2)
        if n is None:
            n = max(int(math.ceil(np.sqrt(np.sum((v2 - v1) ** 2)))), 1)
        step = (v2 - v1) / n
        out = np.zeros(n)
        for i in range(n):
            x, y, z = v1 + step * i
            out[i] = self.interpolate(x, y, z, t, i5)
        return out

    def line_natural(self, p1, p2):
        """Direction code if the line `p1` to `p2` runs along one axis

        Returns one of ``X_PLUS``, ``X_MINUS``, ``Y_PLUS``, ``Y_MINUS``,
        ``Z_PLUS``, ``Z_MINUS``, or ``NONE`` for oblique lines and
        coincident points.

        >>> from niftivol.storage import DataType, make_volume_array
        >>> arr = make_volume_array(DataType.BYTE, (2, 2, 2))
        >>> arr.line_natural((0, 0, 0), (0, 0, 5)) == Z_PLUS
        True
        >>> arr.line_natural((0, 0, 0), (1, 1, 0)) == NONE
        True
        """
        x1, y1, z1 = (float(v) for v in p1)
        x2, y2, z2 = (float(v) for v in p2)
        same = (x1 == x2, y1 == y2, z1 == z2)
        if all(same):
            return NONE
        for axis, a, b in ((X, x1, x2), (Y, y1, y2), (Z, z1, z2)):
            others = [s for n, s in enumerate(same) if n != axis - 1]
            if not same[axis - 1] and all(others):
                return axis | (PLUS if a < b else MINUS)
        return NONE

    def _region(self, x0, y0, z0, t0, i50, width, height, depth, duration, i5_count):
        # (i5, t, z, y, x) nesting, x fastest
        for i5 in range(i50, i50 + i5_count):
            for t in range(t0, t0 + duration):
                for z in range(z0, z0 + depth):
                    for y in range(y0, y0 + height):
                        for x in range(x0, x0 + width):
                            yield x, y, z, t, i5

    def get_series(
        self, x0, y0, z0, t0, i50, width, height, depth, duration, i5_count, as_int=False
    ):
        """Values of an axis aligned sub-box in on-disk order

        Coordinates outside the extents read as 0.

        Returns
        -------
        values : 1D array
            ``width * height * depth * duration * i5_count`` values, float64
            or int64 if `as_int` is True.
        """
        getter = self.get_int if as_int else self.get_double
        values = [getter(*c) for c in self._region(
            x0, y0, z0, t0, i50, width, height, depth, duration, i5_count)]
        return np.array(values, dtype=np.int64 if as_int else np.float64)

    def set_series(self, values, x0, y0, z0, t0, i50, width, height, depth, duration, i5_count):
        """Write `values` into an axis aligned sub-box in on-disk order

        Raises
        ------
        ValueError
            if `values` does not hold exactly one value per voxel in the box
        RangeError
            if the box extends beyond the extents
        """
        values = np.asarray(values).ravel()
        n = width * height * depth * duration * i5_count
        if values.size != n:
            raise ValueError(f'Need {n} values for region, got {values.size}')
        for value, coords in zip(values, self._region(
                x0, y0, z0, t0, i50, width, height, depth, duration, i5_count)):
            self.set_data(*coords, value)

    def map(self, fn):
        """Read only view applying `fn` to every value read

        >>> from niftivol.storage import DataType, make_volume_array
        >>> arr = make_volume_array(DataType.SHORT, (2, 1, 1), data=[3, 4])
        >>> doubled = arr.map(lambda v: v * 2)
        >>> doubled.get_double(1, 0, 0)
        8.0
        """
        from .storage import FilteredVolumeArray

        return FilteredVolumeArray(self, fn)

    def random_sampling(self, size, rng=None):
        """Iterate over the values of `size` randomly chosen voxels

        Parameters
        ----------
        size : int
            number of samples
        rng : None or int or numpy Generator, optional
            seed or generator, passed to :func:`numpy.random.default_rng`
        """
        rng = np.random.default_rng(rng)
        for _ in range(size):
            coords = [int(rng.integers(m)) for m in self.shape]
            yield self.get_double(*coords)

    def set_min_max(self, high_res=False):
        """Recompute ``image_min`` and ``image_max`` from all voxels"""
        lo = np.inf
        hi = -np.inf
        for coords in self._region(0, 0, 0, 0, 0, *self.shape):
            v = self.get_double(*coords)
            lo = min(lo, v)
            hi = max(hi, v)
        self.image_min = lo
        self.image_max = hi

    def _box_planes(self):
        # (normal, d) pairs for the faces through the outermost voxel centres
        planes = []
        for axis, limit in enumerate((self.max_x, self.max_y, self.max_z)):
            normal = np.zeros(3)
            normal[axis] = 1
            planes.append((normal, limit - 1))
            planes.append((-normal, 0))
        return planes

    def _inside_box(self, point):
        x, y, z = (_round_nearest(v) for v in point)
        return 0 <= x < self.max_x and 0 <= y < self.max_y and 0 <= z < self.max_z

    def get_intersection_voxels(self, origin, ray):
        """Entry and exit points of voxel space ray with the volume box

        Parameters
        ----------
        origin : sequence of 3 floats
            ray start in voxel coordinates
        ray : sequence of 3 floats
            ray direction in voxel coordinates

        Returns
        -------
        entry, exit : None or array shape (3,)
            Each is None if the intersection lies behind `origin` or outside
            the volume.

        Examples
        --------
        >>> from niftivol.storage import DataType, make_volume_array
        >>> arr = make_volume_array(DataType.BYTE, (5, 5, 5))
        >>> entry, exit = arr.get_intersection_voxels((-2, 2, 2), (1, 0, 0))
        >>> entry
        array([0., 2., 2.])
        >>> exit
        array([4., 2., 2.])
        """
        origin = np.asarray(origin, dtype=np.float64)
        ray = np.asarray(ray, dtype=np.float64)
        t_front = -np.inf
        t_back = np.inf
        for normal, d in self._box_planes():
            n_dot_dir = np.dot(normal, ray)
            if n_dot_dir == 0:
                continue
            t = (d - np.dot(normal, origin)) / n_dot_dir
            if n_dot_dir > 0:
                t_back = min(t_back, t)
            else:
                t_front = max(t_front, t)
        points = []
        for t in (t_front, t_back):
            if not np.isfinite(t) or t < 0:
                points.append(None)
                continue
            p = origin + ray * t
            points.append(p if self._inside_box(p) else None)
        return tuple(points)

    def get_intersection(self, start_mm, ray_mm):
        """Entry and exit points in millimetres of a millimetre space ray

        See :meth:`get_intersection_voxels`.
        """
        start = self.mm_to_voxels(start_mm)
        ray = apply_vector(self._space2index, np.asarray(ray_mm, dtype=np.float64))
        return tuple(
            None if p is None else self.voxels_to_mm(p)
            for p in self.get_intersection_voxels(start, ray)
        )

    def iter_values(self):
        """Iterate over all values in on-disk order"""
        for coords in self._region(0, 0, 0, 0, 0, *self.shape):
            yield self.get_double(*coords)

    def __iter__(self):
        return self.iter_values()

    def write(self, fileobj, endianness=None):
        """Write all voxels to `fileobj` in on-disk order"""
        raise NotImplementedError


class IndexedVolumeArray(VolumeArray):
    """Volume addressed through a linear index

    Subclasses implement ``get_raw`` and ``set_raw`` on linear indices.
    """

    #: voxels drawn to estimate the value range of large volumes
    sample_size = 10000

    def get_index(self, x, y, z, t=0, i5=0):
        """Linear index of voxel coordinates, or OUT_OF_RANGE

        >>> from niftivol.storage import DataType, make_volume_array
        >>> arr = make_volume_array(DataType.BYTE, (2, 3, 4))
        >>> arr.get_index(1, 2, 3)
        23
        >>> arr.get_index(2, 0, 0)
        -1
        """
        if not self.in_bounds(x, y, z, t, i5):
            return OUT_OF_RANGE
        return int((((i5 * self.max_time + t) * self.max_z + z) * self.max_y + y) * self.max_x + x)

    @property
    def strides(self):
        """Change in linear index for a step of 1 along each axis"""
        nx, ny, nz, nt = self.shape[:4]
        return (1, nx, nx * ny, nx * ny * nz, nx * ny * nz * nt)

    def coords_of(self, index):
        """Voxel coordinates ``(x, y, z, t, i5)`` of linear `index`

        Raises
        ------
        RangeError
            if `index` is outside ``[0, n_voxels)``
        """
        index = int(index)
        if not 0 <= index < self.n_voxels:
            raise RangeError(f'Index {index} outside [0, {self.n_voxels})', coords=(index,))
        coords = []
        for extent in self.shape:
            index, rem = divmod(index, extent)
            coords.append(rem)
        return tuple(coords)

    def get_raw(self, index):
        """Stored value at linear `index`"""
        raise NotImplementedError

    def set_raw(self, index, value):
        """Store `value` at linear `index`, converting to the storage type"""
        raise NotImplementedError

    def get_double_at(self, index):
        return float(self.get_raw(index))

    def get_int_at(self, index):
        value = self.get_raw(index)
        if isinstance(value, float):
            return int(round(value))
        return int(value)

    def get_double(self, x, y, z, t=0, i5=0):
        index = self.get_index(x, y, z, t, i5)
        if index == OUT_OF_RANGE:
            return 0.0
        return self.get_double_at(index)

    def get_int(self, x, y, z, t=0, i5=0):
        index = self.get_index(x, y, z, t, i5)
        if index == OUT_OF_RANGE:
            return 0
        return self.get_int_at(index)

    def set_data(self, x, y, z, t, i5, value):
        index = self.get_index(x, y, z, t, i5)
        if index == OUT_OF_RANGE:
            raise RangeError(
                f'Voxel {(x, y, z, t, i5)} outside extents {self.shape}', coords=(x, y, z, t, i5)
            )
        self.set_raw(index, value)

    def iter_values(self):
        for index in range(self.n_voxels):
            yield self.get_double_at(index)

    def _scan_range(self):
        values = np.fromiter(self.iter_values(), dtype=np.float64, count=self.n_voxels)
        return float(values.min()), float(values.max())

    def set_min_max(self, high_res=False):
        """Recompute ``image_min`` and ``image_max``

        Small volumes, or any volume when `high_res` is True, are scanned in
        full.  Larger volumes use ``sample_size`` random voxels, so the range
        is an estimate.
        """
        sample_size = self.sample_size
        if high_res or self.max_x * self.max_y * self.max_z * self.max_time <= 2 * sample_size:
            self.image_min, self.image_max = self._scan_range()
            return
        values = np.fromiter(self.random_sampling(sample_size), dtype=np.float64, count=sample_size)
        self.image_min = float(values.min())
        self.image_max = float(values.max())
        imageglobals.logger.debug(
            'Estimated range %s to %s from %d samples', self.image_min, self.image_max, sample_size
        )


def resample(
    array, datatype, corner1, corner2, voxel_dim, interpolation=Interpolation.LINEAR, t=0, i5=0
):
    """New volume sampling `array` over an axis aligned millimetre box

    Parameters
    ----------
    array : VolumeArray
        source volume
    datatype : DataType
        storage type of the new volume
    corner1, corner2 : sequence of 3 floats
        opposite corners of the box in millimetres
    voxel_dim : sequence of 3 floats
        voxel size of the new volume in millimetres
    interpolation : Interpolation, optional
    t, i5 : int, optional
        time point and 5th index of `array` to sample

    Returns
    -------
    new_array : VolumeArray
        volume with ``ceil(box size / voxel_dim)`` voxels along each axis
        and a diagonal affine whose origin is the minimum box corner.

    Examples
    --------
    >>> from niftivol.storage import DataType, make_volume_array
    >>> src = make_volume_array(DataType.DOUBLE, (4, 4, 4), data=np.arange(64))
    >>> out = resample(src, DataType.DOUBLE, (0, 0, 0), (4, 4, 4), (2, 2, 2))
    >>> out.shape
    (2, 2, 2, 1, 1)
    >>> out.get_double(1, 0, 0)
    2.0
    """
    from .storage import make_volume_array

    c1 = np.asarray(corner1, dtype=np.float64)
    c2 = np.asarray(corner2, dtype=np.float64)
    voxel_dim = np.abs(np.asarray(voxel_dim, dtype=np.float64))
    if np.any(voxel_dim == 0):
        raise ValueError('voxel_dim must be non-zero')
    lo = np.minimum(c1, c2)
    counts = np.maximum(np.ceil(np.abs(c2 - c1) / voxel_dim).astype(int), 1)
    affine = np.diag(list(voxel_dim) + [1.0])
    affine[:3, 3] = lo
    out = make_volume_array(datatype, tuple(counts), affine)
    for k in range(counts[2]):
        for j in range(counts[1]):
            for i in range(counts[0]):
                point = lo + voxel_dim * (i, j, k)
                out.set_data(i, j, k, 0, 0, array.value_mm(point, t, i5, interpolation))
    out.set_min_max()
    return out
