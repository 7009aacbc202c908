# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Tests for sampling in volumearray module"""

import numpy as np
import pytest
from numpy.testing import assert_almost_equal, assert_array_almost_equal, assert_array_equal

from ..affines import AffineError
from ..errors import RangeError
from ..storage import DataType, FilteredVolumeArray, make_volume_array
from ..volumearray import (
    EPSILON,
    NONE,
    OUT_OF_RANGE,
    X_MINUS,
    X_PLUS,
    Y_MINUS,
    Z_PLUS,
    Interpolation,
    quick_round_positive,
    resample,
)


def ramp(shape=(4, 4, 4), affine=None, datatype=DataType.DOUBLE):
    # value at (x, y, z) is x + 4 * y + 16 * z for the default shape
    n = int(np.prod(shape))
    return make_volume_array(datatype, shape, affine, data=np.arange(n))


def test_shape_defaults():
    arr = make_volume_array(DataType.FLOAT, (3, 2))
    assert arr.shape == (3, 2, 1, 1, 1)
    assert arr.n_voxels == 6
    assert len(arr) == 6
    assert_array_equal(arr.index2space, np.eye(4))
    assert (arr.mm_per_x, arr.mm_per_y, arr.mm_per_z) == (1, 1, 1)
    with pytest.raises(ValueError):
        make_volume_array(DataType.FLOAT, (1, 2, 3, 4, 5, 6))
    with pytest.raises(ValueError):
        make_volume_array(DataType.FLOAT, (3, 0, 2))


def test_index2space():
    aff = np.diag([2.0, -3, 4, 1])
    aff[:3, 3] = [10, 20, 30]
    arr = make_volume_array(DataType.FLOAT, (2, 2, 2), aff)
    assert_array_equal(arr.index2space, aff)
    assert_array_almost_equal(arr.space2index @ aff, np.eye(4))
    assert (arr.mm_per_x, arr.mm_per_y, arr.mm_per_z) == (2, 3, 4)
    # Returned affines are copies
    arr.index2space[0, 0] = 99
    assert arr.index2space[0, 0] == 2
    assert_array_equal(arr.voxels_to_mm((1, 1, 1)), [12, 17, 34])
    assert_array_almost_equal(arr.mm_to_voxels((12, 17, 34)), [1, 1, 1])
    with pytest.raises(AffineError):
        arr.index2space = np.zeros((4, 4))
    with pytest.raises(AffineError):
        arr.index2space = np.eye(3)


def test_index_bijection():
    arr = make_volume_array(DataType.BYTE, (2, 3, 4, 2, 2))
    assert arr.strides == (1, 2, 6, 24, 48)
    seen = set()
    for i5 in range(2):
        for t in range(2):
            for z in range(4):
                for y in range(3):
                    for x in range(2):
                        index = arr.get_index(x, y, z, t, i5)
                        assert index == (((i5 * 2 + t) * 4 + z) * 3 + y) * 2 + x
                        assert arr.coords_of(index) == (x, y, z, t, i5)
                        seen.add(index)
    assert seen == set(range(arr.n_voxels))
    for coords in ((2, 0, 0), (0, 3, 0), (0, 0, 4), (-1, 0, 0), (0, 0, 0, 2), (0, 0, 0, 0, 2)):
        assert arr.get_index(*coords) == OUT_OF_RANGE
    with pytest.raises(RangeError):
        arr.coords_of(arr.n_voxels)
    with pytest.raises(RangeError):
        arr.coords_of(-1)


def test_get_set_data():
    arr = make_volume_array(DataType.SHORT, (2, 2, 2, 2))
    arr.set_data(1, 0, 1, 1, 0, 7)
    assert arr.get_int(1, 0, 1, 1) == 7
    assert arr.get_double(1, 0, 1, 1) == 7.0
    assert arr.get_int(1, 0, 1) == 0
    # out of range reads are 0, writes raise
    assert arr.get_double(2, 0, 0) == 0
    assert arr.get_int(0, 0, 0, 2) == 0
    with pytest.raises(RangeError) as excinfo:
        arr.set_data(0, 2, 0, 0, 0, 1)
    assert excinfo.value.coords == (0, 2, 0, 0, 0)


def test_interpolate_identity():
    # integer coordinates give the voxel value exactly
    arr = ramp()
    for x in range(4):
        for y in range(4):
            for z in range(4):
                assert arr.interpolate(x, y, z) == x + 4 * y + 16 * z
                assert arr.value_voxels(x, y, z) == x + 4 * y + 16 * z


def test_interpolate():
    arr = ramp()
    assert_almost_equal(arr.interpolate(0.5, 0, 0), 0.5)
    assert_almost_equal(arr.interpolate(1.25, 2.5, 0.5), 1.25 + 10 + 8)
    # linear over the whole lattice
    assert_almost_equal(arr.interpolate(2.7, 1.1, 0.3), 2.7 + 4.4 + 4.8)
    # corners past the far face read as 0 and still blend
    assert_almost_equal(arr.interpolate(3.5, 0, 0), 1.5)
    assert_almost_equal(arr.interpolate(3.5, 3, 0), (3 + 12) / 2)
    # within one voxel below the near face the lower corner is voxel 0
    assert_almost_equal(arr.interpolate(-0.5, 1, 0), 4)
    assert_almost_equal(arr.interpolate(1, -0.75, 2), 1 + 32)
    # lower corner out of range gives 0
    assert arr.interpolate(-1.5, 1, 0) == 0
    assert arr.interpolate(4.2, 0, 0) == 0
    assert arr.interpolate(0, 0, 0, t=1) == 0


def test_interpolate_last_half_voxel():
    arr = make_volume_array(DataType.DOUBLE, (2, 1, 1), data=[4, 8])
    assert_almost_equal(arr.interpolate(1.5, 0, 0), 4)
    assert_almost_equal(arr.interpolate(0.5, 0, 0), 6)
    assert_almost_equal(arr.value_voxels(1.25, 0, 0), 6)


def test_interpolate_epsilon():
    arr = ramp()
    # fractions below EPSILON stay on the lower voxel, even at the edge
    assert_almost_equal(arr.interpolate(3 + EPSILON / 2, 0, 0), 3)
    assert_almost_equal(arr.interpolate(1 + EPSILON / 2, 0, 0), 1)
    # past EPSILON the missing next voxel blends in as 0
    assert_almost_equal(arr.interpolate(3 + 2 * EPSILON, 0, 0), 3 * (1 - 2 * EPSILON))


def test_value_voxels_nearest():
    arr = ramp()
    assert arr.value_voxels(0.6, 0, 0, interpolation=Interpolation.NEAREST_NEIGHBOR) == 1
    assert arr.value_voxels(0.4, 1.5, 0, interpolation='nearest') == 8
    assert arr.value_voxels(-0.6, 0, 0, interpolation='nearest') == 0
    with pytest.raises(ValueError):
        arr.value_voxels(0, 0, 0, interpolation='cubic')


def test_value_mm():
    aff = np.diag([2.0, 2, 2, 1])
    aff[:3, 3] = [-4, -4, -4]
    arr = ramp(affine=aff)
    # mm (-4, -4, -4) is voxel (0, 0, 0)
    assert arr.value_mm((-4, -4, -4)) == 0
    assert arr.value_mm((-2, -4, -4)) == 1
    assert_almost_equal(arr.value_mm((-3, -4, -4)), 0.5)
    assert arr.value_mm((-3, -4, -4), interpolation='nearest') == 1
    assert arr.get_double_mm((-2.6, -2, -4)) == 5
    assert arr.get_int_mm((-2.6, -2, -4)) == 5


def test_get_double_mm_ignores_time():
    arr = make_volume_array(DataType.FLOAT, (2, 2, 2))
    arr.set_data(1, 1, 1, 0, 0, 3)
    assert arr.get_double_mm((1, 1, 1), t=5) == 3
    arr4 = make_volume_array(DataType.FLOAT, (2, 2, 2, 2))
    arr4.set_data(1, 1, 1, 1, 0, 3)
    assert arr4.get_double_mm((1, 1, 1), t=1) == 3
    assert arr4.get_double_mm((1, 1, 1), t=0) == 0


def test_get_line():
    arr = ramp((5, 1, 1))
    assert_array_almost_equal(arr.get_line((0, 0, 0), (4, 0, 0)), [0, 1, 2, 3])
    assert_array_almost_equal(arr.get_line((0, 0, 0), (4, 0, 0), n=8), np.arange(8) / 2)
    assert_array_almost_equal(arr.get_line((4, 0, 0), (0, 0, 0), n=2), [4, 2])
    # coincident points give one sample
    assert_array_almost_equal(arr.get_line((2, 0, 0), (2, 0, 0)), [2])


def test_line_natural():
    arr = make_volume_array(DataType.BYTE, (2, 2, 2))
    assert arr.line_natural((0, 0, 0), (3, 0, 0)) == X_PLUS
    assert arr.line_natural((3, 0, 0), (0, 0, 0)) == X_MINUS
    assert arr.line_natural((1, 5, 2), (1, -1, 2)) == Y_MINUS
    assert arr.line_natural((1, 1, 1), (1, 1, 2)) == Z_PLUS
    assert arr.line_natural((0, 0, 0), (1, 0, 1)) == NONE
    assert arr.line_natural((1, 1, 1), (1, 1, 1)) == NONE


def test_series():
    arr = make_volume_array(DataType.INT, (3, 3, 2))
    arr.set_series(np.arange(8), 1, 1, 0, 0, 0, 2, 2, 2, 1, 1)
    # on disk order, x fastest
    assert arr.get_int(1, 1, 0) == 0
    assert arr.get_int(2, 1, 0) == 1
    assert arr.get_int(1, 2, 0) == 2
    assert arr.get_int(1, 1, 1) == 4
    assert arr.get_int(2, 2, 1) == 7
    assert_array_equal(arr.get_series(1, 1, 0, 0, 0, 2, 2, 2, 1, 1, as_int=True), np.arange(8))
    series = arr.get_series(1, 1, 0, 0, 0, 2, 2, 2, 1, 1)
    assert series.dtype == np.float64
    # outside the extents reads as 0
    assert_array_equal(arr.get_series(2, 2, 1, 0, 0, 2, 1, 1, 1, 1), [7, 0])
    with pytest.raises(ValueError):
        arr.set_series(np.arange(7), 1, 1, 0, 0, 0, 2, 2, 2, 1, 1)
    with pytest.raises(RangeError):
        arr.set_series(np.arange(2), 2, 0, 0, 0, 0, 2, 1, 1, 1, 1)


def test_random_sampling():
    arr = ramp()
    values = list(arr.random_sampling(50, rng=0))
    assert len(values) == 50
    assert set(values) <= set(range(64))
    # seeded sampling repeats
    assert values == list(arr.random_sampling(50, rng=0))


def test_set_min_max():
    arr = ramp()
    assert (arr.image_min, arr.image_max) == (0, 63)
    arr.set_data(0, 0, 0, 0, 0, -10)
    arr.set_min_max()
    assert arr.image_min == -10
    # large volumes are estimated from a sample
    arr.sample_size = 4
    arr.set_data(3, 3, 3, 0, 0, 1000)
    arr.set_min_max()
    assert -10 <= arr.image_min <= arr.image_max <= 1000
    arr.set_min_max(high_res=True)
    assert (arr.image_min, arr.image_max) == (-10, 1000)


def test_iteration():
    arr = ramp((2, 2, 1))
    assert list(arr) == [0, 1, 2, 3]
    assert list(arr.iter_values()) == [0, 1, 2, 3]


def test_intersection_voxels():
    arr = make_volume_array(DataType.BYTE, (5, 5, 5))
    entry, exit = arr.get_intersection_voxels((-2, 2, 2), (1, 0, 0))
    assert_array_equal(entry, [0, 2, 2])
    assert_array_equal(exit, [4, 2, 2])
    entry, exit = arr.get_intersection_voxels((6, 1, 3), (-1, 0, 0))
    assert_array_equal(entry, [4, 1, 3])
    assert_array_equal(exit, [0, 1, 3])
    # origin inside: entry is behind
    entry, exit = arr.get_intersection_voxels((2, 2, 2), (1, 0, 0))
    assert entry is None
    assert_array_equal(exit, [4, 2, 2])
    # ray passing beside the box
    assert arr.get_intersection_voxels((-2, 10, 2), (1, 0, 0)) == (None, None)
    # ray pointing away
    assert arr.get_intersection_voxels((-2, 2, 2), (-1, 0, 0)) == (None, None)


def test_intersection_mm():
    arr = make_volume_array(DataType.BYTE, (5, 5, 5), np.diag([2.0, 2, 2, 1]))
    entry, exit = arr.get_intersection((-4, 4, 4), (1, 0, 0))
    assert_array_almost_equal(entry, [0, 4, 4])
    assert_array_almost_equal(exit, [8, 4, 4])


def test_map():
    arr = ramp((2, 2, 1), datatype=DataType.SHORT)
    squared = arr.map(lambda v: v**2)
    assert isinstance(squared, FilteredVolumeArray)
    assert [squared.get_double(x, y, 0) for y in range(2) for x in range(2)] == [0, 1, 4, 9]
    assert (squared.image_min, squared.image_max) == (0, 3)
    squared.set_min_max()
    assert (squared.image_min, squared.image_max) == (0, 9)
    # view follows the backing array
    arr.set_data(0, 0, 0, 0, 0, 5)
    assert squared.get_double(0, 0, 0) == 25


def test_resample():
    src = ramp()
    out = resample(src, DataType.DOUBLE, (0, 0, 0), (4, 4, 4), (2, 2, 2))
    assert out.shape == (2, 2, 2, 1, 1)
    assert_array_equal(out.index2space, np.diag([2, 2, 2, 1]))
    assert out.get_double(1, 0, 0) == 2
    assert out.get_double(1, 1, 1) == 2 + 8 + 32
    assert (out.image_min, out.image_max) == (0, 42)
    # corners in any order; box origin is the minimum corner
    out = resample(src, DataType.FLOAT, (3, 3, 3), (1, 1, 1), (1, 1, 1), 'nearest')
    assert out.shape == (2, 2, 2, 1, 1)
    assert_array_equal(out.index2space[:3, 3], [1, 1, 1])
    assert out.get_double(0, 0, 0) == 1 + 4 + 16
    # half voxel spacing interpolates
    out = resample(src, DataType.DOUBLE, (0, 0, 0), (1, 1, 1), (0.5, 0.5, 0.5))
    assert out.shape == (2, 2, 2, 1, 1)
    assert_almost_equal(out.get_double(1, 0, 0), 0.5)
    with pytest.raises(ValueError):
        resample(src, DataType.DOUBLE, (0, 0, 0), (1, 1, 1), (0, 1, 1))


def test_quick_round_positive():
    assert quick_round_positive(0.5) == 1
    assert quick_round_positive(0.49) == 0
    assert quick_round_positive(3) == 3
