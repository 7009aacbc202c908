# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Tests for loading and saving volume files"""
import gzip
import logging

import numpy as np
import pytest
import scipy.io as sio
from numpy.testing import assert_array_almost_equal, assert_array_equal

from ..analyze import AnalyzeHeader
from ..errors import FormatError, ResourceError, TruncatedDataError
from ..nifti1 import Nifti1Header, Nifti1PairHeader
from ..spm99analyze import SpmAnalyzeHeader
from ..storage import DataType, RGBVolumeArray, make_volume_array, pack_rgb
from ..volumearray import OUT_OF_RANGE
from ..volumefile import VolumeFile, VolumeStream, generate_header, load, save


def float_volume():
    # 4 x 4 x 2 float32, identity index to space
    return make_volume_array(DataType.FLOAT, (4, 4, 2), np.eye(4), data=np.arange(32) / 2)


def test_nii_identity_sform(tmp_path):
    fname = tmp_path / 'vol.nii'
    vol = float_volume()
    hdr = save(vol, fname)
    assert isinstance(hdr, Nifti1Header)
    assert hdr['sform_code'] == 1
    assert hdr['qform_code'] == 0
    assert fname.stat().st_size == 352 + 32 * 4
    hdr2, vol2 = load(fname)
    assert hdr2.get_data_shape() == (4, 4, 2, 1, 1)
    assert hdr2.get_data_dtype() == np.dtype('>f4')
    assert_array_equal(vol2.index2space, np.eye(4))
    assert vol2.storage_type is DataType.FLOAT
    # mm (1, 1, 1) is voxel (1, 1, 1)
    assert vol2.value_mm((1, 1, 1)) == vol2.get_double(1, 1, 1) == (1 + 4 + 16) / 2
    assert_array_equal(vol2.to_ndarray(), vol.to_ndarray())
    assert (vol2.image_min, vol2.image_max) == (0, 15.5)
    assert hdr2.get_cal_range() == (0, 15.5)


def test_nii_gz(tmp_path):
    vol = make_volume_array(DataType.SHORT, (2, 3, 4), np.diag([2.0, 2, 2, 1]), np.arange(24))
    fname = tmp_path / 'vol.nii.gz'
    save(vol, fname)
    with gzip.open(fname, 'rb') as fobj:
        assert fobj.read(348)[344:] == b'n+1\x00'
    hdr, vol2 = load(fname)
    assert vol2.get_int(1, 2, 3) == 23
    assert_array_equal(vol2.index2space, np.diag([2, 2, 2, 1]))
    assert hdr.get_zooms() == (2, 2, 2, 1, 1)


def test_pair_files(tmp_path):
    vol = make_volume_array(DataType.USHORT, (3, 2, 2), data=np.arange(12) + 65520)
    hdr_fname = tmp_path / 'vol.hdr'
    img_fname = tmp_path / 'vol.img'
    hdr = save(vol, hdr_fname, img_fname)
    assert isinstance(hdr, Nifti1PairHeader)
    assert hdr_fname.stat().st_size == 348
    assert img_fname.stat().st_size == 12 * 2
    for given in (hdr_fname, img_fname, tmp_path / 'vol'):
        vfile = VolumeFile(given)
        assert vfile.files['header'] == str(hdr_fname)
        assert vfile.files['image'] == str(img_fname)
        assert vfile.data_offset == 0
        assert vfile.get_volume().get_int(2, 1, 1) == 65531


def test_compressed_pair(tmp_path):
    vol = make_volume_array(DataType.INT, (2, 2, 2), data=np.arange(8) - 4)
    save(vol, tmp_path / 'vol.hdr.gz', tmp_path / 'vol.img.gz')
    vfile = VolumeFile(tmp_path / 'vol.hdr.gz')
    assert vfile.files['image'] == str(tmp_path / 'vol.img.gz')
    assert_array_equal(vfile.get_array(), np.arange(8) - 4)


def test_imgz_sniffed(tmp_path):
    # .img holding gzip data without a .gz name
    hdr = Nifti1PairHeader()
    hdr.set_data_shape((2, 2, 1))
    hdr.set_data_dtype(np.uint8)
    with open(tmp_path / 'vol.hdr', 'wb') as fobj:
        hdr.write_to(fobj)
    (tmp_path / 'vol.img').write_bytes(gzip.compress(bytes([1, 2, 3, 255])))
    vfile = VolumeFile(tmp_path / 'vol.hdr')
    assert vfile.get_volume().get_int(1, 1, 0) == 255


def test_analyze(tmp_path):
    hdr = AnalyzeHeader()
    hdr.set_data_shape((2, 3, 4))
    hdr.set_data_dtype(np.int16)
    hdr.set_zooms((2, 3, 4))
    with open(tmp_path / 'vol.hdr', 'wb') as fobj:
        hdr.write_to(fobj)
    with open(tmp_path / 'vol.img', 'wb') as fobj:
        hdr.data_to_fileobj(np.arange(24).reshape((2, 3, 4), order='F'), fobj)
    vfile = VolumeFile(tmp_path / 'vol.img')
    assert not vfile.spm
    assert type(vfile.header) is AnalyzeHeader
    assert_array_equal(vfile.transform, np.diag([2, 3, 4, 1]))
    assert vfile.get_volume().get_int(1, 2, 3) == 23
    assert not vfile.is_label_volume
    # SPM dialect without a .mat file uses the origin
    vfile = VolumeFile(tmp_path / 'vol.img', spm=True)
    assert type(vfile.header) is SpmAnalyzeHeader
    assert_array_equal(vfile.transform, vfile.header.get_origin_affine())


def test_spm_mat(tmp_path):
    hdr = SpmAnalyzeHeader()
    hdr.set_data_shape((2, 2, 2))
    hdr.set_data_dtype(np.float32)
    with open(tmp_path / 'vol.hdr', 'wb') as fobj:
        hdr.write_to(fobj)
    with open(tmp_path / 'vol.img', 'wb') as fobj:
        hdr.data_to_fileobj(np.zeros(8), fobj)
    M = np.diag([2.0, 3, 4, 1])
    M[:3, 3] = [-10, -20, -30]
    sio.savemat(str(tmp_path / 'vol.mat'), {'M': M})
    vfile = VolumeFile(tmp_path / 'vol.hdr')
    assert vfile.spm
    assert vfile.files['mat'] == str(tmp_path / 'vol.mat')
    expected = M.copy()
    expected[:3, 3] = [-8, -17, -26]
    assert_array_almost_equal(vfile.transform, expected)
    # affine is cached until reset
    (tmp_path / 'vol.mat').unlink()
    assert_array_almost_equal(vfile.transform, expected)
    vfile.files['mat'] = None
    vfile.reset_transform()
    assert_array_equal(vfile.transform, hdr.get_origin_affine())


def test_truncated_data(tmp_path):
    fname = tmp_path / 'vol.nii'
    save(float_volume(), fname)
    contents = fname.read_bytes()
    fname.write_bytes(contents[:-10])
    vfile = VolumeFile(fname)
    with pytest.raises(TruncatedDataError) as excinfo:
        vfile.get_array()
    assert excinfo.value.offset == len(contents) - 10
    with pytest.raises(FormatError):
        load(fname)


def test_missing_files(tmp_path):
    with pytest.raises(ResourceError) as excinfo:
        VolumeFile(tmp_path / 'nothere.nii')
    assert str(tmp_path / 'nothere.nii') in str(excinfo.value)
    (tmp_path / 'vol.hdr').write_bytes(Nifti1PairHeader().binaryblock)
    with pytest.raises(ResourceError):
        VolumeFile(tmp_path / 'vol.hdr')
    # resource errors are also OSErrors
    with pytest.raises(OSError):
        VolumeFile(tmp_path / 'vol.img')


def test_sample(tmp_path):
    fname = tmp_path / 'vol.nii'
    save(float_volume(), fname)
    vfile = VolumeFile(fname)
    assert vfile.get_index(1, 1, 1) == 21
    assert vfile.get_index(4, 0, 0) == OUT_OF_RANGE
    # read from the file when not loaded
    assert vfile.sample(1, 1, 1) == 10.5
    assert vfile.sample(0, 0, 5) == 0
    assert_array_equal(vfile.get_double_array(), np.arange(32) / 2)
    assert vfile.sample(3, 3, 1) == 15.5
    vfile.minimize_footprint()
    assert vfile.sample(3, 3, 1) == 15.5


def test_rgb(tmp_path):
    vol = RGBVolumeArray((2, 1, 1), data=[[1, 2, 3], [250, 128, 0]])
    fname = tmp_path / 'rgb.nii'
    save(vol, fname)
    assert fname.stat().st_size == 352 + 6
    vfile = VolumeFile(fname)
    assert vfile.sample(1, 0, 0) == pack_rgb(250, 128, 0)
    vol2 = vfile.get_volume()
    assert isinstance(vol2, RGBVolumeArray)
    assert vol2.get_rgb(0, 0, 0) == (1, 2, 3)
    assert_array_equal(vfile.get_double_array(), [pack_rgb(1, 2, 3), pack_rgb(250, 128, 0)])


def test_label_volume(tmp_path):
    vol = make_volume_array(DataType.SHORT, (2, 2, 2))
    fname = tmp_path / 'labels.nii'
    save(vol, fname, intent='label')
    assert not VolumeFile(fname).is_label_volume
    (tmp_path / 'labels.atlas.xml').write_text('<atlas/>')
    assert VolumeFile(fname).is_label_volume
    save(vol, fname)
    assert not VolumeFile(fname).is_label_volume


def test_generate_header():
    aff = np.array([[0, -2, 0, 10], [3, 0, 0, 20], [0, 0, 4, 30], [0, 0, 0, 1]], dtype=float)
    vol = make_volume_array(DataType.INT, (4, 3, 2), aff, data=np.arange(24))
    hdr = generate_header(vol)
    assert isinstance(hdr, Nifti1Header)
    assert hdr.endianness == '>'
    assert hdr.get_data_dtype() == np.dtype('>i4')
    assert hdr.get_data_shape() == (4, 3, 2, 1, 1)
    assert hdr.get_zooms() == (3, 2, 4, 1, 1)
    assert_array_equal(hdr.get_sform(), aff)
    assert hdr['sform_code'] == 1
    assert hdr.get_xyzt_units() == ('mm', 'sec')
    assert hdr.get_cal_range() == (0, 23)
    hdr = generate_header(vol, single_file=False, sform_code='talairach', endianness='<')
    assert isinstance(hdr, Nifti1PairHeader)
    assert hdr.endianness == '<'
    assert hdr['sform_code'] == 3


def test_save_errors(tmp_path):
    vol = make_volume_array(DataType.SHORT, (2, 2, 2))
    hdr = generate_header(vol)
    hdr.set_data_dtype(np.float32)
    with pytest.raises(FormatError):
        save(vol, tmp_path / 'vol.nii', header=hdr)
    with pytest.raises(ValueError):
        save(vol, tmp_path / 'vol.hdr', header=generate_header(vol, single_file=False))
    # given header is copied, not changed
    hdr = generate_header(vol)
    hdr['vox_offset'] = 0
    out = save(vol, tmp_path / 'vol.nii', header=hdr)
    assert hdr['vox_offset'] == 0
    assert out['vox_offset'] == 352


def test_volume_stream(tmp_path):
    vol = make_volume_array(DataType.SHORT, (3, 2, 1))
    hdr = generate_header(vol)
    fname = tmp_path / 'stream.nii'
    with VolumeStream(hdr, fname) as stream:
        stream.write_values([1, 2.5, -3])
        stream.write_values(np.array([40000, 5, 6]))
    assert stream.n_written == 6
    _, vol2 = load(fname)
    assert list(vol2.iter_values()) == [1, 3, -3, 40000 - 65536, 5, 6]


def test_volume_stream_pair(tmp_path):
    vol = RGBVolumeArray((2, 1, 1))
    hdr = generate_header(vol, single_file=False)
    with pytest.raises(ValueError):
        VolumeStream(hdr, tmp_path / 'rgb.hdr')
    with VolumeStream(hdr, tmp_path / 'rgb.hdr', tmp_path / 'rgb.img') as stream:
        stream.write(pack_rgb(1, 2, 3))
        stream.write(pack_rgb(4, 5, 6))
    assert (tmp_path / 'rgb.img').read_bytes() == bytes([1, 2, 3, 4, 5, 6])
    assert VolumeFile(tmp_path / 'rgb.hdr').get_volume().get_rgb(1, 0, 0) == (4, 5, 6)


def test_volume_stream_short(tmp_path, caplog):
    hdr = generate_header(make_volume_array(DataType.UBYTE, (2, 2, 1)))
    with caplog.at_level(logging.WARNING, logger='niftivol.global'):
        with VolumeStream(hdr, tmp_path / 'short.nii') as stream:
            stream.write(1)
    assert 'Wrote 1 voxels; header declares 4' in caplog.text
