# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Tests for nifti reading package"""
from io import BytesIO

import numpy as np
import pytest
from numpy.testing import assert_almost_equal, assert_array_almost_equal, assert_array_equal

from ..analyze import AnalyzeHeader
from ..errors import FormatError, TruncatedDataError
from ..nifti1 import (
    Nifti1Extension,
    Nifti1Extensions,
    Nifti1Header,
    Nifti1PairHeader,
    decode_header,
    detect_format,
    encode_header,
    extension_codes,
    header_class_for,
    load_header,
)
from ..spm99analyze import SpmAnalyzeHeader
from ..transforms import PLAIN, QFORM, SFORM, affine_policy, resolve_affine
from ..volumeutils import swapped_code
from .test_analyze import TestAnalyzeHeader

A = np.array(
    [
        [0, -2, 0, 10],
        [3, 0, 0, 11],
        [0, 0, 4, 12],
        [0, 0, 0, 1],
    ],
    dtype=np.float64,
)


class TestNifti1PairHeader(TestAnalyzeHeader):
    header_class = Nifti1PairHeader
    example_magic = b'ni1'

    def get_bad_bb(self):
        # magic is fatal and not fixed by the checks
        hdr = self.header_class()
        hdr['magic'] = b'ooh'
        return hdr.binaryblock

    def test_empty(self):
        super().test_empty()
        hdr = self.header_class()
        assert hdr['magic'] == self.example_magic
        assert hdr['scl_slope'] == 1
        assert hdr['vox_offset'] == 0

    def test_from_eg_file(self):
        hdr = self.header_class()
        hdr.set_data_shape((2, 3, 4))
        bb = hdr.as_byteswapped().binaryblock
        hdr2 = self.header_class.from_fileobj(BytesIO(bb))
        assert hdr2.endianness == swapped_code
        assert hdr2['magic'] == self.example_magic
        assert hdr2['sizeof_hdr'] == self.sizeof_hdr

    def test_version(self):
        hdr = self.header_class()
        assert hdr.version == 1
        assert hdr.is_single_file == (self.example_magic == b'n+1')
        assert hdr.dialect == 'nifti'
        hdr['magic'] = b'xx'
        assert hdr.version is None

    def test_may_contain_header(self):
        hdr = self.header_class()
        assert self.header_class.may_contain_header(hdr.binaryblock)
        assert self.header_class.may_contain_header(hdr.as_byteswapped().binaryblock)
        assert not self.header_class.may_contain_header(hdr.binaryblock[:-1])
        assert not self.header_class.may_contain_header(AnalyzeHeader().binaryblock)

    def test_slope_inter(self):
        hdr = self.header_class()
        assert hdr.get_slope_inter() == (1.0, 0.0)
        for slinter in ((None,), (None, None), (np.nan, np.nan), (2.0, 1.0), (1.0, 0)):
            hdr.set_slope_inter(*slinter)
        assert hdr.get_slope_inter() == (1.0, 0.0)
        for slinter in ((0,), (np.inf, 0), (1, np.inf), (1.0,), (np.nan, 1)):
            with pytest.raises(FormatError):
                hdr.set_slope_inter(*slinter)
        # unset slope means no scaling
        hdr['scl_slope'] = 0
        assert hdr.get_slope_inter() == (None, None)
        hdr['scl_slope'] = 2
        hdr['scl_inter'] = np.inf
        with pytest.raises(FormatError):
            hdr.get_slope_inter()

    def test_nifti_log_checks(self):
        HC = self.header_class
        # qfac
        hdr = HC()
        hdr['pixdim'][0] = 0
        fhdr, message, raiser = self.log_chk(hdr, 20)
        assert fhdr['pixdim'][0] == 1
        assert message == 'pixdim[0] (qfac) should be 1 (default) or -1; setting qfac to 1'
        pytest.raises(*raiser)
        # magic
        hdr = HC()
        hdr['magic'] = b'ooh'
        fhdr, message, raiser = self.log_chk(hdr, 45)
        assert fhdr['magic'] == b'ooh'
        assert message == (
            'magic string "ooh" is not valid; leaving as is, but future errors are likely'
        )
        pytest.raises(*raiser)
        # qform, sform codes
        for code_type in ('qform_code', 'sform_code'):
            hdr = HC()
            hdr[code_type] = 5
            fhdr, message, raiser = self.log_chk(hdr, 30)
            assert fhdr[code_type] == 0
            assert message == f'{code_type} 5 not valid; setting to 0'
            pytest.raises(*raiser)

    def test_offset_checks(self):
        hdr = self.header_class()
        hdr['magic'] = b'ni1'
        hdr['vox_offset'] = 10
        fhdr, message, raiser = self.log_chk(hdr, 30)
        assert fhdr['vox_offset'] == 10
        assert message == (
            'vox offset (=10) not divisible by 16, not SPM compatible; leaving at current value'
        )
        hdr['magic'] = b'n+1'
        fhdr, message, raiser = self.log_chk(hdr, 40)
        assert fhdr['vox_offset'] == 352
        assert message == (
            'vox offset 10 too low for single file nifti1; setting to minimum value of 352'
        )
        pytest.raises(*raiser)

    def test_qform(self):
        hdr = self.header_class()
        hdr.set_data_shape((2, 3, 4))
        assert hdr.get_qform(coded=True) == (None, 0)
        hdr.set_qform(A)
        assert hdr.get_qform_code() == 2
        assert_array_almost_equal(hdr.get_qform(), A, 5)
        aff, code = hdr.get_qform(coded=True)
        assert code == 2
        assert_array_almost_equal(aff, A, 5)
        assert_array_equal(hdr.get_zooms(), [3, 2, 4])
        assert_almost_equal(hdr.get_qform_quaternion()[0] ** 2, 0.5, 5)
        # left handed affine sets qfac to -1
        flipped = np.diag([2, 3, -4, 1])
        hdr.set_qform(flipped, 'scanner')
        assert hdr['pixdim'][0] == -1
        assert hdr.get_qform_code() == 1
        assert_array_almost_equal(hdr.get_qform(), flipped)
        # code only
        hdr.set_qform(None)
        assert hdr.get_qform_code() == 0
        # shears
        sheared = np.eye(4)
        sheared[0, 1] = 0.5
        with pytest.raises(FormatError):
            hdr.set_qform(sheared, strip_shears=False)
        with pytest.raises(TypeError):
            hdr.set_qform(np.eye(3))

    def test_qform_from_fields(self):
        # 180 degree rotation around x: a = 0, b = 1
        hdr = self.header_class()
        hdr.set_quaternion((1, 0, 0))
        hdr.set_qoffset((1, 2, 3))
        hdr['pixdim'][1:4] = [2, 2, 2]
        assert_array_almost_equal(
            hdr.get_qform(),
            [[2, 0, 0, 1], [0, -2, 0, 2], [0, 0, -2, 3], [0, 0, 0, 1]],
        )
        assert_array_equal(hdr.get_qoffset(), [1, 2, 3])

    def test_sform(self):
        hdr = self.header_class()
        assert hdr.get_sform(coded=True) == (None, 0)
        hdr.set_sform(A)
        assert hdr.get_sform_code() == 2
        assert_array_equal(hdr.get_sform(), A)
        assert_array_equal(hdr.get_srow(), A[:3])
        hdr.set_sform(None, 'mni')
        assert hdr.get_sform_code() == 4
        # affine kept
        assert_array_equal(hdr.get_sform(), A)
        hdr.set_sform_code('talairach')
        assert hdr.get_sform_code() == 3
        with pytest.raises(FormatError):
            hdr.set_srow(np.eye(4))

    def test_affine_precedence(self):
        hdr = self.header_class()
        hdr.set_data_shape((2, 3, 4))
        hdr.set_zooms((2, 3, 4))
        assert affine_policy(hdr) == PLAIN
        assert_array_equal(resolve_affine(hdr), np.diag([2, 3, 4, 1]))
        hdr.set_sform(A, code=1)
        assert affine_policy(hdr) == SFORM
        assert_array_equal(hdr.get_best_affine(), A)
        qaff = np.diag([5, 6, 7, 1])
        hdr.set_qform(qaff, code=1)
        # qform wins by default
        assert affine_policy(hdr) == QFORM
        assert_array_almost_equal(hdr.get_best_affine(), qaff)
        assert affine_policy(hdr, prefer_standard=False) == SFORM
        assert_array_equal(hdr.get_best_affine(prefer_standard=False), A)
        # sform alone
        hdr.set_qform_code(0)
        assert affine_policy(hdr, prefer_standard=False) == SFORM
        assert affine_policy(hdr) == SFORM
        # qform alone is used whatever the preference
        hdr.set_qform_code(1)
        hdr.set_sform_code(0)
        assert affine_policy(hdr, prefer_standard=False) == QFORM

    def test_dim_info(self):
        hdr = self.header_class()
        assert hdr.get_dim_info() == (None, None, None)
        for info in ((0, 2, 1), (None, None, None), (0, 2, None), (0, None, None), (None, 2, 1)):
            hdr.set_dim_info(*info)
            assert hdr.get_dim_info() == info
        with pytest.raises(FormatError):
            hdr.set_dim_info(3)

    def test_intents(self):
        ehdr = self.header_class()
        ehdr.set_intent('t test', (10,), name='some score')
        assert ehdr.get_intent() == ('t test', (10.0,), 'some score')
        ehdr.set_intent('f test', (2, 10), name='another score')
        assert ehdr.get_intent() == ('f test', (2.0, 10.0), 'another score')
        assert ehdr.get_intent('code') == (4, (2.0, 10.0), 'another score')
        # unknown intent string
        with pytest.raises(KeyError):
            ehdr.set_intent('no intention')
        # wrong number of parameters
        with pytest.raises(FormatError):
            ehdr.set_intent('t test', (1, 2))
        with pytest.raises(TypeError):
            ehdr.get_intent('bad repr')
        # unset parameters are zero
        ehdr.set_intent('f test')
        assert ehdr.get_intent() == ('f test', (0.0, 0.0), '')
        # unregistered numeric code is kept
        ehdr.set_intent(9999)
        assert ehdr.get_intent() == ('<unknown code 9999>', (), '')
        assert ehdr.get_intent('code') == (9999, (), '')
        # label intents
        ehdr.set_intent('label')
        assert ehdr.get_intent('code')[0] == 1002
        ehdr.set_intent(1003)
        assert ehdr.get_intent() == ('neuroname', (), '')

    def test_xyzt_units(self):
        hdr = self.header_class()
        assert hdr.get_xyzt_units() == ('unknown', 'unknown')
        hdr.set_xyzt_units('mm', 'sec')
        assert hdr.get_xyzt_units() == ('mm', 'sec')
        hdr.set_xyzt_units('micron', 'msec')
        assert hdr.get_xyzt_units() == ('micron', 'msec')
        hdr.set_xyzt_units(t='hz')
        assert hdr.get_xyzt_units() == ('unknown', 'hz')
        assert hdr['xyzt_units'] == 32

    def test_extensions(self):
        hdr = self.header_class()
        assert len(hdr.extensions) == 0
        ext = Nifti1Extension('comment', b'some text')
        hdr.extensions.append(ext)
        assert hdr.extensions.count('comment') == 1
        assert hdr.extensions.get_codes() == [6]
        assert hdr.extensions.get_sizeondisk() == 32
        hdr2 = self.header_class()
        assert hdr != hdr2
        hdr2.extensions.append(Nifti1Extension(6, b'some text'))
        assert hdr == hdr2
        # copies share the extensions
        assert hdr.copy().extensions == hdr.extensions

    def test_extensions_round_trip(self):
        for endianness in ('<', '>'):
            hdr = self.header_class(endianness=endianness)
            hdr.set_data_shape((2, 3, 4))
            hdr.extensions.append(Nifti1Extension('comment', b'first'))
            hdr.extensions.append(Nifti1Extension(42, b'x' * 20))
            bio = BytesIO()
            hdr.write_to(bio)
            bio.seek(0)
            hdr2 = self.header_class.from_fileobj(bio)
            assert hdr2.endianness == endianness
            assert hdr2.extensions == hdr.extensions
            assert hdr2.extensions[1].get_code() == 42
            assert hdr2.extensions[1].get_content() == b'x' * 20

    def test_truncated_extension(self):
        hdr = self.header_class()
        hdr.extensions.append(Nifti1Extension('comment', b'some text'))
        bio = BytesIO()
        hdr.write_to(bio)
        truncated = bio.getvalue()[:-10]
        with pytest.raises(TruncatedDataError):
            self.header_class.from_fileobj(BytesIO(truncated))

    def test_bad_extension_size(self):
        hdr = self.header_class()
        bio = BytesIO()
        hdr.extensions.append(Nifti1Extension('comment', b'some text'))
        hdr.write_to(bio)
        bb = bytearray(bio.getvalue())
        # esize of 4 is smaller than the esize and ecode fields
        bb[352:356] = np.array(4, dtype=hdr.endianness + 'i4').tobytes()
        with pytest.raises(FormatError):
            self.header_class.from_fileobj(BytesIO(bytes(bb)))


class TestNifti1SingleHeader(TestNifti1PairHeader):
    header_class = Nifti1Header
    example_magic = b'n+1'

    def test_binblock_is_file(self):
        # Single file headers have extension flag and padding after the
        # binary block, and the write sets the voxel offset
        hdr = self.header_class()
        str_io = BytesIO()
        hdr.write_to(str_io)
        assert hdr.get_data_offset() == 352
        assert str_io.getvalue() == hdr.binaryblock + b'\x00' * 4

    def test_vox_offset(self):
        hdr = self.header_class()
        hdr.extensions.append(Nifti1Extension('comment', b'x' * 20))
        hdr.write_to(BytesIO())
        assert hdr.get_data_offset() == 352 + 32
        # larger offsets are kept
        hdr.set_data_offset(1024)
        hdr.write_to(BytesIO())
        assert hdr.get_data_offset() == 1024

    def test_pair_vox_offset(self):
        hdr = Nifti1PairHeader()
        hdr.set_data_offset(400)
        bio = BytesIO()
        hdr.write_to(bio)
        assert hdr.get_data_offset() == 0
        assert bio.getvalue() == hdr.binaryblock


def test_detect_format():
    assert detect_format(Nifti1Header().binaryblock) == ('nifti_single', 1)
    assert detect_format(Nifti1PairHeader().binaryblock) == ('nifti_pair', 1)
    assert detect_format(AnalyzeHeader().binaryblock) == ('analyze', None)
    hdr = Nifti1Header()
    hdr['magic'] = b'n+2'
    assert detect_format(hdr.binaryblock) == ('nifti_single', 2)
    hdr['magic'] = b'n+x'
    assert detect_format(hdr.binaryblock) == ('analyze', None)
    assert detect_format(b'') == ('analyze', None)


def test_header_class_for():
    ana_bb = AnalyzeHeader().binaryblock
    assert header_class_for(ana_bb) is AnalyzeHeader
    assert header_class_for(ana_bb, spm=True) is SpmAnalyzeHeader
    assert header_class_for(Nifti1Header().binaryblock, spm=True) is Nifti1Header
    assert header_class_for(Nifti1PairHeader().binaryblock) is Nifti1PairHeader


def test_load_header():
    for klass in (AnalyzeHeader, Nifti1Header, Nifti1PairHeader):
        hdr = klass()
        hdr.set_data_shape((3, 4, 5))
        bio = BytesIO()
        hdr.write_to(bio)
        bio.seek(0)
        hdr2 = load_header(bio)
        assert type(hdr2) is klass
        assert hdr2.get_data_shape() == (3, 4, 5)
    ana = AnalyzeHeader()
    assert type(load_header(BytesIO(ana.binaryblock), spm=True)) is SpmAnalyzeHeader
    with pytest.raises(TruncatedDataError):
        load_header(BytesIO(b'\x00' * 100))
    # rank 9 in both byte orders
    bb = bytearray(ana.binaryblock)
    bb[40:42] = b'\x09\x09'
    with pytest.raises(FormatError):
        load_header(BytesIO(bytes(bb)))


def test_decode_encode():
    hdr = Nifti1Header()
    hdr.set_data_shape((2, 3))
    bb = encode_header(hdr, [Nifti1Extension('comment', b'note')])
    # original unchanged
    assert hdr.get_data_offset() == 0
    assert len(hdr.extensions) == 0
    assert len(bb) == 352 + 16
    hdr2 = decode_header(bb)
    assert hdr2.get_data_offset() == 368
    assert hdr2.extensions == Nifti1Extensions([Nifti1Extension(6, b'note')])
    assert hdr2.get_data_shape() == (2, 3)
    # no extensions
    bb = encode_header(hdr)
    assert len(bb) == 352
    assert decode_header(bb).extensions == []
    with pytest.raises(FormatError):
        encode_header(AnalyzeHeader(), [Nifti1Extension('comment', b'note')])
    assert decode_header(encode_header(AnalyzeHeader())) == AnalyzeHeader()


def test_extension_basics():
    raw = b'123'
    ext = Nifti1Extension('comment', raw)
    assert ext.get_sizeondisk() == 16
    assert ext.get_content() == raw
    assert ext.get_code() == 6
    assert 'comment' in repr(ext)
    # unknown codes are kept as integers
    ext = Nifti1Extension(100, b'')
    assert ext.get_code() == 100
    assert ext.get_sizeondisk() == 16
    assert extension_codes.label[16] == 'pypickle'
    bio = BytesIO()
    Nifti1Extension('afni', b'a' * 9).write_to(bio, False)
    assert len(bio.getvalue()) == 32
    assert np.frombuffer(bio.getvalue()[:8], dtype=np.int32).tolist() == [32, 4]


@pytest.mark.parametrize('klass', [Nifti1Header, Nifti1PairHeader])
@pytest.mark.parametrize('endianness', ['<', '>'])
def test_round_trip_fields(klass, endianness):
    hdr = klass(endianness=endianness)
    hdr.set_data_shape((4, 5, 6, 2))
    hdr.set_data_dtype(np.int16)
    hdr.set_zooms((2, 2.5, 3, 1.5))
    aff = np.diag([2, 2.5, 3, 1])
    aff[:3, 3] = [-10, 12, 3.5]
    hdr.set_sform(aff, code='mni')
    hdr.set_qform(aff, code='scanner')
    hdr.set_intent('t test', (10,), name='stat')
    hdr.set_xyzt_units('mm', 'sec')
    hdr.set_description('round trip')
    if hdr.is_single_file:
        hdr.set_data_offset(352)
    hdr2 = decode_header(encode_header(hdr))
    assert type(hdr2) is klass
    assert hdr2.endianness == hdr.endianness
    assert hdr2 == hdr
    assert_array_equal(hdr2.get_sform(), aff)
    assert hdr2.get_intent() == ('t test', (10.0,), 'stat')
