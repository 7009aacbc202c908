# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Tests for the exception hierarchy"""
import pytest

from ..errors import (
    BadByteOrderError,
    FormatError,
    RangeError,
    ReadOnlyVolumeError,
    ResourceError,
    TruncatedDataError,
    UnsupportedTypeError,
    VolumeError,
)


@pytest.mark.parametrize(
    'klass, builtin',
    [
        (FormatError, ValueError),
        (BadByteOrderError, ValueError),
        (TruncatedDataError, ValueError),
        (UnsupportedTypeError, TypeError),
        (RangeError, IndexError),
        (ReadOnlyVolumeError, TypeError),
        (ResourceError, OSError),
    ],
)
def test_hierarchy(klass, builtin):
    assert issubclass(klass, VolumeError)
    assert issubclass(klass, builtin)


def test_format_error_message():
    err = FormatError('bad size', field='sizeof_hdr', offset=0)
    assert str(err) == 'bad size (field sizeof_hdr at byte offset 0)'
    assert (err.field, err.offset) == ('sizeof_hdr', 0)
    assert str(FormatError('bad', field='dim')) == 'bad (field dim)'
    assert str(FormatError('short', offset=12)) == 'short (at byte offset 12)'
    err = FormatError('plain')
    assert str(err) == 'plain'
    assert err.field is None and err.offset is None
    assert isinstance(TruncatedDataError('short', offset=10), FormatError)


def test_context_attributes():
    assert UnsupportedTypeError('no', code=3).code == 3
    assert RangeError('out', coords=(1, 2, 3, 0, 0)).coords == (1, 2, 3, 0, 0)
    err = ResourceError('missing', path='/a/b.img')
    assert err.path == '/a/b.img'
    assert str(err) == 'missing: /a/b.img'
    with pytest.raises(OSError):
        raise ResourceError('missing')
