# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Exceptions raised while decoding, sampling and writing volumes

All errors derive from :class:`VolumeError`.  Each family also derives from
the closest builtin exception, so callers can catch ``IndexError`` for
out-of-range voxel writes, ``OSError`` for missing companion files and so
on.
"""


class VolumeError(Exception):
    """Base class for all niftivol errors"""


class FormatError(VolumeError, ValueError):
    """Malformed fixed-size header or voxel stream

    Parameters
    ----------
    msg : str
        Description of the problem.
    field : None or str, optional
        Name of the offending header field, if known.
    offset : None or int, optional
        Byte offset of the offending field or read, if known.

    Examples
    --------
    >>> err = FormatError('bad size', field='sizeof_hdr', offset=0)
    >>> str(err)
    'bad size (field sizeof_hdr at byte offset 0)'
    """

    def __init__(self, msg, field=None, offset=None):
        self.field = field
        self.offset = offset
        if field is not None and offset is not None:
            msg = f'{msg} (field {field} at byte offset {offset})'
        elif field is not None:
            msg = f'{msg} (field {field})'
        elif offset is not None:
            msg = f'{msg} (at byte offset {offset})'
        super().__init__(msg)


class BadByteOrderError(FormatError):
    """Neither byte order gives a valid rank in ``dim[0]``"""


class TruncatedDataError(FormatError):
    """Stream ended before the expected number of bytes was read"""


class UnsupportedTypeError(VolumeError, TypeError):
    """Datatype code absent from the code table, or unsupported container

    Parameters
    ----------
    msg : str
    code : None or int, optional
        The datatype code that could not be interpreted.
    """

    def __init__(self, msg, code=None):
        self.code = code
        super().__init__(msg)


class RangeError(VolumeError, IndexError):
    """Voxel coordinate outside the declared extents

    Parameters
    ----------
    msg : str
    coords : None or tuple, optional
        The coordinate that was out of range.
    """

    def __init__(self, msg, coords=None):
        self.coords = coords
        super().__init__(msg)


class ReadOnlyVolumeError(VolumeError, TypeError):
    """Write attempted through a read-only view"""


class ResourceError(VolumeError, OSError):
    """Companion file missing, unreadable or with unusable contents

    Parameters
    ----------
    msg : str
    path : None or str, optional
        The file that could not be used.
    """

    def __init__(self, msg, path=None):
        self.path = path
        if path is not None:
            msg = f'{msg}: {path}'
        super().__init__(msg)
