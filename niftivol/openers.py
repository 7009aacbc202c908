# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Context manager openers for plain and compressed volume files"""

from __future__ import annotations

import gzip
import os
import typing as ty
from bz2 import BZ2File

#: leading bytes identifying a gzip stream
GZIP_MAGIC = b'\x1f\x8b'
#: leading bytes identifying a bzip2 stream
BZ2_MAGIC = b'BZh'


class _OpenerDef(ty.NamedTuple):
    """Callable opening a path, and the names of its positional arguments"""

    func: ty.Callable[..., ty.IO]
    arg_names: tuple[str, ...]

    @property
    def compresses(self) -> bool:
        return 'compresslevel' in self.arg_names


_PLAIN = _OpenerDef(open, ('mode', 'buffering'))
_GZIP = _OpenerDef(gzip.open, ('mode', 'compresslevel'))
_BZ2 = _OpenerDef(BZ2File, ('mode', 'buffering', 'compresslevel'))


class Opener:
    r"""Open a path, or pass through a file-like, as a context manager

    Only files opened by the constructor are closed on exit.

    Parameters
    ----------
    fileish : str, os.PathLike or file-like
        a path opens with the opener for its extension (compared without
        case); an object with ``read`` or ``write`` is used as is.
    \*args, \*\*kwargs
        arguments to the opener for a path.  ``mode`` defaults to ``'rb'``
        and, for compressing openers, ``compresslevel`` defaults to
        :attr:`default_compresslevel`.

    Examples
    --------
    >>> from io import BytesIO
    >>> with Opener(BytesIO(b'abc')) as fobj:
    ...     fobj.read()
    b'abc'
    """

    #: openers by lower case extension; None is for all other extensions
    openers: dict[str | None, _OpenerDef] = {
        '.gz': _GZIP,
        '.bz2': _BZ2,
        None: _PLAIN,
    }
    #: compression level when writing gzip and bzip2 files
    default_compresslevel = 1

    def __init__(self, fileish, *args, **kwargs):
        if hasattr(fileish, 'read') or hasattr(fileish, 'write'):
            self.fobj = fileish
            self.me_opened = False
            self._name = getattr(fileish, 'name', None)
            return
        path = os.fspath(fileish)
        opener = self._opener_for(path)
        given = set(kwargs) | set(opener.arg_names[: len(args)])
        if 'mode' not in given:
            kwargs['mode'] = 'rb'
        if opener.compresses and 'compresslevel' not in given:
            kwargs['compresslevel'] = self.default_compresslevel
        self.fobj = opener.func(path, *args, **kwargs)
        self.me_opened = True
        self._name = path

    def _opener_for(self, path: str) -> _OpenerDef:
        ext = os.path.splitext(path)[1].lower()
        return self.openers.get(ext, self.openers[None])

    @property
    def name(self):
        """Path we opened, else the ``name`` of the file-like, if any"""
        return self._name

    @property
    def closed(self) -> bool:
        return self.fobj.closed

    def read(self, size: int = -1, /) -> bytes:
        return self.fobj.read(size)

    def write(self, b: bytes, /) -> int | None:
        return self.fobj.write(b)

    def seek(self, pos: int, whence: int = 0, /) -> int:
        return self.fobj.seek(pos, whence)

    def tell(self, /) -> int:
        return self.fobj.tell()

    def flush(self) -> None:
        self.fobj.flush()

    def close(self, /) -> None:
        self.fobj.close()

    def close_if_mine(self) -> None:
        """Close the file if the constructor opened it"""
        if self.me_opened:
            self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_if_mine()


def sniff_compression(fname):
    """``'.gz'``, ``'.bz2'`` or None, from the leading bytes of `fname`

    Volume files may be compressed without a compression suffix (``.imgz``
    for example), so readers check the content as well as the name.
    """
    with open(fname, 'rb') as fobj:
        start = fobj.read(len(BZ2_MAGIC))
    for ext, magic in (('.gz', GZIP_MAGIC), ('.bz2', BZ2_MAGIC)):
        if start.startswith(magic):
            return ext
    return None


class ImageOpener(Opener):
    """Opener for header and voxel files

    Knows ``.imgz`` (gzipped Analyze image) and, when reading an existing
    file with no compression extension, picks the opener from its content.
    """

    openers = {**Opener.openers, '.imgz': _GZIP}

    def __init__(self, fileish, *args, **kwargs):
        self._reading = 'r' in kwargs.get('mode', args[0] if args else 'rb')
        super().__init__(fileish, *args, **kwargs)

    def _opener_for(self, path: str) -> _OpenerDef:
        opener = super()._opener_for(path)
        if opener is not _PLAIN or not self._reading or not os.path.isfile(path):
            return opener
        sniffed = sniff_compression(path)
        return opener if sniffed is None else self.openers[sniffed]
