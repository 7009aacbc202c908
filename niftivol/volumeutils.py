# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Utility functions for analyze-like formats

Code tables (:class:`Recoder`), byte order codes, the datatype code table
shared by the Analyze, SPM and NIFTI headers, and chunked raw array reads and
writes.
"""
import sys

import numpy as np

from .errors import TruncatedDataError

sys_is_le = sys.byteorder == 'little'
native_code = '<' if sys_is_le else '>'
swapped_code = '>' if sys_is_le else '<'

_endian_codes = (  # numpy code, aliases
    ('<', 'little', 'l', 'le', 'L', 'LE'),
    ('>', 'big', 'BIG', 'b', 'be', 'B', 'BE'),
    (native_code, 'native', 'n', 'N', '=', '|', 'i', 'I'),
    (swapped_code, 'swapped', 's', 'S', '!'),
)

#: bytes per transfer when reading or writing voxel data
CHUNK_SIZE = 1 << 16


class Recoder:
    """Lookup tables from any alias of a code to each of its fields

    Each row of `codes` lists one value per field, in the order of `fields`,
    followed by optional extra aliases.  Every value in a row, extra aliases
    included, is a key into every field's table.

    >>> codes = ((1, 'label1', 'one', 'first'), (2, 'label2', 'two'))
    >>> recodes = Recoder(codes, fields=('code', 'label'))
    >>> recodes.code['first']
    1
    >>> recodes.label[2]
    'label2'

    Indexing the recoder itself uses the first field:

    >>> recodes['two']
    2
    """

    def __init__(self, codes, fields=('code',)):
        self.fields = tuple(fields)
        for name in self.fields:
            if hasattr(self, name):
                raise KeyError(f'Field name {name} clashes with a Recoder attribute')
            setattr(self, name, {})
        self.field1 = getattr(self, self.fields[0])
        self.add_codes(codes)

    def add_codes(self, code_syn_seqs):
        """Add rows of equivalent values to the tables

        >>> rc = Recoder(((2, 'two'), (1, 'one')))
        >>> rc.add_codes(((3, 'three'), (1, 'first')))
        >>> sorted(rc.value_set())
        [1, 2, 3]
        """
        for row in code_syn_seqs:
            for name, value in zip(self.fields, row):
                table = getattr(self, name)
                table.update(dict.fromkeys(row, value))

    def __getitem__(self, key):
        return self.field1[key]

    def __contains__(self, key):
        try:
            return key in self.field1
        except TypeError:
            return False

    def keys(self):
        """Every code and alias known to the recoder"""
        return self.field1.keys()

    def value_set(self, name=None):
        """Distinct values of field `name` (the first field if None)"""
        table = self.field1 if name is None else getattr(self, name)
        return set(table.values())


endian_codes = Recoder(_endian_codes)


def pretty_mapping(mapping, getterfunc=None):
    """One ``key  : value`` line per key of `mapping`, keys left aligned

    `getterfunc`, if given, is called as ``getterfunc(mapping, key)`` to get
    the value to print.

    >>> print(pretty_mapping({'a key': 'a value', 'k': 1}))
    a key  : a value
    k      : 1
    """
    keys = [str(key) for key in mapping]
    width = max(len(key) for key in keys)
    if getterfunc is None:
        values = [mapping[key] for key in mapping]
    else:
        values = [getterfunc(mapping, key) for key in mapping]
    return '\n'.join(f'{key:<{width}}  : {value}' for key, value in zip(keys, values))


def make_dt_codes(codes_seqs):
    """Datatype :class:`Recoder` from ``(code, label, type, niistring)`` rows

    The table gains ``dtype`` and ``sw_dtype`` fields; the native and
    swapped numpy dtypes are aliases of the code as well.
    """
    fields = ('code', 'label', 'type', 'niistring')
    rows = []
    for row in codes_seqs:
        if len(row) != len(fields):
            raise ValueError(f'Datatype rows need {len(fields)} values, got {row!r}')
        dtype = np.dtype(row[2])
        rows.append(tuple(row) + (dtype, dtype.newbyteorder(swapped_code)))
    return Recoder(rows, fields + ('dtype', 'sw_dtype'))


def _longdouble_or_void(nbytes):
    return np.longdouble if np.dtype(np.longdouble).itemsize == nbytes else np.void


def _clongdouble_or_void(nbytes):
    return np.clongdouble if np.dtype(np.clongdouble).itemsize == nbytes else np.void


_rgb_dt = np.dtype([('R', 'u1'), ('G', 'u1'), ('B', 'u1')])

_dtdefs = (  # code, label, dtype definition, niistring
    (0, 'none', np.void, ''),
    (1, 'binary', np.void, ''),
    (2, 'uint8', np.uint8, 'NIFTI_TYPE_UINT8'),
    (4, 'int16', np.int16, 'NIFTI_TYPE_INT16'),
    (8, 'int32', np.int32, 'NIFTI_TYPE_INT32'),
    (16, 'float32', np.float32, 'NIFTI_TYPE_FLOAT32'),
    (32, 'complex64', np.complex64, 'NIFTI_TYPE_COMPLEX64'),
    (64, 'float64', np.float64, 'NIFTI_TYPE_FLOAT64'),
    (128, 'RGB', _rgb_dt, 'NIFTI_TYPE_RGB24'),
    (255, 'all', np.void, ''),
    (256, 'int8', np.int8, 'NIFTI_TYPE_INT8'),
    (512, 'uint16', np.uint16, 'NIFTI_TYPE_UINT16'),
    (768, 'uint32', np.uint32, 'NIFTI_TYPE_UINT32'),
    (1024, 'int64', np.int64, 'NIFTI_TYPE_INT64'),
    (1280, 'uint64', np.uint64, 'NIFTI_TYPE_UINT64'),
    (1536, 'float128', _longdouble_or_void(16), 'NIFTI_TYPE_FLOAT128'),
    (1792, 'complex128', np.complex128, 'NIFTI_TYPE_COMPLEX128'),
    (2048, 'complex256', _clongdouble_or_void(32), 'NIFTI_TYPE_COMPLEX256'),
)

#: datatype codes shared by Analyze, SPM and NIFTI headers
data_type_codes = make_dt_codes(_dtdefs)

#: bits per voxel for each datatype code; ``set_datatype`` writes these
datatype_bitpix = {
    0: 0,
    1: 1,
    2: 8,
    256: 8,
    4: 16,
    512: 16,
    8: 32,
    16: 32,
    768: 32,
    32: 64,
    64: 64,
    1024: 64,
    1280: 64,
    128: 24,
    1536: 128,
    1792: 128,
    2048: 256,
}


def bitpix_for_code(code):
    """Bits per voxel for datatype `code`, or None if `code` is unknown

    >>> bitpix_for_code(16)
    32
    >>> bitpix_for_code(128)
    24
    >>> bitpix_for_code(3) is None
    True
    """
    return datatype_bitpix.get(int(code))


def _read_exactly(infile, n_bytes, offset, chunk_size=CHUNK_SIZE):
    """Read `n_bytes` from `infile` in chunks into one preallocated buffer"""
    buf = bytearray(n_bytes)
    view = memoryview(buf)
    pos = 0
    while pos < n_bytes:
        chunk = infile.read(min(chunk_size, n_bytes - pos))
        if not chunk:
            raise TruncatedDataError(
                f'Expected {n_bytes} bytes of voxel data, got {pos}', offset=offset + pos
            )
        view[pos : pos + len(chunk)] = chunk
        pos += len(chunk)
    return buf


def array_from_file(shape, in_dtype, infile, offset=0, order='F', chunk_size=CHUNK_SIZE):
    """Get array from file with specified shape, dtype and file offset

    Data is read in chunks of `chunk_size` bytes, so peak memory is the
    final array plus one chunk.

    Parameters
    ----------
    shape : int or sequence
        Shape of array to return.  An int gives a flat array.
    in_dtype : numpy dtype
        dtype of array, including byte order
    infile : file-like
        open file-like object implementing ``read`` (and ``seek`` if
        `offset` is not the current position)
    offset : int, optional
        offset in bytes into `infile` to start reading array data.
    order : {'F', 'C'} string
        order in which to fill the array.
    chunk_size : int, optional
        bytes per read call.

    Returns
    -------
    arr : array-like
        writeable array of `shape` and `in_dtype`

    Raises
    ------
    TruncatedDataError
        if `infile` ends before the whole array has been read.

    Examples
    --------
    >>> from io import BytesIO
    >>> bio = BytesIO()
    >>> arr = np.arange(6).reshape(1, 2, 3)
    >>> _ = bio.write(arr.tobytes('F'))
    >>> arr2 = array_from_file((1, 2, 3), arr.dtype, bio)
    >>> np.all(arr == arr2)
    True
    """
    in_dtype = np.dtype(in_dtype)
    if isinstance(shape, int):
        shape = (shape,)
    n_bytes = int(np.prod(shape, dtype=np.int64)) * in_dtype.itemsize
    if n_bytes == 0:
        return np.array([], dtype=in_dtype).reshape(shape)
    seek_tell(infile, offset)
    data_bytes = _read_exactly(infile, n_bytes, offset, chunk_size)
    return np.ndarray(shape, in_dtype, buffer=data_bytes, order=order)


def array_to_file(data, fileobj, out_dtype=None, offset=0, order='F'):
    """Write `data` to `fileobj` as `out_dtype` starting at `offset`

    Parameters
    ----------
    data : array-like
    fileobj : file-like
        implementing ``write`` (and ``seek`` or ``tell``)
    out_dtype : None or dtype, optional
        dtype, with byte order, to write.  None means ``data.dtype``.
    offset : int, optional
        Where to start writing.  Positions before the current one are only
        allowed for seekable files.
    order : {'F', 'C'}, optional
        memory order in which to write `data`.
    """
    data = np.asanyarray(data)
    out_dtype = data.dtype if out_dtype is None else np.dtype(out_dtype)
    seek_tell(fileobj, offset, write0=True)
    flat = data.ravel(order=order)
    n_per_chunk = max(CHUNK_SIZE // max(out_dtype.itemsize, 1), 1)
    for start in range(0, flat.size, n_per_chunk):
        fileobj.write(flat[start : start + n_per_chunk].astype(out_dtype).tobytes())


def write_zeros(fileobj, count, block_size=8194):
    """Write `count` zero bytes to `fileobj`, at most `block_size` at a time"""
    block = b'\x00' * block_size
    full, rest = divmod(count, block_size)
    for _ in range(full):
        fileobj.write(block)
    fileobj.write(block[:rest])


def seek_tell(fileobj, offset, write0=False):
    """Move `fileobj` to `offset`, padding with zeros where seeking fails

    Streams that cannot seek (compressed files open for writing) are
    accepted if already at `offset`.  With `write0`, such a stream short of
    `offset` is padded with zeros up to it.

    Raises
    ------
    OSError
        if the stream cannot seek and is past `offset`, or short of it
        without `write0`
    """
    try:
        fileobj.seek(offset)
        return
    except OSError:
        pos = fileobj.tell()
        if pos == offset:
            return
        if not write0 or pos > offset:
            raise
    write_zeros(fileobj, offset - pos)
