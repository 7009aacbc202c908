# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Load and save volumes as NIFTI, Analyze and SPM files

:class:`VolumeFile` ties together the companion files of one volume: it
reads the header, resolves the index to space affine and decodes the voxel
stream into a storage class from :mod:`niftivol.storage`.

>>> import os, tempfile
>>> from niftivol.storage import DataType, make_volume_array
>>> vol = make_volume_array(DataType.SHORT, (2, 3, 4), data=np.arange(24))
>>> with tempfile.TemporaryDirectory() as tmpdir:
...     fname = os.path.join(tmpdir, 'example.nii')
...     hdr = save(vol, fname)
...     hdr2, vol2 = load(fname)
>>> vol2.get_int(1, 2, 3)
23
"""
import numpy as np

from . import imageglobals as imageglobals
from .errors import FormatError, ResourceError
from .filename_parser import find_companions
from .nifti1 import LABEL_INTENTS, Nifti1Header, Nifti1PairHeader, load_header
from .openers import ImageOpener
from .storage import DataType, _round_half_up, _wrap_int, make_volume_array, pack_rgb
from .volumearray import OUT_OF_RANGE
from .volumeutils import CHUNK_SIZE, array_from_file, seek_tell


class VolumeFile:
    """The header, image and companion files of one volume

    Parameters
    ----------
    filename : str or os.PathLike
        any of the volume files; see
        :func:`~niftivol.filename_parser.find_companions`
    spm : None or bool, optional
        whether a non-NIFTI header is SPM Analyze.  None means SPM if there
        is a ``.mat`` companion.

    Raises
    ------
    ResourceError
        if there is no header or no image file
    """

    #: bytes per read when decoding the voxel stream
    chunk_size = CHUNK_SIZE

    def __init__(self, filename, spm=None):
        self.filename = filename
        self.files = find_companions(filename)
        if self.files['header'] is None:
            raise ResourceError('No header file for volume', path=str(filename))
        if self.files['image'] is None:
            raise ResourceError('No image file for volume', path=str(filename))
        if spm is None:
            spm = self.files['mat'] is not None
        self.spm = spm
        with ImageOpener(self.files['header']) as fobj:
            self.header = load_header(fobj, spm)
        (self.max_x, self.max_y, self.max_z, self.max_time, self.max_i5) = self.header.get_extents()
        self._transform = None
        self._data = None

    @property
    def shape(self):
        return (self.max_x, self.max_y, self.max_z, self.max_time, self.max_i5)

    @property
    def transform(self):
        """Index to space affine, computed once until :meth:`reset_transform`"""
        if self._transform is None:
            self._transform = self.header.get_best_affine(mat_lookup=self._mat_lookup)
        return self._transform.copy()

    def reset_transform(self):
        """Recompute the affine on next access, after changing the header"""
        self._transform = None

    def _mat_lookup(self):
        return self.files['mat']

    @property
    def data_offset(self):
        """Byte offset of the first voxel in the image file"""
        offset = self.header.get_data_offset()
        if self.header.is_single_file:
            return max(offset, Nifti1Header.single_vox_offset)
        return offset

    def get_index(self, x, y, z, t=0, i5=0):
        """Linear voxel index, or ``OUT_OF_RANGE`` outside the extents"""
        if not (
            0 <= x < self.max_x
            and 0 <= y < self.max_y
            and 0 <= z < self.max_z
            and 0 <= t < self.max_time
            and 0 <= i5 < self.max_i5
        ):
            return OUT_OF_RANGE
        return (((i5 * self.max_time + t) * self.max_z + z) * self.max_y + y) * self.max_x + x

    def get_array(self):
        """Flat array of all voxels in on-disk order, in the header dtype

        The array is read once and kept until :meth:`minimize_footprint`.

        Raises
        ------
        UnsupportedTypeError
            if the header datatype has no numpy dtype
        TruncatedDataError
            if the image stream ends early
        """
        if self._data is None:
            dtype = self.header.get_data_dtype()
            with ImageOpener(self.files['image']) as fobj:
                self._data = array_from_file(
                    self.header.get_n_voxels(),
                    dtype,
                    fobj,
                    self.data_offset,
                    chunk_size=self.chunk_size,
                )
        return self._data

    def minimize_footprint(self):
        """Drop the cached voxel array"""
        self._data = None

    def get_double_array(self):
        """Voxels as a flat float64 array; RGB voxels as packed cells"""
        data = self.get_array()
        if data.dtype.names is not None:
            return np.array([pack_rgb(*v) for v in data], dtype=np.float64)
        return data.astype(np.float64)

    def sample(self, x, y, z, t=0, i5=0):
        """Value of one voxel, read from the file if not already loaded

        Returns 0 outside the extents.  RGB voxels give the packed cell.
        """
        index = self.get_index(x, y, z, t, i5)
        if index == OUT_OF_RANGE:
            return 0
        if self._data is not None:
            value = self._data[index]
        else:
            dtype = self.header.get_data_dtype()
            offset = self.data_offset + index * dtype.itemsize
            with ImageOpener(self.files['image']) as fobj:
                value = array_from_file(1, dtype, fobj, offset)[0]
        if self.header.get_data_dtype().names is not None:
            return pack_rgb(value['R'], value['G'], value['B'])
        return value.item()

    def get_volume(self):
        """Volume array holding all voxels, with :attr:`transform`

        Raises
        ------
        UnsupportedTypeError
            if the header datatype has no storage class
        """
        data = self.get_array()
        datatype = DataType.from_dtype(data.dtype)
        volume = make_volume_array(datatype, self.shape, self.transform, data)
        imageglobals.logger.debug(
            'Loaded %s volume %s from %s', datatype.name, self.shape, self.files['image']
        )
        return volume

    @property
    def is_label_volume(self):
        """True for NIFTI label or neuroname intents with an atlas file"""
        if not self.header.is_nifti or self.files['atlas'] is None:
            return False
        return int(self.header['intent_code']) in LABEL_INTENTS


def load(filename, spm=None):
    """Read volume `filename`

    Returns
    -------
    header : header instance
    volume : VolumeArray
    """
    vfile = VolumeFile(filename, spm)
    return vfile.header, vfile.get_volume()


def generate_header(volume, single_file=True, sform_code=0, intent=0, endianness='>'):
    """NIFTI header describing `volume`

    Parameters
    ----------
    volume : VolumeArray
    single_file : bool, optional
        whether the header will precede the data in one ``.nii`` file
    sform_code : int or str, optional
        code for the sform; 0 means scanner (1)
    intent : int or str, optional
        intent code
    endianness : str, optional
        byte order of the header and voxels, big endian by default

    Returns
    -------
    hdr : Nifti1Header or Nifti1PairHeader
        with the sform set from ``volume.index2space``, the shape as 5
        dimensions, spacings from the affine column sums, units mm and
        seconds, and calibration range from the volume value range.

    Examples
    --------
    >>> from niftivol.storage import DataType, make_volume_array
    >>> vol = make_volume_array(DataType.FLOAT, (4, 3, 2), np.diag([2., 3, 4, 1]))
    >>> hdr = generate_header(vol)
    >>> hdr.get_data_shape()
    (4, 3, 2, 1, 1)
    >>> hdr.get_zooms()
    (2.0, 3.0, 4.0, 1.0, 1.0)
    >>> hdr.endianness
    '>'
    """
    klass = Nifti1Header if single_file else Nifti1PairHeader
    hdr = klass(endianness=endianness)
    if sform_code in (0, 'unknown'):
        sform_code = 'scanner'
    affine = volume.index2space
    hdr.set_datatype(volume.storage_type.code)
    hdr.set_dim([5] + list(volume.shape) + [0, 0])
    zooms = np.abs(affine[:3, :3].sum(axis=0))
    hdr.set_pixdim([1] + list(zooms) + [1, 1, 0, 0])
    hdr.set_sform(affine, code=sform_code)
    hdr.set_intent(intent)
    hdr.set_xyzt_units('mm', 'sec')
    hdr.set_cal_range(volume.image_min, volume.image_max)
    return hdr


def _check_datatype(header, volume):
    if int(header['datatype']) != volume.storage_type.code:
        raise FormatError(
            f'Header datatype {int(header["datatype"])} does not match volume storage '
            f'{volume.storage_type.name}',
            field='datatype',
            offset=70,
        )


def save(volume, header_filename, image_filename=None, header=None, sform_code=0, intent=0):
    """Write `volume` with a header

    Parameters
    ----------
    volume : VolumeArray
    header_filename : str or os.PathLike
        file for the header, and for the voxels if `image_filename` is None.
        ``.gz`` and ``.bz2`` names are compressed.
    image_filename : None or str or os.PathLike, optional
        separate voxel file
    header : None or header instance, optional
        header to write; None generates one with :func:`generate_header`
    sform_code, intent : optional
        passed to :func:`generate_header`

    Returns
    -------
    hdr : header instance
        the header as written

    Raises
    ------
    ValueError
        if `header` needs a separate image file and `image_filename` is None
    FormatError
        if the datatype of `header` is not the storage type of `volume`
    """
    if header is None:
        header = generate_header(volume, image_filename is None, sform_code, intent)
    else:
        header = header.copy()
    _check_datatype(header, volume)
    if image_filename is None and not header.is_single_file:
        raise ValueError('An image file is needed for a header without data')
    with ImageOpener(header_filename, 'wb') as fobj:
        header.write_to(fobj)
        if image_filename is None:
            seek_tell(fobj, header.get_data_offset(), write0=True)
            volume.write(fobj, header.endianness)
    if image_filename is not None:
        with ImageOpener(image_filename, 'wb') as fobj:
            volume.write(fobj, header.endianness)
    return header


class VolumeStream:
    """Write the voxels of a volume one value at a time

    The header is written on construction; values must then be written in
    on-disk order.

    Parameters
    ----------
    header : header instance
    header_filename : str or os.PathLike
    image_filename : None or str or os.PathLike, optional
        separate voxel file; required if `header` is not single file

    Examples
    --------
    >>> from io import BytesIO
    >>> hdr = Nifti1Header()
    >>> hdr.set_data_shape((2, 1, 1))
    >>> hdr.set_data_dtype(np.int16)
    >>> bio = BytesIO()
    >>> with VolumeStream(hdr, bio) as stream:
    ...     stream.write_values([3, 4])
    >>> len(bio.getvalue())
    356
    """

    def __init__(self, header, header_filename, image_filename=None):
        header = header.copy()
        if image_filename is None and not header.is_single_file:
            raise ValueError('An image file is needed for a header without data')
        self.header = header
        self.datatype = DataType.from_code(header['datatype'])
        self._dtype = header.get_data_dtype()
        self.n_written = 0
        self._hdr_opener = ImageOpener(header_filename, 'wb')
        header.write_to(self._hdr_opener)
        if image_filename is None:
            self._img_opener = self._hdr_opener
            seek_tell(self._img_opener, header.get_data_offset(), write0=True)
        else:
            self._img_opener = ImageOpener(image_filename, 'wb')

    def _encode(self, value):
        dt = self.datatype
        if dt is DataType.RGB:
            value = int(value)
            return bytes(((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF))
        if dt.is_integer:
            if not isinstance(value, (int, np.integer)):
                value = _round_half_up(float(value))
            value = _wrap_int(int(value), dt.bits, dt.dtype.kind == 'i')
        return np.array(value, dtype=self._dtype).tobytes()

    def write(self, value):
        """Write the next voxel value"""
        self._img_opener.write(self._encode(value))
        self.n_written += 1

    def write_values(self, values):
        for value in values:
            self.write(value)

    def close(self):
        """Close files opened here; warn if fewer voxels than the header declares"""
        expected = self.header.get_n_voxels()
        if self.n_written != expected:
            imageglobals.logger.warning(
                'Wrote %d voxels; header declares %d', self.n_written, expected
            )
        if self._img_opener is not self._hdr_opener:
            self._img_opener.close_if_mine()
        self._hdr_opener.close_if_mine()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
