# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Analyze header as written by SPM

SPM keeps the 348 byte Analyze layout and gives two spare fields a meaning:

* ``funused1`` (offset 112) becomes ``scl_slope``, a factor applied to
  stored values;
* ``originator`` (offset 253) becomes ``origin``, five int16 values of which
  the first three are the voxel at world position 0.

The voxel to world transform of an SPM volume comes from its companion
``.mat`` file when there is one, and from :meth:`get_origin_affine`
otherwise; see :func:`niftivol.transforms.resolve_affine`.
"""
import numpy as np

from . import analyze
from .batteryrunners import Report
from .errors import FormatError
from .transforms import spm_default_affine

SCL_SLOPE_OFFSET = 112
ORIGIN_OFFSET = 253


def _renamed(fields, old, new):
    return [new if field[0] == old else field for field in fields]


header_dtype = np.dtype(
    analyze.header_key_dtd
    + _renamed(analyze.image_dimension_dtd, 'funused1', ('scl_slope', 'f4'))
    + _renamed(analyze.data_history_dtd, 'originator', ('origin', 'i2', (5,)))
)


def _bad_slope(slope):
    return not np.isfinite(slope) or slope == 0


class SpmAnalyzeHeader(analyze.AnalyzeHeader):
    """Analyze header with a scale factor and an origin voxel

    >>> hdr = SpmAnalyzeHeader()
    >>> hdr.get_slope_inter()
    (1.0, None)
    >>> hdr.get_origin()
    (0, 0, 0)
    """

    template_dtype = header_dtype
    has_data_slope = True
    has_data_intercept = False
    dialect = 'spm'

    #: stored x axis runs right to left
    default_x_flip = False

    @classmethod
    def default_structarr(klass, endianness=None):
        record = super().default_structarr(endianness)
        record['scl_slope'] = 1
        return record

    def get_slope_inter(self):
        """``(slope, None)``; slope is None unless finite and non-zero

        SPM headers have no intercept.

        >>> hdr = SpmAnalyzeHeader()
        >>> hdr['scl_slope'] = 0
        >>> hdr.get_slope_inter()
        (None, None)
        """
        slope = float(self._structarr['scl_slope'])
        return (None, None) if _bad_slope(slope) else (slope, None)

    def set_slope_inter(self, slope, inter=None):
        """Store `slope`; None stores NaN, meaning no scaling

        Raises
        ------
        FormatError
            for a zero or infinite `slope`, or an `inter` other than None,
            0 or NaN
        """
        slope = np.nan if slope is None else float(slope)
        if not np.isnan(slope) and _bad_slope(slope):
            raise FormatError(
                'Slope cannot be 0 or infinite', field='scl_slope', offset=SCL_SLOPE_OFFSET
            )
        self._structarr['scl_slope'] = slope
        if inter is not None and inter != 0 and not np.isnan(inter):
            raise FormatError('Cannot set non-zero intercept for SPM headers')

    def get_origin(self):
        """Origin voxel as three ints

        >>> hdr = SpmAnalyzeHeader()
        >>> hdr.set_origin((3, 4, 5))
        >>> hdr.get_origin()
        (3, 4, 5)
        """
        return tuple(int(v) for v in self._structarr['origin'][:3])

    def set_origin(self, origin):
        """Store up to five `origin` values, zeroing the rest"""
        values = np.zeros(5, dtype=np.int16)
        origin = np.asarray(origin).ravel()
        if len(origin) > len(values):
            raise FormatError('origin takes at most 5 values', field='origin', offset=ORIGIN_OFFSET)
        values[: len(origin)] = origin
        self._structarr['origin'] = values

    def get_origin_affine(self):
        """Scaling affine with the origin voxel at world 0

        An unset origin means the centre voxel, rounded down.

        Examples
        --------
        >>> hdr = SpmAnalyzeHeader()
        >>> hdr.set_data_shape((3, 5, 7))
        >>> hdr.set_zooms((3, 2, 1))
        >>> hdr.get_origin_affine()
        array([[ 3.,  0.,  0., -3.],
               [ 0.,  2.,  0., -4.],
               [ 0.,  0.,  1., -3.],
               [ 0.,  0.,  0.,  1.]])
        >>> hdr.set_origin((3, 4, 5))
        >>> hdr.get_origin_affine()
        array([[ 3.,  0.,  0., -9.],
               [ 0.,  2.,  0., -8.],
               [ 0.,  0.,  1., -5.],
               [ 0.,  0.,  0.,  1.]])
        """
        record = self._structarr
        return spm_default_affine(
            record['pixdim'], self.get_extents(), record['origin'][:3], self.default_x_flip
        )

    @classmethod
    def _get_checks(klass):
        return super()._get_checks() + (klass._chk_scale,)

    @staticmethod
    def _chk_scale(hdr, fix=False):
        report = Report(FormatError)
        scale = hdr['scl_slope']
        if not _bad_slope(scale):
            return hdr, report
        report.problem_level = 30
        report.problem_msg = f'scale slope is {scale}; should be !=0 and finite'
        if fix:
            hdr['scl_slope'] = 1
            report.fix_msg = 'setting scalefactor "scl_slope" to 1'
        return hdr, report
