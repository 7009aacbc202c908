# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Resolve the index to space affine of a volume header

A header can carry its affine in several ways.  The first that applies
wins:

``qform``
    NIFTI quaternion, pixel spacings and offsets (``qform_code > 0``).
``sform``
    NIFTI affine rows ``srow_x``, ``srow_y``, ``srow_z`` (``sform_code > 0``).
``spm_mat``
    matrix ``M`` (or ``mat``) from the SPM companion ``.mat`` file, rebased
    from 1-based voxel indices.
``spm_default``
    SPM header without a usable ``.mat``: spacings, translated so that the
    ``origin`` voxel (or the centre voxel) sits at 0.
``plain``
    diagonal of pixel spacings with zero translation.

All values are float64 ``(4, 4)`` arrays.  Nothing is cached; each call
recomputes from the current header fields.

>>> from niftivol.nifti1 import Nifti1Header
>>> hdr = Nifti1Header()
>>> hdr.set_data_shape((2, 3, 4))
>>> hdr.set_zooms((2, 3, 4))
>>> affine_policy(hdr)
'plain'
>>> hdr.set_sform(np.diag([1., 2, 3, 1]), code=1)
>>> affine_policy(hdr)
'sform'
"""
from io import BytesIO

import numpy as np
import scipy.io as sio
from scipy.io.matlab import MatReadError

from . import imageglobals as imageglobals
from .affines import from_matvec, is_valid_affine
from .errors import ResourceError
from .openers import ImageOpener
from .quaternions import fillpositive, quat2mat

QFORM = 'qform'
SFORM = 'sform'
SPM_MAT = 'spm_mat'
SPM_DEFAULT = 'spm_default'
PLAIN = 'plain'


def pixdim_affine(pixdim):
    """Diagonal affine from spacings ``pixdim[1:4]``, zero translation

    >>> pixdim_affine([1, 2, 3, 4, 1, 1, 1, 1])
    array([[2., 0., 0., 0.],
           [0., 3., 0., 0.],
           [0., 0., 4., 0.],
           [0., 0., 0., 1.]])
    """
    zooms = np.asarray(pixdim, dtype=np.float64)[1:4]
    return from_matvec(np.diag(zooms))


def quaternion_affine(bcd, qoffset, pixdim):
    """Affine from NIFTI quaternion `bcd`, offsets and `pixdim`

    Parameters
    ----------
    bcd : sequence
        quaternion ``b, c, d``; ``a`` is filled in assuming a unit quaternion
        with negative discriminants clamped to zero.
    qoffset : sequence
        ``qoffset_x, qoffset_y, qoffset_z``
    pixdim : sequence
        8 pixdim values.  ``pixdim[0]`` is qfac; -1 flips the third column.

    Examples
    --------
    >>> quaternion_affine([0, 0, 0], [10, 11, 12], [-1, 2, 3, 4, 1, 1, 1, 1])
    array([[ 2.,  0.,  0., 10.],
           [ 0.,  3.,  0., 11.],
           [ 0.,  0., -4., 12.],
           [ 0.,  0.,  0.,  1.]])
    """
    pixdim = np.asarray(pixdim, dtype=np.float64)
    R = quat2mat(fillpositive(bcd))
    zooms = pixdim[1:4].copy()
    if pixdim[0] == -1:
        zooms[2] *= -1
    return from_matvec(R * zooms[None, :], np.asarray(qoffset, dtype=np.float64))


def srow_affine(srow_x, srow_y, srow_z):
    """Affine with rows `srow_x`, `srow_y`, `srow_z` and ``[0, 0, 0, 1]``"""
    aff = np.eye(4)
    aff[0] = srow_x
    aff[1] = srow_y
    aff[2] = srow_z
    return aff


def spm_default_affine(pixdim, extents, origin, x_flip=False):
    """SPM affine from spacings and origin voxel

    Parameters
    ----------
    pixdim : sequence
        8 pixdim values; spacings are ``pixdim[1:4]``, unit if all zero.
    extents : sequence
        at least 3 voxel counts
    origin : sequence
        at least 3 voxel coordinates of the space origin.  If all zero, the
        centre voxel ``floor((extent - 1) / 2)`` is used.
    x_flip : bool, optional
        whether to negate the x spacing (radiological storage)

    Examples
    --------
    Even extents round the centre down:

    >>> spm_default_affine([0, 2, 2, 2, 1, 1, 1, 1], (4, 5, 6), (0, 0, 0))
    array([[ 2.,  0.,  0., -2.],
           [ 0.,  2.,  0., -4.],
           [ 0.,  0.,  2., -4.],
           [ 0.,  0.,  0.,  1.]])
    >>> spm_default_affine([0, 0, 0, 0, 1, 1, 1, 1], (4, 5, 6), (1, 2, 3))
    array([[ 1.,  0.,  0., -1.],
           [ 0.,  1.,  0., -2.],
           [ 0.,  0.,  1., -3.],
           [ 0.,  0.,  0.,  1.]])
    """
    zooms = np.asarray(pixdim, dtype=np.float64)[1:4].copy()
    if not np.any(zooms):
        zooms[:] = 1
    centre = np.asarray(origin, dtype=np.float64)[:3]
    if not np.any(centre):
        extents = np.asarray(extents[:3], dtype=np.int64)
        centre = ((extents - 1) // 2).astype(np.float64)
    if x_flip:
        zooms[0] *= -1
    return from_matvec(np.diag(zooms), -zooms * centre)


def load_spm_mat(fileish):
    """Read the matrices from an SPM ``.mat`` file

    Parameters
    ----------
    fileish : str, os.PathLike or file-like

    Returns
    -------
    mats : dict
        variables read by :func:`scipy.io.loadmat`

    Raises
    ------
    ResourceError
        if the file cannot be read or decoded
    """
    try:
        with ImageOpener(fileish) as fobj:
            contents = fobj.read()
    except OSError as err:
        raise ResourceError(f'Cannot read SPM matrix file ({err})', path=str(fileish))
    if len(contents) == 0:
        raise ResourceError('Empty SPM matrix file', path=str(fileish))
    try:
        return sio.loadmat(BytesIO(contents))
    except (MatReadError, ValueError, TypeError, NotImplementedError) as err:
        raise ResourceError(f'Cannot decode SPM matrix file ({err})', path=str(fileish))


def spm_mat_affine(mats, x_flip=False):
    """0-based affine from SPM matrix variables `mats`

    ``M`` is preferred; ``mat`` already includes any x flip.  SPM indexes
    voxels from 1, so the translation is moved to where voxel (1, 1, 1) maps.

    Raises
    ------
    ResourceError
        if neither matrix is present or the matrix is not a real (4, 4)

    Examples
    --------
    >>> M = np.diag([2., 3, 4, 1])
    >>> spm_mat_affine({'M': M})
    array([[2., 0., 0., 2.],
           [0., 3., 0., 3.],
           [0., 0., 4., 4.],
           [0., 0., 0., 1.]])
    """
    if 'M' in mats:
        mat = np.asarray(mats['M'])
        if x_flip and mat.shape == (4, 4):
            mat = np.dot(np.diag([-1, 1, 1, 1]), mat)
    elif 'mat' in mats:
        mat = np.asarray(mats['mat'])
        if mat.ndim > 2:
            imageglobals.logger.warning('More than one affine in "mat" matrix, using first')
            mat = mat[:, :, 0]
    else:
        raise ResourceError('SPM matrix file has no "M" or "mat" variable')
    if not is_valid_affine(mat):
        raise ResourceError(f'SPM matrix of shape {mat.shape} is not a real 4x4 affine')
    # Adjust for matlab 1,1,1 voxel origin
    to_111 = np.eye(4)
    to_111[:3, 3] = 1
    return np.dot(mat.astype(np.float64), to_111)


def _spm_mat_from_lookup(header, mat_lookup):
    fileish = mat_lookup()
    if fileish is None:
        return None
    try:
        mats = load_spm_mat(fileish)
        return spm_mat_affine(mats, getattr(header, 'default_x_flip', False))
    except ResourceError as err:
        imageglobals.logger.warning('Ignoring SPM matrix; %s', err)
        return None


def _resolve(header, mat_lookup, prefer_standard):
    if header.is_nifti:
        qform_code = int(header['qform_code'])
        sform_code = int(header['sform_code'])
        if qform_code > 0 and (prefer_standard or sform_code == 0):
            return QFORM, header.get_qform()
        if sform_code > 0:
            return SFORM, header.get_sform()
        return PLAIN, header.get_plain_affine()
    if header.dialect == 'spm':
        if mat_lookup is not None:
            affine = _spm_mat_from_lookup(header, mat_lookup)
            if affine is not None:
                return SPM_MAT, affine
        return SPM_DEFAULT, header.get_origin_affine()
    return PLAIN, header.get_plain_affine()


def resolve_affine(header, mat_lookup=None, prefer_standard=True):
    """Index to space affine for `header`

    Parameters
    ----------
    header : header instance
        :class:`~niftivol.analyze.AnalyzeHeader` or subclass
    mat_lookup : None or callable, optional
        for SPM headers, called with no arguments to get the path or file-like
        of the ``.mat`` companion, or None if there is none.  A missing or
        unusable matrix is logged and the SPM default used instead.
    prefer_standard : bool, optional
        if True (the default) a NIFTI qform wins over an sform; otherwise the
        sform is used when present.

    Returns
    -------
    affine : (4, 4) float64 array

    Examples
    --------
    >>> from niftivol.analyze import AnalyzeHeader
    >>> hdr = AnalyzeHeader()
    >>> hdr.set_data_shape((2, 3, 4))
    >>> hdr.set_zooms((2, 3, 4))
    >>> resolve_affine(hdr)
    array([[2., 0., 0., 0.],
           [0., 3., 0., 0.],
           [0., 0., 4., 0.],
           [0., 0., 0., 1.]])
    """
    return _resolve(header, mat_lookup, prefer_standard)[1]


def affine_policy(header, mat_lookup=None, prefer_standard=True):
    """Name of the policy :func:`resolve_affine` uses for `header`

    One of ``'qform'``, ``'sform'``, ``'spm_mat'``, ``'spm_default'`` or
    ``'plain'``.
    """
    return _resolve(header, mat_lookup, prefer_standard)[0]
