# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Routines for homogeneous 4x4 index to space affines"""

import numpy as np

from .errors import FormatError


class AffineError(FormatError):
    """Affine that cannot be used or inverted"""


def apply_affine(aff, pts):
    """Transform points `pts` by homogeneous affine `aff`

    The last axis of `pts` holds the coordinates.  For a (4, 4) `aff` that
    axis has length 3 and the result is ``pts @ aff[:3, :3].T + aff[:3, 3]``.

    Parameters
    ----------
    aff : (N, N) array-like
        homogeneous affine
    pts : (..., N-1) array-like
        points, coordinates in the last axis

    Returns
    -------
    transformed_pts : (..., N-1) array

    Examples
    --------
    >>> aff = np.array([[0,2,0,10],[3,0,0,11],[0,0,4,12],[0,0,0,1]])
    >>> apply_affine(aff, [1, 2, 3])
    array([14, 14, 24])
    >>> apply_affine(aff, [[1, 2, 3], [2, 3, 4]])
    array([[14, 14, 24],
           [16, 17, 28]])
    """
    aff = np.asarray(aff)
    pts = np.asarray(pts)
    shape = pts.shape
    pts = pts.reshape((-1, shape[-1]))
    # rzs == rotations, zooms, shears
    rzs = aff[:-1, :-1]
    trans = aff[:-1, -1]
    res = np.dot(pts, rzs.T) + trans[None, :]
    return res.reshape(shape)


def apply_vector(aff, vecs):
    """Transform direction vectors `vecs` by `aff`, ignoring translation

    >>> aff = np.diag([2., 3, 4, 1])
    >>> aff[:3, 3] = 10
    >>> apply_vector(aff, [1, 1, 1])
    array([2., 3., 4.])
    """
    aff = np.asarray(aff)
    vecs = np.asarray(vecs)
    return np.dot(vecs, aff[:-1, :-1].T)


def to_matvec(transform):
    """Split homogeneous `transform` into matrix and translation vector

    Examples
    --------
    >>> aff = np.diag([2, 3, 4, 1])
    >>> aff[:3,3] = [9, 10, 11]
    >>> to_matvec(aff)
    (array([[2, 0, 0],
           [0, 3, 0],
           [0, 0, 4]]), array([ 9, 10, 11]))
    """
    transform = np.asarray(transform)
    ndimin = transform.shape[0] - 1
    ndimout = transform.shape[1] - 1
    return transform[0:ndimin, 0:ndimout], transform[0:ndimin, ndimout]


def from_matvec(matrix, vector=None):
    """Build a homogeneous affine from `matrix` and optional `vector`

    Examples
    --------
    >>> from_matvec(np.diag([2., 3, 4]), [9, 10, 11])
    array([[ 2.,  0.,  0.,  9.],
           [ 0.,  3.,  0., 10.],
           [ 0.,  0.,  4., 11.],
           [ 0.,  0.,  0.,  1.]])
    """
    matrix = np.asarray(matrix)
    nin, nout = matrix.shape
    t = np.zeros((nin + 1, nout + 1), matrix.dtype)
    t[0:nin, 0:nout] = matrix
    t[nin, nout] = 1.0
    if vector is not None:
        t[0:nin, nout] = vector
    return t


def invert_affine(affine):
    """Inverse of (4, 4) `affine` as float64

    Raises
    ------
    AffineError
        if `affine` is singular

    Examples
    --------
    >>> invert_affine(np.diag([2., 4, 5, 1]))
    array([[0.5 , 0.  , 0.  , 0.  ],
           [0.  , 0.25, 0.  , 0.  ],
           [0.  , 0.  , 0.2 , 0.  ],
           [0.  , 0.  , 0.  , 1.  ]])
    """
    try:
        return np.linalg.inv(np.asarray(affine, dtype=np.float64))
    except np.linalg.LinAlgError:
        raise AffineError('Singular index to space affine')


def is_valid_affine(affine):
    """True if `affine` is a finite real (4, 4) matrix with bottom row [0 0 0 1]"""
    affine = np.asarray(affine)
    if affine.shape != (4, 4) or not np.isrealobj(affine):
        return False
    if not np.all(np.isfinite(affine)):
        return False
    return bool(np.all(affine[3] == [0, 0, 0, 1]))


def voxel_sizes(affine):
    """Euclidean lengths of the matrix columns of `affine`

    The distance in space moved by one step along each voxel axis.

    >>> voxel_sizes(np.diag([2., -3, 4, 1]))
    array([2., 3., 4.])
    """
    top_left = np.asarray(affine)[:-1, :-1]
    return np.sqrt(np.sum(top_left**2, axis=0))
