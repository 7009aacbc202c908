# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Unit quaternion routines for the NIFTI qform

Quaternions are 4 element sequences ``w, x, y, z``; NIFTI stores only the
vector part ``b, c, d`` and recovers ``a`` (``w``) assuming a unit, positive
``w`` quaternion.
"""

import math

import numpy as np

FLOAT_EPS = np.finfo(np.float64).eps


def fillpositive(xyz, w2_thresh=None):
    """Compute unit quaternion from last 3 values

    Parameters
    ----------
    xyz : iterable
        iterable containing 3 values, corresponding to quaternion x, y, z
    w2_thresh : None or float, optional
        threshold below which ``1 - |xyz|**2`` is reported as an error.  None
        (the default) clamps any negative value to zero, so that rounding in
        float32 stored values never fails.

    Returns
    -------
    wxyz : array shape (4,)
         Full 4 values of quaternion

    Examples
    --------
    >>> wxyz = fillpositive([0,0,0])
    >>> np.all(wxyz == [1, 0, 0, 0])
    True
    >>> wxyz = fillpositive([1,0,0])
    >>> np.all(wxyz == [0, 1, 0, 0])
    True

    Slightly too long vectors clamp to ``w == 0``:

    >>> float(fillpositive([0.8, 0.6, 0.0001])[0])
    0.0
    """
    if len(xyz) != 3:
        raise ValueError('xyz should have length 3')
    x, y, z = (float(v) for v in xyz)
    w2 = 1.0 - (x * x + y * y + z * z)
    if w2 < 0:
        if w2_thresh is not None and w2 < w2_thresh:
            raise ValueError(f'w2 should be positive, but is {w2:e}')
        w = 0.0
    else:
        w = math.sqrt(w2)
    return np.array((w, x, y, z))


def quat2mat(q):
    """Calculate rotation matrix corresponding to quaternion

    Parameters
    ----------
    q : 4 element array-like
        ``w, x, y, z``

    Returns
    -------
    M : (3,3) array
      Rotation matrix corresponding to input quaternion *q*

    Notes
    -----
    A quaternion of length near zero gives the identity.

    Examples
    --------
    >>> M = quat2mat([1, 0, 0, 0]) # Identity quaternion
    >>> np.allclose(M, np.eye(3))
    True
    >>> M = quat2mat([0, 1, 0, 0]) # 180 degree rotn around axis 0
    >>> np.allclose(M, np.diag([1, -1, -1]))
    True
    """
    w, x, y, z = (float(v) for v in q)
    Nq = w * w + x * x + y * y + z * z
    if Nq < FLOAT_EPS:
        return np.eye(3)
    s = 2.0 / Nq
    X = x * s
    Y = y * s
    Z = z * s
    wX = w * X
    wY = w * Y
    wZ = w * Z
    xX = x * X
    xY = x * Y
    xZ = x * Z
    yY = y * Y
    yZ = y * Z
    zZ = z * Z
    return np.array(
        [
            [1.0 - (yY + zZ), xY - wZ, xZ + wY],
            [xY + wZ, 1.0 - (xX + zZ), yZ - wX],
            [xZ - wY, yZ + wX, 1.0 - (xX + yY)],
        ]
    )


def mat2quat(M):
    """Unit quaternion, ``w >= 0``, for orthogonal rotation matrix `M`

    Uses the eigenvector of the symmetric matrix built from `M` with the
    largest eigenvalue, which tolerates small errors in orthogonality.

    Examples
    --------
    >>> q = mat2quat(np.eye(3)) # Identity rotation
    >>> np.allclose(q, [1, 0, 0, 0])
    True
    >>> q = mat2quat(np.diag([1, -1, -1]))
    >>> np.allclose(q, [0, 1, 0, 0]) # 180 degree rotn around axis 0
    True
    """
    Qxx, Qyx, Qzx, Qxy, Qyy, Qzy, Qxz, Qyz, Qzz = np.asarray(M, dtype=np.float64).flat
    K = (
        np.array(
            [
                [Qxx - Qyy - Qzz, 0, 0, 0],
                [Qyx + Qxy, Qyy - Qxx - Qzz, 0, 0],
                [Qzx + Qxz, Qzy + Qyz, Qzz - Qxx - Qyy, 0],
                [Qyz - Qzy, Qzx - Qxz, Qxy - Qyx, Qxx + Qyy + Qzz],
            ]
        )
        / 3.0
    )
    vals, vecs = np.linalg.eigh(K)
    # Select largest eigenvector, reorder to w,x,y,z quaternion
    q = vecs[[3, 0, 1, 2], np.argmax(vals)]
    if q[0] < 0:
        q *= -1
    return q
