# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Find the companion files of a volume from one of its filenames"""

import os
import pathlib

#: probed in order; the first existing file of each type wins
companion_exts = (
    ('header', ('.hdr', '.hdr.gz')),
    ('image', ('.img', '.imgz', '.img.gz')),
    ('mat', ('.mat',)),
    ('atlas', ('.atlas.xml',)),
    ('collection', ('.collection.xml',)),
)

#: compression suffixes that may follow an extension
compress_exts = ('.gz', '.bz2')


def _stringify_path(filepath):
    """Convert path-like `filepath` to a posix style string, expanding ``~``"""
    return pathlib.Path(filepath).expanduser().as_posix()


def _iendswith(whole, end):
    return whole.lower().endswith(end.lower())


def splitext_addext(filename, addexts=compress_exts):
    """Split ``/pth/fname.ext.gz`` into ``/pth/fname, .ext, .gz``

    where ``.gz`` may be any of the trailing suffixes `addexts`, matched
    without regard to case.

    Examples
    --------
    >>> splitext_addext('fname.ext.gz')
    ('fname', '.ext', '.gz')
    >>> splitext_addext('fname.ext')
    ('fname', '.ext', '')
    >>> splitext_addext('fname.IMG.GZ')
    ('fname', '.IMG', '.GZ')
    """
    filename = _stringify_path(filename)
    for ext in addexts:
        if _iendswith(filename, ext):
            extpos = -len(ext)
            filename, addext = filename[:extpos], filename[extpos:]
            break
    else:
        addext = ''
    # os.path.splitext() behaves unexpectedly when filename starts with '.'
    extpos = filename.rfind('.')
    if extpos < 0 or filename.strip('.') == '' or '/' in filename[extpos:]:
        root, ext = filename, ''
    else:
        root, ext = filename[:extpos], filename[extpos:]
    return (root, ext, addext)


def is_nifti_single(filename):
    """True if `filename` names a single file NIFTI (``.nii`` in the name)

    >>> is_nifti_single('/data/brain.nii.gz')
    True
    >>> is_nifti_single('/data/brain.hdr')
    False
    """
    return '.nii' in os.path.basename(_stringify_path(filename)).lower()


def _probe(root, exts):
    for ext in exts:
        for candidate in (root + ext, root + ext.upper()):
            if os.path.isfile(candidate):
                return candidate
    return None


def find_companions(filename):
    """Map of file type to existing path for the volume named by `filename`

    Parameters
    ----------
    filename : str or os.PathLike
        any one of the volume files, or their common root

    Returns
    -------
    files : dict
        keys ``header``, ``image``, ``mat``, ``atlas`` and ``collection``;
        values are path strings, or None if there is no such file.  A
        ``.nii`` file is both header and image.  Other companions share the
        root of `filename` and differ only in extension.
    """
    filename = _stringify_path(filename)
    root, ext, addext = splitext_addext(filename)
    files = dict.fromkeys(name for name, _ in companion_exts)
    if is_nifti_single(filename):
        if not os.path.isfile(filename):
            return files
        files['header'] = files['image'] = filename
        for name in ('atlas', 'collection'):
            files[name] = _probe(root, dict(companion_exts)[name])
        return files
    if ext.lower() == '.xml':
        root = os.path.splitext(root)[0]
    elif ext.lower() not in ('.hdr', '.img', '.imgz', '.mat', ''):
        # root contains a dot, not an extension
        root = root + ext
    for name, exts in companion_exts:
        files[name] = _probe(root, exts)
    return files
