# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##

from .info import __version__
from .info import long_description as __doc__

__doc__ += """
Quickstart
==========

::

   import niftivol as nv

   hdr, vol = nv.load('my_file.nii')
   hdr, vol = nv.load('spm_file.img')

   value = vol.value_mm((10., -20., 5.))
   affine = vol.index2space

   nv.save(vol, 'my_file_copy.nii.gz')
"""

# module imports
from . import analyze as analyze
from . import errors as errors
from . import nifti1 as nifti1
from . import spm99analyze as spm99analyze
from . import storage as storage
from . import transforms as transforms
from . import volumearray as volumearray

# object imports
from .analyze import AnalyzeHeader
from .errors import (
    FormatError,
    RangeError,
    ReadOnlyVolumeError,
    ResourceError,
    UnsupportedTypeError,
    VolumeError,
)
from .nifti1 import Nifti1Header, Nifti1PairHeader, decode_header, encode_header, load_header
from .spm99analyze import SpmAnalyzeHeader
from .storage import DataType, make_volume_array
from .transforms import affine_policy, resolve_affine
from .volumearray import Interpolation, resample
from .volumefile import VolumeFile, VolumeStream, generate_header, load, save
