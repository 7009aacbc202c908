"""Define static niftivol metadata

This file is read without importing niftivol, so it cannot import niftivol
or use relative imports.
"""

__version__ = '0.1.0'

long_description = """
Read and write access to volumetric medical imaging files: NIfTI-1 single
(``.nii``) and pair (``.hdr`` / ``.img``) files, Analyze 7.5 and the SPM
dialect of Analyze with its ``.mat`` companion.

Headers are decoded with byte order and format detection.  The index to
space affine is resolved from the NIfTI qform or sform, the SPM matrix or
SPM origin, or the voxel spacings.  Voxels are exposed through volume arrays
giving 5D indexed access, nearest neighbour and trilinear sampling in voxel
and millimetre space, and typed storage from 8-bit integers to doubles and
packed RGB.
"""
