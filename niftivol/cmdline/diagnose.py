#!python
# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
"""Print header diagnostics for NIFTI, Analyze and SPM volume files"""

import sys
from argparse import ArgumentParser

import numpy as np

import niftivol as nv
from niftivol.errors import FormatError
from niftivol.filename_parser import find_companions
from niftivol.nifti1 import header_class_for, load_header
from niftivol.openers import ImageOpener
from niftivol.transforms import affine_policy, resolve_affine


def _header_file(fname):
    companions = find_companions(fname)
    return companions['header'] or fname, companions['mat']


def diagnose_file(fname, spm=False, show_affine=False, stream=None):
    """Print check output for the header of `fname` to `stream`

    Returns
    -------
    clean : bool
        True if the header passed every check
    """
    if stream is None:
        stream = sys.stdout
    hdr_fname, mat_fname = _header_file(fname)
    with ImageOpener(hdr_fname) as fobj:
        binaryblock = fobj.read(nv.AnalyzeHeader.sizeof_hdr)
    if len(binaryblock) < nv.AnalyzeHeader.sizeof_hdr:
        print(f'Header for "{fname}" is truncated at {len(binaryblock)} bytes', file=stream)
        return False
    klass = header_class_for(binaryblock, spm)
    try:
        result = klass.diagnose_binaryblock(binaryblock)
    except FormatError as err:
        print(f'Cannot read header for "{fname}": {err}', file=stream)
        return False
    if len(result):
        print(f'Picky header check output for "{fname}"\n', file=stream)
        print(result + '\n', file=stream)
    else:
        print(f'Header for "{fname}" is clean', file=stream)
    if show_affine:
        with ImageOpener(hdr_fname) as fobj:
            hdr = load_header(fobj, spm, check=False)

        def lookup():
            return mat_fname

        policy = affine_policy(hdr, lookup)
        affine = resolve_affine(hdr, lookup)
        print(f'{klass.__name__} affine from {policy}:', file=stream)
        print(np.array2string(affine, precision=4, suppress_small=True), file=stream)
    return not len(result)


def main(args=None):
    """Check headers of the files named in `args`"""
    parser = ArgumentParser(description=__doc__)
    parser.add_argument('--version', action='version', version=f'%(prog)s {nv.__version__}')
    parser.add_argument(
        '-s',
        '--spm',
        action='store_true',
        help='read headers without a NIFTI magic as SPM Analyze',
    )
    parser.add_argument(
        '-a',
        '--affine',
        action='store_true',
        help='also print the index to space affine and how it was found',
    )
    parser.add_argument('files', nargs='*', metavar='FILE', help='volume file names')

    args = parser.parse_args(args=args)

    for fname in args.files:
        diagnose_file(fname, args.spm, args.affine)
