# emacs: -*- mode: python-mode; py-indent-offset: 4; indent-tabs-mode: nil -*-
# vi: set ft=python sts=4 ts=4 sw=4 et:
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
#
#   See COPYING file distributed along with the niftivol package for the
#   copyright and license terms.
#
### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ### ##
import numpy as np
import pytest


@pytest.fixture(scope='session', autouse=True)
def legacy_printoptions():
    # numpy 2 prints scalars as np.float64(1.0); doctests expect plain values
    np.set_printoptions(legacy='1.21')
