import logging

import pytest

from pydownloads.errors import MIB, OversizeError
from pydownloads.size_policy import (CAUTIOUS, MAX_SIZE, NORMAL, REJECTED, WARN_SIZE,
                                     check_size, classify_size)


@pytest.mark.parametrize('size,tier', [
    (None, NORMAL),
    (0, NORMAL),
    (WARN_SIZE, NORMAL),
    (WARN_SIZE + 1, CAUTIOUS),
    (199 * MIB, CAUTIOUS),
    (MAX_SIZE, CAUTIOUS),
    (MAX_SIZE + 1, REJECTED),
    (201 * MIB, REJECTED),
])
def test_classify_size(size, tier):
    assert classify_size(size) == tier


def test_thresholds_are_configurable():
    assert classify_size(11, warn_size=5, max_size=10) == REJECTED
    assert classify_size(6, warn_size=5, max_size=10) == CAUTIOUS
    assert classify_size(5, warn_size=5, max_size=10) == NORMAL


def test_check_size_rejects_oversize():
    with pytest.raises(OversizeError) as excinfo:
        check_size(201 * MIB, name='huge.zip')

    error = excinfo.value
    assert error.kind == 'oversize'
    assert error.size == 201 * MIB
    assert error.limit == MAX_SIZE
    assert 'too large' in error.detail
    assert '201.0 MB' in error.detail
    assert error.to_dict()['kind'] == 'oversize'


def test_check_size_warns_for_large_files(caplog):
    with caplog.at_level(logging.WARNING, logger='pydownloads.size_policy'):
        assert check_size(199 * MIB, name='big.zip') == CAUTIOUS
    assert 'big.zip' in caplog.text


def test_check_size_normal():
    assert check_size(1024) == NORMAL
    assert check_size(None) == NORMAL
