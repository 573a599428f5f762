"""
Shared fixtures. FLASK_ENV is pinned before app.py is imported so the
testing config (no rate limits, no provider keys) applies.
"""
import os

os.environ['FLASK_ENV'] = 'testing'

import pytest

from utils.geo import Coordinate


@pytest.fixture
def pohang_origin():
    """Near Yeonam-dong community centre, north-east Pohang"""
    return Coordinate(36.0805, 129.4040)


@pytest.fixture
def pohang_shelter():
    """Pohang information high school"""
    return Coordinate(36.0645, 129.3775)
