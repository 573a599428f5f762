"""
Test suite for the wildfire shelter guide backend.

Run tests (from the repository root):
    python -m pytest

Run a specific test file:
    python -m pytest backend/tests/test_route_normalizer.py
"""
