"""
Unit Test Layer Configuration

Pure functions and models only: no I/O, no event loop.

Usage:
    pytest tests/unit -v
"""
import os
import sys

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
