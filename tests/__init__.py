"""
RENDIX Test Suite

This package contains all tests for the RENDIX backend.

Test Categories:
- unit: Fast, isolated tests
- integration: Tests that interact with the database or the HTTP API
- slow: Long-running tests

Run tests with:
    pytest                          # Run all tests
    pytest -m unit                  # Run only unit tests
    pytest -m integration           # Run only integration tests
    pytest -m "not slow"            # Skip slow tests
"""

__version__ = '1.0.0'
