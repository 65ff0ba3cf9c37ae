"""
Test Suite

This module contains all tests for the service request workflow backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures
    └── unit/               # Unit tests
        ├── __init__.py
        ├── test_engine/        # State machine, guards, rules, metrics
        ├── test_services/      # Service layer, dispatcher, scheduler
        ├── test_repositories/  # MongoDB repositories (mocked collections)
        └── test_utils/         # Utility tests

To run tests:
    pytest
    pytest backend/tests/unit/test_engine/
"""
