"""
Test suite for the sell-out reconciliation backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_merge_service.py -v
"""
