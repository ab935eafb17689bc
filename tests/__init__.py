"""
Test suite for the order signing and placement client.

Run all tests from project root:
    pytest
    pytest tests/
    pytest tests/test_exchanges/

Run specific test file:
    pytest tests/test_validate.py
    pytest tests/test_exchanges/test_newdex.py
"""
