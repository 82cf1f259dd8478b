"""
Tests for the SQLVector Assistant.

Run: python -m pytest tests/ -v
"""
