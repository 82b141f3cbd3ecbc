"""
GTS Registry Test Suite.

This package contains:
- unit/: Unit tests (no external services; files go to tmp_path)
"""
