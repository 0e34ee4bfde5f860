"""
Soft-delete engine test suite.

This package contains:
- unit/: Unit tests for individual components (temporary SQLite files)
- integration/: End-to-end engine scenarios and failure injection
"""
