"""
SocialX sync layer test suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (in-memory graph store, mocked HTTP transfer)
"""
