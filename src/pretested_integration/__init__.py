"""
pretested-integration — package root

File: src/pretested_integration/__init__.py

Purpose
- Merge a candidate commit into a protected integration branch only after a
  build validates it, then push the result and delete the source branch.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
