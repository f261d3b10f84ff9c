"""
pretested-integration — integration test package marker.

File: tests/integration/__init__.py

Purpose
- Group the subprocess-level CLI tests that drive real git repositories.
"""
