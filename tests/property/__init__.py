# tests/property/__init__.py
"""Property-based tests for harperdb-connector.

Property-based testing validates invariants that must hold for ALL inputs,
not just the specific examples we think of: payload normalization, search
command construction, and batch ordering.
"""
