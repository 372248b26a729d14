"""
Test helper utilities for Bequalize testing.

This module provides reusable generators for synthetic sway orientations,
breathing signals and sensor packet streams.
"""
