"""Domain layer for Clinical Gateway.

This module contains the core gateway logic: identity resolution, filter
building, record normalization and the upstream guardrails. All domain code
is pure Python with no I/O.
"""
