"""Adapters layer for Clinical Gateway.

This module contains adapters that interface with external systems.
Adapters implement Port interfaces defined in the domain layer: the TTL
cache and the platform transports.
"""
