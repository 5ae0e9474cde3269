"""
Core package for shared utilities.

Holds configuration and logging used across the storage, service and API
layers.
"""
