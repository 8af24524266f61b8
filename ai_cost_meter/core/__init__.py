"""
Core modules for AI Cost Meter.

This package contains the usage and pricing schema, cost calculation,
markup resolution, and pricing catalog synchronization.
"""
