"""
Module: utils
Description: Package initialization for utility functions.

Shared helpers used throughout the Push Queue API:
- logger: Structured logging configuration and helpers
- metrics: CloudWatch metrics publishing
- clock: Injectable time source and timestamp formatting
"""

__all__ = []
