"""
Module: storage
Description: Package initialization for the queue persistence layer.

This package contains the queue store implementation:
- dynamodb: DynamoDB queue table with conditional claim and outcome writes
"""

__all__ = []
