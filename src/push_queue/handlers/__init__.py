"""
Module: handlers
Description: Package initialization for API endpoint handlers.

This package contains FastAPI route handlers for the Push Queue API:
- queue: Queue processing and status endpoints

Handlers use dependency injection for the queue store, dispatcher,
clock and metrics client.
"""

__all__ = []
