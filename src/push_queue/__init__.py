"""
Package: push_queue
Description: Reliable delivery queue for score and note push webhooks.

Queued webhooks are selected by priority and schedule, claimed
atomically, dispatched over HTTP and retried with exponential backoff.
"""

__version__ = "0.3.0"
