"""
Package: delivery
Description: Webhook delivery pipeline for the Push Queue API.

Provides selection of due queue items, score/note bundling, push
dispatch, retry decisions and the batch runner tying them together.
"""
