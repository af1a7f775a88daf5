"""
Package: reporting
Description: Read-only queue status reporting.
"""
