"""
Module: auth
Description: Package initialization for authentication.

This package contains authentication components:
- api_key: Operator API key generation, hashing and validation
- authorizer: FastAPI dependencies guarding the queue endpoints

All authentication logic is centralized here for security and maintainability.
"""

__all__ = []
