#!/usr/bin/env python3
"""
API Routes

FastAPI route modules for the DocVerify API: authentication, AI
verification, documents, administration and health checks.
"""

from . import admin, auth, documents, health, verification

__all__ = [
    "admin",
    "auth",
    "documents",
    "health",
    "verification",
]
