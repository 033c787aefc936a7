"""
API Package

FastAPI application, dependencies and routes for the DocVerify service.
"""
