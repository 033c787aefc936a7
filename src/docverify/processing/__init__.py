"""
Processing Package

Per-file verification pipeline for uploaded documents.
"""

from .pipeline import FileVerification, VerificationError, VerificationPipeline

__all__ = ["FileVerification", "VerificationError", "VerificationPipeline"]
