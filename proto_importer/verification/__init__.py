"""Verification passes for generated output trees."""

from .checkers import CommandChecker
from .structure import VerificationError, VerificationIssue, Verifier

__all__ = ["CommandChecker", "VerificationError", "VerificationIssue", "Verifier"]
