"""Submission portal access control and modification review core."""

__version__ = "0.1.0"
