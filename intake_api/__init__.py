"""Waitlist collection and presigned document intake API."""

__version__ = "0.1.0"
