"""Learner-side client for timed quiz attempts."""

__version__ = "0.3.0"
