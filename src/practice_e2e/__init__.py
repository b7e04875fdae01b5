"""End-to-end harness for the Practice Interviews auth and rate-limit flows."""

__version__ = "1.0.0"
