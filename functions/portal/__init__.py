"""
HTTP service package for the volunteer portal.

This package provides a FastAPI application and document store
abstractions so the profile, team and messaging core can run as a
long-running service as well as behind Firebase Cloud Functions.
"""
