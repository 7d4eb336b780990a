"""
Backend package for the Wimmel Welt API.

This package provides a FastAPI application for parent and caregiver accounts,
messaging and file uploads, with database, storage and queue abstractions that
run in memory for tests and against Postgres, S3 and Redis in production.
"""
