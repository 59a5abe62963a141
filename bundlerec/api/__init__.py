"""FastAPI application module for BundleRec.

Contains the application factory, route handlers, structured logging and
in-process metrics for the bundle and recommendation endpoints.
"""
