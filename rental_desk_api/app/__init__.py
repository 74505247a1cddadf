"""
Application package initializer.

This package contains the FastAPI entrypoint of the rental desk backend
and its submodules: ``core`` (configuration, logging, errors, the Google
Sheets store and sign-in), ``schemas`` (request bodies), ``services``
(registration, lifecycle transitions, history, export and staff logic)
and ``api`` (the versioned routers).
"""

from .main import app  # noqa: F401
