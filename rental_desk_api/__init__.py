"""
Top-level package for the Rental Desk API.

This file makes ``rental_desk_api`` a Python package so that modules
within ``app`` can be imported using fully qualified names like
``rental_desk_api.app.main``.

The package provides no public exports; all functionality lives in
submodules under ``app``.
"""

__all__ = []
