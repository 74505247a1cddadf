"""
Top-level router for version 1 of the API.

This router aggregates the domain routers (rentals, lifecycle
transitions, export, staff, health) under a unified prefix.  When new
endpoints are added, update this file to include their routers.
"""

from fastapi import APIRouter

from .endpoints import export, health, lifecycle, rentals, staff


router = APIRouter()

router.include_router(rentals.router, prefix="/rentals", tags=["rentals"])
# Transition routes carry their own paths (/checkin, /return, ...).
router.include_router(lifecycle.router, tags=["lifecycle"])
router.include_router(export.router, prefix="/export", tags=["export"])
router.include_router(staff.router, prefix="/staff", tags=["staff"])
router.include_router(health.router, tags=["health"])
