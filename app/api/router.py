"""
Cozy Connect — Main API Router

Aggregates all sub-routers so that ``app.main`` can mount the entire API
surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import feedback, matches, profile, profiles, upload

router = APIRouter()

router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(profile.router, prefix="/profile", tags=["Profile"])
router.include_router(upload.router, prefix="/upload", tags=["Upload"])
router.include_router(feedback.router, prefix="/feedback", tags=["Feedback"])
