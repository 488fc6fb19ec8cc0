"""
Shared API dependencies.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from circles.pipeline import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    """The pipeline built during app startup."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Intake pipeline is not ready")
    return pipeline
