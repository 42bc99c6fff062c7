"""Aggregate API router for all v1 endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from arstudio.api import training

api_router = APIRouter()
api_router.include_router(training.router, prefix="/training", tags=["training"])
