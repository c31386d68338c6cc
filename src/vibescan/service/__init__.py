"""HTTP service exposing vibescan over FastAPI."""

from vibescan.service.app import create_app, run_service

__all__ = ["create_app", "run_service"]
