"""
API v1 routes.
"""

from fastapi import APIRouter

from crossproof.api.v1 import validations

router = APIRouter()

router.include_router(validations.router, prefix="/validations", tags=["Validations"])
