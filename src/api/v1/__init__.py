"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import admin, auth, users
from src.schemas.common import ErrorResponse

router = APIRouter(
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid credentials"},
        500: {"model": ErrorResponse, "description": "Internal error"},
    },
)

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"],
    responses={403: {"model": ErrorResponse, "description": "Role not granted"}},
)
