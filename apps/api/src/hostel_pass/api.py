from fastapi import APIRouter

from hostel_pass.modules.auth import router as auth_router
from hostel_pass.modules.pass_requests import router as pass_requests_router
from hostel_pass.modules.pass_requests import staff_router as staff_pass_requests_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(pass_requests_router, prefix="/pass-requests", tags=["Pass Requests"])

api_router.include_router(
    staff_pass_requests_router,
    prefix="/staff/pass-requests",
    tags=["Staff - Pass Requests"],
)
