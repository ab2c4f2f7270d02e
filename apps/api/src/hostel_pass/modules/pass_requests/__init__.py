"""
Pass Requests Module

Handles outing and home visit requests from submission to expiry:
routing to reviewers, role-gated approvals, and the cleanup sweep.
"""

from hostel_pass.modules.pass_requests.jobs import register_pass_request_jobs
from hostel_pass.modules.pass_requests.models import (
    DecisionAction,
    PassRequest,
    PassStatus,
    PassType,
    StorageLayout,
)
from hostel_pass.modules.pass_requests.router import router
from hostel_pass.modules.pass_requests.staff_router import router as staff_router

__all__ = [
    "DecisionAction",
    "PassRequest",
    "PassStatus",
    "PassType",
    "StorageLayout",
    "register_pass_request_jobs",
    "router",
    "staff_router",
]
