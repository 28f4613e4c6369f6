"""
Placeholders for the parts of the API that are announced but not built yet.
They answer 200 with a "coming soon" message and echo the caller's identifiers.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body

from backend.app.schemas.stubs import StubResponse

auth_router = APIRouter(prefix="/auth", tags=["auth"])
bookings_router = APIRouter(prefix="/bookings", tags=["bookings"])
customers_router = APIRouter(prefix="/customers", tags=["customers"])


def _identity(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    payload = payload or {}
    return {
        "phone": payload.get("phone"),
        "userType": payload.get("userType"),
    }


@auth_router.post("/register", response_model=StubResponse)
async def register(payload: Optional[Dict[str, Any]] = Body(default=None)):
    return StubResponse(message="Registration endpoint - coming soon!", data=_identity(payload))


@auth_router.post("/login", response_model=StubResponse)
async def login(payload: Optional[Dict[str, Any]] = Body(default=None)):
    return StubResponse(message="Login endpoint - coming soon!", data=_identity(payload))


@bookings_router.post("", response_model=StubResponse)
async def create_booking(payload: Optional[Dict[str, Any]] = Body(default=None)):
    return StubResponse(message="Create booking endpoint - coming soon!", data=payload)


@customers_router.get("/profile", response_model=StubResponse)
async def get_customer_profile():
    return StubResponse(message="Customer profile endpoint - coming soon!")
