"""
Pydantic schemas for API responses.

Gateway notification endpoints reply with the gateway's own literal bodies
and have no schema here.
"""
from typing import Any, Dict

from pydantic import BaseModel, Field


class PaymentReturnResponse(BaseModel):
    """Response for the browser redirect leg of a payment."""

    status: str = Field(..., description="success or error")
    message: str = Field(..., description="Message shown to the paying customer")


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status")
    checks: Dict[str, Any] = Field(..., description="Individual health checks")
