"""FastAPI application and routes."""
from .main import create_app
from .schemas import HealthCheckResponse, PaymentReturnResponse

__all__ = [
    "create_app",
    "HealthCheckResponse",
    "PaymentReturnResponse",
]
