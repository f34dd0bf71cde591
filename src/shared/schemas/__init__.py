from src.shared.schemas.base import (
    BaseSchema,
    BatchFailure,
    BatchResult,
    SuccessResponse,
    ErrorResponse,
    ErrorDetail,
)

__all__ = [
    "BaseSchema",
    "BatchFailure",
    "BatchResult",
    "SuccessResponse",
    "ErrorResponse",
    "ErrorDetail",
]
