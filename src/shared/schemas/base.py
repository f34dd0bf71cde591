from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base Pydantic schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ErrorDetail(BaseSchema):
    """Error detail for a specific field."""

    field: str | None = None
    message: str


class SuccessResponse(BaseSchema, Generic[T]):
    """Standard success response wrapper."""

    success: bool = True
    data: T
    message: str | None = None


# Alias for cleaner API usage
ApiResponse = SuccessResponse


class ErrorResponse(BaseSchema):
    """Standard error response wrapper."""

    success: bool = False
    data: None = None
    message: str
    errors: list[ErrorDetail] = []


class BatchFailure(BaseSchema):
    """One item of a batch job that could not be processed."""

    item: str
    error: str


class BatchResult(BaseSchema, Generic[T]):
    """
    Outcome of a best-effort batch job.

    Items are processed one at a time; a failing item is recorded here and
    the job moves on. Callers must inspect ``failed`` rather than rely on an
    exception to learn about partial failure.
    """

    succeeded: list[T] = []
    skipped: list[str] = []
    failed: list[BatchFailure] = []

    @computed_field
    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @computed_field
    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @computed_field
    @property
    def failed_count(self) -> int:
        return len(self.failed)
