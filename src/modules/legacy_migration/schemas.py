from pydantic import BaseModel, computed_field

from src.shared.schemas import BatchFailure


class MigrationResult(BaseModel):
    """Outcome of migrating legacy balances."""

    migrated: int = 0
    skipped: int = 0
    failed: list[BatchFailure] = []

    @computed_field
    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @computed_field
    @property
    def success(self) -> bool:
        return self.migrated > 0
