from pydantic import BaseModel, computed_field


class ReconciliationResult(BaseModel):
    """Outcome of a reconciliation run."""

    balances_examined: int
    balances_updated: int
    students_affected: list[str] = []

    @computed_field
    @property
    def updated(self) -> bool:
        return self.balances_updated > 0
