"""Evolution snapshot and progress models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

NOTE_BULLET = "• "


class PortfolioTotals(BaseModel):
    total_portfolio_value: Decimal = Decimal("0")
    total_unrealized_gain: Decimal = Decimal("0")
    total_realized_gain: Decimal = Decimal("0")
    total_options_count: int = Field(default=0, ge=0)
    active_options_count: int = Field(default=0, ge=0)


class EvolutionSnapshot(PortfolioTotals):
    id: int | None = None
    snapshot_date: date
    notes: str | None = None

    @property
    def note_lines(self) -> list[str]:
        if not self.notes:
            return []
        return [line for line in self.notes.split("\n") if line]


class ProgressEvent(BaseModel):
    """Progress of a long-running operation, yielded to the caller."""

    stage: str
    current: int = Field(ge=0)
    total: int = Field(ge=0)
    message: str = ""

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 100
        return int(self.current * 100 / self.total)
