"""Base adapter interface for price file ingestion."""

from abc import ABC, abstractmethod
from pathlib import Path

from optionfolio.models.prices import PriceRecord


class BasePriceAdapter(ABC):
    """Abstract base class for price file adapters."""

    @abstractmethod
    def parse(self, file_path: Path) -> list[PriceRecord]:
        """Parse a file and return its price records."""
        ...

    @abstractmethod
    def validate(self, records: list[PriceRecord]) -> list[str]:
        """Validate parsed records. Returns a list of validation error messages."""
        ...
