"""Database layer for optionfolio."""

from optionfolio.db.repository import PortfolioRepository
from optionfolio.db.schema import create_schema

__all__ = ["PortfolioRepository", "create_schema"]
