"""Enumerations for optionfolio."""

from enum import StrEnum


class MatchType(StrEnum):
    EXACT = "exact"
    NEAREST_BEFORE = "nearest-before"
    NEAREST_AFTER = "nearest-after"
    DERIVED = "derived"
    UNAVAILABLE = "unavailable"


class PriceSource(StrEnum):
    FEED = "feed"
    CSV = "csv"
    HISTORY = "history"
    DERIVED = "derived"


class TaxMergePolicy(StrEnum):
    """Which tax field absorbed a merge."""

    MANUAL_ADDITIONAL = "MANUAL_ADDITIONAL"
    MANUAL_EXTENDED = "MANUAL_EXTENDED"
    AUTO_EXTENDED = "AUTO_EXTENDED"


class SellingStatus(StrEnum):
    WAITING_PERIOD = "WAITING_PERIOD"
    SELLABLE = "SELLABLE"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


class GrantStatus(StrEnum):
    ACTIVE = "ACTIVE"
    PARTIALLY_SOLD = "PARTIALLY_SOLD"
    FULLY_SOLD = "FULLY_SOLD"


class EventType(StrEnum):
    GRANT = "GRANT"
    SALE = "SALE"
