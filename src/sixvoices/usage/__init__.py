"""Usage accounting and tier validation."""

from .ledger import AdDisplay, MeetingAccess, TierInfo, UsageLedger, UsageRecord, ad_display_due

__all__ = [
    "AdDisplay",
    "MeetingAccess",
    "TierInfo",
    "UsageLedger",
    "UsageRecord",
    "ad_display_due",
]
