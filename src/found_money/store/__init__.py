"""Local storage for profiles, money-found records, claim forms and score cache."""

from found_money.store.claim_forms import ClaimFormStore
from found_money.store.profile_store import EmailCredentials, ProfileStore
from found_money.store.score_cache import ScoreCacheStore
from found_money.store.sqlite_store import MoneyFoundStore, SearchRunRecord, SQLiteStore

__all__ = [
    "ClaimFormStore",
    "EmailCredentials",
    "MoneyFoundStore",
    "ProfileStore",
    "ScoreCacheStore",
    "SearchRunRecord",
    "SQLiteStore",
]
