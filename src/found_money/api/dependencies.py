"""
FastAPI Dependencies

Provides dependency injection for settings, stores and services.
"""
from fastapi import Depends

from found_money.config import Settings
from found_money.config import get_settings as _load_settings
from found_money.forms import DocumentStore, FormFiller
from found_money.llm import StructuredLLM
from found_money.pipeline import Aggregator
from found_money.sources.email import GmailClient
from found_money.store import ClaimFormStore, MoneyFoundStore, ProfileStore


def get_settings() -> Settings:
    """Settings dependency. Overridden by create_app() with the app's settings."""
    return _load_settings()


def get_profile_store(settings: Settings = Depends(get_settings)) -> ProfileStore:
    return ProfileStore(settings.database_path)


def get_money_store(settings: Settings = Depends(get_settings)) -> MoneyFoundStore:
    return MoneyFoundStore(settings.database_path)


def get_claim_form_store(settings: Settings = Depends(get_settings)) -> ClaimFormStore:
    return ClaimFormStore(settings.database_path)


def get_document_store(settings: Settings = Depends(get_settings)) -> DocumentStore:
    return DocumentStore(settings.documents_dir)


def get_gmail_client(settings: Settings = Depends(get_settings)) -> GmailClient:
    return GmailClient.from_settings(settings)


def get_form_filler(settings: Settings = Depends(get_settings)) -> FormFiller:
    return FormFiller(StructuredLLM.from_settings(settings))


def get_aggregator(
    settings: Settings = Depends(get_settings),
    store: MoneyFoundStore = Depends(get_money_store),
    profile_store: ProfileStore = Depends(get_profile_store),
) -> Aggregator:
    return Aggregator.from_settings(settings, store=store, profile_store=profile_store)
