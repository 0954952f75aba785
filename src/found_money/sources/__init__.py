"""Discovery sources: settlement catalog, unclaimed-property registries, email."""

from .base import BaseSource
from .catalog import CatalogSource, Settlement, load_catalog
from .email import EmailClassifier, EmailSource, GmailClient, extract_email_content
from .property import (
    HttpJurisdictionLookup,
    JurisdictionLookup,
    PropertySource,
    SampleJurisdictionLookup,
    property_stats,
    supported_jurisdictions,
)
from .registry import SourceRegistry

__all__ = [
    "BaseSource",
    "CatalogSource",
    "EmailClassifier",
    "EmailSource",
    "GmailClient",
    "HttpJurisdictionLookup",
    "JurisdictionLookup",
    "PropertySource",
    "SampleJurisdictionLookup",
    "Settlement",
    "SourceRegistry",
    "extract_email_content",
    "load_catalog",
    "property_stats",
    "supported_jurisdictions",
]
