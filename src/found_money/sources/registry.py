"""Registry for discovering and instantiating sources."""

from typing import Type

from found_money.models.candidate import SourceType

from .base import BaseSource
from .catalog import CatalogSource
from .email import EmailSource
from .property import PropertySource


class SourceRegistry:
    """Maps each discovery channel to its adapter class."""

    _sources: dict[SourceType, Type[BaseSource]] = {
        SourceType.CATALOG: CatalogSource,
        SourceType.PROPERTY: PropertySource,
        SourceType.EMAIL: EmailSource,
    }

    @classmethod
    def get(cls, source: str | SourceType, **kwargs) -> BaseSource:
        """Get a source instance. kwargs passed to the source __init__."""
        try:
            key = SourceType(source.lower())
        except ValueError:
            key = None
        source_cls = cls._sources.get(key) if key else None
        if not source_cls:
            raise ValueError(f"Unknown source: {source}. Available: {cls.available_sources()}")
        return source_cls(**kwargs)

    @classmethod
    def available_sources(cls) -> list[str]:
        return [s.value for s in cls._sources]
