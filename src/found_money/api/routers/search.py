"""
Search Router

Endpoints that run the discovery sources for the authenticated user.
"""
from fastapi import APIRouter, Depends

from found_money.api.auth import get_current_profile
from found_money.api.dependencies import get_aggregator
from found_money.api.schemas import PropertySearchResponse, PropertyStats, SearchResponse
from found_money.models.profile import UserProfile
from found_money.pipeline import Aggregator
from found_money.sources.property import owner_name, property_stats

router = APIRouter(prefix="/search", tags=["search"])


@router.post("/all", response_model=SearchResponse)
async def search_all(
    profile: UserProfile = Depends(get_current_profile),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """
    Search every source concurrently. Source failures are reported in
    ``results.partial_errors``; the request itself still succeeds.
    """
    result = await aggregator.search_all(profile)
    return SearchResponse(message=result.summary_message(), results=result)


@router.post("/class-actions", response_model=SearchResponse)
async def search_class_actions(
    profile: UserProfile = Depends(get_current_profile),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """Match the user against open class-action settlements."""
    result = await aggregator.search_catalog(profile)
    return SearchResponse(message=result.summary_message(), results=result)


@router.post("/unclaimed-property", response_model=PropertySearchResponse)
async def search_unclaimed_property(
    profile: UserProfile = Depends(get_current_profile),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """
    Search the property registries of every state the user has lived in.
    A profile without a first and last name is rejected before any lookup.
    """
    owner_name(profile)
    result = await aggregator.search_property(profile)
    stats = PropertyStats(**property_stats(result.unclaimed_property))
    message = (
        f"Found {stats.total_properties} unclaimed properties "
        f"worth approximately ${stats.estimated_total:,.2f}"
    )
    return PropertySearchResponse(message=message, results=result, statistics=stats)
