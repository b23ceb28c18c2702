"""HubSpot API gateway."""

from .client import HubSpotClient, HubSpotConfig, HubSpotError
from .objects import OBJECT_TYPES, ObjectType, get_object_type, plural, singular
from .results import AssociationDetails, GatewayResult, Page

__all__ = [
    "HubSpotClient",
    "HubSpotConfig",
    "HubSpotError",
    "OBJECT_TYPES",
    "ObjectType",
    "get_object_type",
    "plural",
    "singular",
    "AssociationDetails",
    "GatewayResult",
    "Page",
]
