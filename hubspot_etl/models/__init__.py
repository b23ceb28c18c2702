"""HubSpot mirror models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, ExtractedMixin, HubSpotSyncMixin
from .contact import Contact
from .company import Company
from .deal import Deal
from .ticket import Ticket
from .engagement import Communication, Email, Note
from .activity import (
    ACTIVITY_TYPES,
    DETAIL_ATTRS,
    Activity,
    ActivityAssociation,
    ActivityDetail,
    CallDetail,
    EmailDetail,
    MeetingDetail,
    NoteDetail,
    SmsDetail,
    TaskDetail,
)
from .association import ContactCompanyAssociation, ObjectAssociation, is_primary_label
from .history import ContactActivityTimeline, PropertyHistory

__all__ = [
    "Base",
    "UUIDMixin",
    "ExtractedMixin",
    "HubSpotSyncMixin",
    "Contact",
    "Company",
    "Deal",
    "Ticket",
    "Communication",
    "Email",
    "Note",
    "ACTIVITY_TYPES",
    "DETAIL_ATTRS",
    "Activity",
    "ActivityAssociation",
    "ActivityDetail",
    "CallDetail",
    "EmailDetail",
    "MeetingDetail",
    "NoteDetail",
    "SmsDetail",
    "TaskDetail",
    "ContactCompanyAssociation",
    "ObjectAssociation",
    "is_primary_label",
    "ContactActivityTimeline",
    "PropertyHistory",
]
