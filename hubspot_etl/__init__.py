"""HubSpot CRM -> relational store incremental sync."""

__version__ = "0.1.0"
