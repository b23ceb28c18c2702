"""Run-scoped reference data shared by the sync steps."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ContactInfo:
    name: str | None = None
    email: str | None = None


@dataclass
class RunContext:
    """State that lives for exactly one sync run.

    Holds the owner and ticket label lookups, the contact name/email cache
    used to denormalize engagements, and the contact->company ids seen in
    the contact listing.
    """

    owners: dict[str, str] = field(default_factory=dict)
    owner_overrides: dict[str, str] = field(default_factory=dict)
    pipeline_labels: dict[str, str] = field(default_factory=dict)
    stage_labels: dict[str, str] = field(default_factory=dict)
    pipeline_overrides: dict[str, str] = field(default_factory=dict)
    stage_overrides: dict[str, str] = field(default_factory=dict)
    contacts: dict[str, ContactInfo] = field(default_factory=dict)
    contact_companies: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings) -> "RunContext":
        return cls(
            owner_overrides=dict(settings.owner_overrides),
            pipeline_overrides=dict(settings.ticket_pipeline_overrides),
            stage_overrides=dict(settings.ticket_stage_overrides),
        )

    def resolve_owner(self, owner_id: str | None) -> str | None:
        if not owner_id:
            return None
        return self.owners.get(owner_id) or self.owner_overrides.get(owner_id) or owner_id

    def resolve_owner_override(self, owner_id: str | None) -> str | None:
        if not owner_id:
            return None
        return self.owner_overrides.get(owner_id) or owner_id

    def resolve_pipeline(self, pipeline_id: str | None) -> str | None:
        if not pipeline_id:
            return None
        label = self.pipeline_labels.get(pipeline_id, pipeline_id)
        return self.pipeline_overrides.get(label, label)

    def resolve_stage(self, stage_id: str | None) -> str | None:
        if not stage_id:
            return None
        label = self.stage_labels.get(stage_id, stage_id)
        return self.stage_overrides.get(label, label)

    def remember_contact(self, *keys: str | None, name: str | None, email: str | None) -> None:
        info = ContactInfo(name=name, email=email)
        for key in keys:
            if key:
                self.contacts[key] = info

    def lookup_contact(self, contact_id: str | None) -> ContactInfo | None:
        if not contact_id:
            return None
        return self.contacts.get(contact_id)

    def remember_contact_company(self, contact_id: str, company_id: str) -> None:
        self.contact_companies.setdefault(contact_id, set()).add(company_id)
