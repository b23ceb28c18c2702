"""Sync result schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SyncResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = []

    def merge(self, other: "SyncResult") -> "SyncResult":
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped
        self.errors.extend(other.errors)
        return self


class StepOutcome(BaseModel):
    name: str
    critical: bool = False
    ok: bool = True
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    error: str | None = None


class RunResult(BaseModel):
    success: bool = True
    steps: list[StepOutcome] = []
    errors: list[str] = []
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def step(self, name: str) -> StepOutcome | None:
        for outcome in self.steps:
            if outcome.name == name:
                return outcome
        return None
