"""Request models validated at the engine boundary."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from corevalues.config import settings


class ValueIn(BaseModel):
    """One card supplied by the caller instead of the built-in catalog."""

    model_config = {"extra": "forbid", "frozen": True}

    id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)


class StartSessionRequest(BaseModel):
    """What the caller sends to start a new sorting session."""

    model_config = {"extra": "forbid"}

    target_core_values: int = Field(default=settings.NUM_CORE_VALUES, ge=1, le=10)
    max_cards: int = Field(default=settings.MAX_CARDS, ge=1)
    values: list[ValueIn] | None = None  # None deals from the catalog

    @field_validator("values")
    @classmethod
    def _unique_ids(cls, values: list[ValueIn] | None) -> list[ValueIn] | None:
        if values is None:
            return values
        ids = [v.id for v in values]
        if len(ids) != len(set(ids)):
            raise ValueError("value ids must be unique")
        return values


class ValueReason(BaseModel):
    """Why the user kept one final value."""

    model_config = {"extra": "forbid"}

    card_id: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class ReasoningRequest(BaseModel):
    """What the caller sends when the user finishes giving reasons."""

    model_config = {"extra": "forbid"}

    reasons: list[ValueReason] = Field(default_factory=list)

    def by_card(self) -> dict[str, str | None]:
        return {r.card_id: r.reason for r in self.reasons}
