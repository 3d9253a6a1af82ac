"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Request fields are deliberately loose: the domain validator owns field
rules and reports every problem at once, so the API only checks shape.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.models import BusinessTrialRecord, InteractionSignals, SubscriptionTier


class _CamelModel(BaseModel):
    """Accepts both snake_case and camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InteractionSignalsModel(_CamelModel):
    """Client-side form interaction counters (advisory bot detection)."""

    submission_time: int = Field(..., description="Epoch milliseconds at submit")
    form_load_time: int | None = Field(None, description="Epoch milliseconds at form load")
    mouse_movements: int | None = Field(None, ge=0)
    keyboard_events: int | None = Field(None, ge=0)
    field_focus_events: int | None = Field(None, ge=0)

    def to_domain(self) -> InteractionSignals:
        return InteractionSignals(
            submission_time=self.submission_time,
            form_load_time=self.form_load_time,
            mouse_movements=self.mouse_movements,
            keyboard_events=self.keyboard_events,
            field_focus_events=self.field_focus_events,
        )


class TrialSignupRequestModel(_CamelModel):
    """Request model for business trial signup."""

    business_name: str | None = Field(None, description="Business display name")
    phone_number: str | None = Field(
        None, description="Business phone number, E.164 preferred (e.g. +18186519003)"
    )
    subscription_tier: str = Field("free", description="One of free, basic, pro, enterprise")
    csrf_token: str | None = Field(None, description="Token from GET /v1/csrf-token")
    interaction: InteractionSignalsModel | None = None


class TrialResponse(BaseModel):
    """Response model for a created business trial."""

    message: str
    id: str
    owner_id: str
    name: str
    phone_number: str
    subscription_tier: SubscriptionTier
    trial_active: bool
    trial_expires_at: datetime
    created_at: datetime

    @classmethod
    def from_record(cls, record: BusinessTrialRecord) -> "TrialResponse":
        return cls(
            message="Business created successfully with trial plan",
            id=record.id,
            owner_id=record.owner_id,
            name=record.name,
            phone_number=record.phone_number,
            subscription_tier=record.subscription_tier,
            trial_active=record.trial_active,
            trial_expires_at=record.trial_expires_at,
            created_at=record.created_at,
        )


class CsrfTokenResponse(BaseModel):
    """Response model for an issued CSRF token."""

    csrf_token: str
    expires_in_seconds: int


class RejectionDetail(BaseModel):
    error: str
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: RejectionDetail | str
