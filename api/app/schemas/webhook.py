"""Grafana webhook envelope and webhook response schemas.

Grafana (and Grafana-like senders) are not strict about key casing or value
types, so these models accept keys in any case and coerce odd values instead
of rejecting them.
"""

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models import CaseSeverity, CaseStatus
from app.schemas.common import BaseSchema

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def match_keys(data: Any, model: type[BaseModel]) -> Any:
    """Rename keys of ``data`` to the model's field aliases, ignoring case."""
    if not isinstance(data, dict):
        return data
    known: dict[str, str] = {}
    for name, field in model.model_fields.items():
        target = field.alias or name
        known[name.lower()] = target
        known[target.lower()] = target
    return {known.get(str(key).lower(), key): value for key, value in data.items()}


def string_map(value: Any) -> dict[str, str]:
    """Coerce a label/annotation map to ``dict[str, str]``; anything else becomes empty."""
    if not isinstance(value, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp; return None for blanks, garbage and Grafana's zero time."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = _FRACTION_RE.sub(r"\1", value.strip()).replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.year <= 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GrafanaAlert(BaseModel):
    """A single alert inside a Grafana webhook delivery."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = Field(default="firing", description="firing or resolved")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    starts_at: datetime | None = Field(default=None, alias="startsAt")
    ends_at: datetime | None = Field(default=None, alias="endsAt")
    generator_url: str | None = Field(default=None, alias="generatorURL")
    fingerprint: str | None = None
    silence_url: str | None = Field(default=None, alias="silenceURL")
    dashboard_url: str | None = Field(default=None, alias="dashboardURL")
    panel_url: str | None = Field(default=None, alias="panelURL")
    values: dict[str, Any] | None = None
    value_string: str | None = Field(default=None, alias="valueString")

    @model_validator(mode="before")
    @classmethod
    def _match_keys(cls, data: Any) -> Any:
        return match_keys(data, cls)

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _coerce_maps(cls, value: Any) -> dict[str, str]:
        return string_map(value)

    @field_validator("starts_at", "ends_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return str(value).strip().lower() if value else "firing"

    @field_validator(
        "fingerprint",
        "generator_url",
        "silence_url",
        "dashboard_url",
        "panel_url",
        "value_string",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("values", mode="before")
    @classmethod
    def _coerce_values(cls, value: Any) -> dict[str, Any] | None:
        return value if isinstance(value, dict) else None

    @property
    def is_resolved(self) -> bool:
        return self.status == "resolved"


class GrafanaWebhookPayload(BaseModel):
    """Envelope of a Grafana unified alerting webhook delivery.

    ``alerts`` is kept raw so that one malformed alert does not reject the
    whole delivery; each item is validated on its own.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    receiver: str | None = None
    status: str | None = None
    org_id: int | None = Field(default=None, alias="orgId")
    alerts: list[Any] = Field(default_factory=list)
    group_labels: dict[str, str] = Field(default_factory=dict, alias="groupLabels")
    common_labels: dict[str, str] = Field(default_factory=dict, alias="commonLabels")
    common_annotations: dict[str, str] = Field(default_factory=dict, alias="commonAnnotations")
    external_url: str | None = Field(default=None, alias="externalURL")
    version: str | None = None
    group_key: str | None = Field(default=None, alias="groupKey")
    truncated_alerts: int | None = Field(default=None, alias="truncatedAlerts")
    title: str | None = None
    state: str | None = None
    message: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _match_keys(cls, data: Any) -> Any:
        return match_keys(data, cls)

    @field_validator("group_labels", "common_labels", "common_annotations", mode="before")
    @classmethod
    def _coerce_maps(cls, value: Any) -> dict[str, str]:
        return string_map(value)

    @field_validator("alerts", mode="before")
    @classmethod
    def _default_alerts(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("org_id", "truncated_alerts", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> int | None:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator("receiver", "status", "external_url", "version", "group_key", "title", "state", "message", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)


# =============================================================================
# Responses
# =============================================================================


class WebhookCaseInfo(BaseSchema):
    """Summary of a case touched by a webhook delivery."""

    case_id: int = Field(..., description="Case primary key")
    case_number: str = Field(..., description="Human-readable case number", examples=["CASE-2026-00042"])
    alert_fingerprint: str | None = Field(None, description="Alert fingerprint")
    status: CaseStatus
    severity: CaseSeverity
    assigned_user_ids: list[int] = Field(default_factory=list)
    assigned_team_ids: list[int] = Field(default_factory=list)
    created_at: datetime


class WebhookResponse(BaseSchema):
    """Result of a webhook delivery."""

    success: bool = True
    message: str
    cases: list[WebhookCaseInfo] = Field(default_factory=list)
    count: int = 0


class WebhookErrorResponse(BaseSchema):
    """Structured webhook failure."""

    success: bool = False
    error: str
