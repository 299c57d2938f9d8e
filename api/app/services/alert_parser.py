"""Tolerant parsing of Grafana webhook deliveries.

Turns raw request bodies into ``GrafanaWebhookPayload`` envelopes and each raw
alert into a ``ParsedAlert`` carrying everything case creation needs.
Malformed numeric or timestamp fields degrade to ``None``; only an unreadable
envelope or an alert with no usable identity is an error.
"""

import hashlib
import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

from pydantic import ValidationError

from app.exceptions import AlertParseError, WebhookProcessingException
from app.models import CaseCategory, CaseSeverity
from app.schemas.webhook import GrafanaAlert, GrafanaWebhookPayload

if TYPE_CHECKING:
    from app.models import RuleAssignment


MAX_TITLE_LENGTH = 500

RULE_UID_LABELS = ("rule_id", "__alert_rule_uid__", "alertuid", "rule_uid")

_RULE_PATH_RE = re.compile(r"/alerting/grafana/([^/]+)(?:/view)?/?$")
_VALUE_STRING_RE = re.compile(r"value=([-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)")

SEVERITY_LABELS = {
    "critical": CaseSeverity.CRITICAL,
    "crit": CaseSeverity.CRITICAL,
    "emergency": CaseSeverity.CRITICAL,
    "page": CaseSeverity.CRITICAL,
    "p1": CaseSeverity.CRITICAL,
    "1": CaseSeverity.CRITICAL,
    "high": CaseSeverity.HIGH,
    "major": CaseSeverity.HIGH,
    "error": CaseSeverity.HIGH,
    "p2": CaseSeverity.HIGH,
    "2": CaseSeverity.HIGH,
    "medium": CaseSeverity.MEDIUM,
    "warning": CaseSeverity.MEDIUM,
    "warn": CaseSeverity.MEDIUM,
    "p3": CaseSeverity.MEDIUM,
    "3": CaseSeverity.MEDIUM,
    "low": CaseSeverity.LOW,
    "minor": CaseSeverity.LOW,
    "info": CaseSeverity.LOW,
    "p4": CaseSeverity.LOW,
    "4": CaseSeverity.LOW,
}

CATEGORY_ALIASES = {
    "QUALITY_ISSUE": CaseCategory.QUALITY,
    "FRAUD_ALERT": CaseCategory.FRAUD,
}


@dataclass
class ParsedAlert:
    """One alert from a delivery, normalised for case handling."""

    fingerprint: str
    status: str
    alert_id: str
    rule_uid: str | None
    labels: dict[str, str]
    annotations: dict[str, str]
    severity: CaseSeverity | None = None
    category: CaseCategory | None = None
    value: float | None = None
    threshold: float | None = None
    message: str | None = None
    summary: str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    generator_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_resolved(self) -> bool:
        return self.status == "resolved"

    @property
    def alertname(self) -> str | None:
        return self.labels.get("alertname")

    @property
    def environment(self) -> str | None:
        return self.labels.get("environment") or self.labels.get("env")

    @property
    def service(self) -> str | None:
        return self.labels.get("service") or self.labels.get("job")

    @property
    def instance(self) -> str | None:
        return self.labels.get("instance")


# =============================================================================
# Envelope
# =============================================================================


def parse_envelope(body: bytes | str) -> GrafanaWebhookPayload:
    """
    Read a webhook body as a Grafana alert envelope.

    A legacy single-alert body (alert fields at the top level, no ``alerts``
    list) is wrapped into a one-alert envelope.

    Args:
        body: Raw request body

    Returns:
        Validated envelope; ``alerts`` still holds raw items

    Raises:
        WebhookProcessingException: If the body is not a usable envelope
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookProcessingException("Webhook payload is not valid UTF-8") from e

    if not body or not body.strip():
        raise WebhookProcessingException("Empty webhook payload")

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise WebhookProcessingException(f"Malformed JSON payload: {e.msg}") from e

    if not isinstance(data, dict):
        raise WebhookProcessingException("Webhook payload must be a JSON object")

    keys = {str(key).lower() for key in data}
    if "alerts" not in keys and keys & {"fingerprint", "alertname", "labels"}:
        data = {"alerts": [data], "status": data.get("status")}

    try:
        return GrafanaWebhookPayload.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise WebhookProcessingException(f"Invalid webhook envelope at '{location}': {first['msg']}") from e


# =============================================================================
# Alerts
# =============================================================================


def parse_alert(raw: Any, received_at: datetime) -> ParsedAlert:
    """
    Normalise one raw alert item.

    Args:
        raw: Item from the envelope's ``alerts`` list
        received_at: Delivery time, used when the alert carries no start time

    Returns:
        ParsedAlert

    Raises:
        AlertParseError: If the item is not an object or has no identity
    """
    if not isinstance(raw, dict):
        raise AlertParseError(f"Alert must be a JSON object, got {type(raw).__name__}")

    try:
        alert = GrafanaAlert.model_validate(raw)
    except ValidationError as e:
        raise AlertParseError(f"Unreadable alert: {e.errors()[0]['msg']}") from e

    fingerprint = alert.fingerprint or labels_fingerprint(alert.labels)
    if not fingerprint:
        raise AlertParseError("Alert has neither a fingerprint nor labels")

    rule_uid = extract_rule_uid(alert.labels, alert.generator_url)

    return ParsedAlert(
        fingerprint=fingerprint,
        status=alert.status,
        alert_id=build_alert_id(alert, rule_uid, fingerprint, received_at),
        rule_uid=rule_uid,
        labels=alert.labels,
        annotations=alert.annotations,
        severity=severity_from_labels(alert.labels),
        category=category_from_labels(alert.labels),
        value=extract_value(alert),
        threshold=to_float(alert.annotations.get("threshold") or alert.labels.get("threshold")),
        message=alert.annotations.get("description") or alert.annotations.get("message"),
        summary=alert.annotations.get("summary"),
        starts_at=alert.starts_at,
        ends_at=alert.ends_at,
        generator_url=alert.generator_url,
        raw=raw,
    )


def labels_fingerprint(labels: dict[str, str]) -> str | None:
    """Stable fingerprint from the label set, for senders that omit one."""
    if not labels:
        return None
    canonical = json.dumps(sorted(labels.items()), separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def extract_rule_uid(labels: dict[str, str], generator_url: str | None) -> str | None:
    """
    Find the Grafana rule UID for an alert.

    Looks at the rule labels first, then the generator URL path
    (``/alerting/grafana/<uid>/view``), then its ``ruleUID`` query parameter.
    """
    for key in RULE_UID_LABELS:
        value = labels.get(key, "").strip()
        if value:
            return value

    if not generator_url:
        return None

    parsed = urlparse(generator_url)
    match = _RULE_PATH_RE.search(parsed.path)
    if match:
        return match.group(1)

    rule_uids = parse_qs(parsed.query).get("ruleUID")
    if rule_uids and rule_uids[0].strip():
        return rule_uids[0].strip()

    return None


def build_alert_id(
    alert: GrafanaAlert,
    rule_uid: str | None,
    fingerprint: str,
    received_at: datetime,
) -> str:
    """Occurrence identifier: explicit ``alertId`` label or derived from rule/fingerprint and start time."""
    explicit = alert.labels.get("alertId", "").strip()
    if explicit:
        return explicit
    stamp = (alert.starts_at or received_at).strftime("%Y%m%d%H%M%S")
    if rule_uid:
        return f"ALERT-{rule_uid}-{stamp}"
    return f"ALERT-{fingerprint[:8]}-{stamp}"


def severity_from_labels(labels: dict[str, str]) -> CaseSeverity | None:
    for key in ("severity", "priority"):
        value = labels.get(key, "").strip().lower()
        if value in SEVERITY_LABELS:
            return SEVERITY_LABELS[value]
    return None


def category_from_labels(labels: dict[str, str]) -> CaseCategory | None:
    value = labels.get("category", "").strip().upper()
    if not value:
        return None
    if value in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[value]
    try:
        return CaseCategory(value)
    except ValueError:
        return None


def to_float(value: Any) -> float | None:
    """Best-effort numeric conversion; anything unusable becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def extract_value(alert: GrafanaAlert) -> float | None:
    """Current evaluation value from ``values``, the value annotation, or ``valueString``."""
    for value in (alert.values or {}).values():
        number = to_float(value)
        if number is not None:
            return number

    number = to_float(alert.annotations.get("value") or alert.labels.get("value"))
    if number is not None:
        return number

    if alert.value_string:
        match = _VALUE_STRING_RE.search(alert.value_string)
        if match:
            return to_float(match.group(1))
    return None


# =============================================================================
# Case content
# =============================================================================


def build_title(alert: ParsedAlert, rule_name: str | None = None) -> str:
    """Case title from the summary annotation, alert name or rule name."""
    title = ""
    if alert.summary:
        title = (
            alert.summary.replace('\\"', "")
            .replace('"', "")
            .replace("[no value]", "No Data")
            .strip()
        )
    if not title:
        title = alert.alertname or rule_name or f"Grafana alert {alert.fingerprint}"
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


def build_description(alert: ParsedAlert, rule: "RuleAssignment | None" = None) -> str:
    """Multi-section case description assembled from the alert and its rule."""
    lines: list[str] = []

    rule_name = rule.grafana_rule_name if rule else alert.alertname
    if rule_name:
        lines.append(f"Alert Rule: {rule_name}")

    details = [text for text in (alert.message, alert.annotations.get("runbook_url")) if text]
    if details:
        lines.append("")
        lines.append("Alert Details:")
        lines.extend(details)

    if rule is not None:
        lines.append("")
        lines.append("Rule Configuration:")
        if rule.grafana_folder_name:
            lines.append(f"- Folder: {rule.grafana_folder_name}")
        if rule.description:
            lines.append(f"- Description: {rule.description}")
        lines.append(f"- Assignment strategy: {rule.assignment_strategy.value}")

    context = [
        ("Severity", alert.labels.get("severity")),
        ("Environment", alert.environment),
        ("Service", alert.service),
        ("Instance", alert.instance),
        ("Value", _format_number(alert.value)),
        ("Threshold", _format_number(alert.threshold)),
    ]
    context = [(name, value) for name, value in context if value]
    if context:
        lines.append("")
        lines.append("Context Information:")
        lines.extend(f"- {name}: {value}" for name, value in context)

    if alert.starts_at:
        lines.append("")
        lines.append(f"Alert Started: {alert.starts_at.isoformat()}")

    return "\n".join(lines).strip()


def build_tags(alert: ParsedAlert, severity: CaseSeverity, category: CaseCategory) -> list[str]:
    tags = ["grafana", category.value.lower(), severity.value.lower()]
    if alert.environment:
        tags.append(f"env:{alert.environment}")
    if alert.service:
        tags.append(f"service:{alert.service}")
    return tags


def affected_services(alert: ParsedAlert) -> str:
    return alert.service or "Unknown"


def alert_snapshot(alert: ParsedAlert, received_at: datetime, receiver: str | None) -> dict[str, Any]:
    """JSON-safe copy of the alert stored on the case for later inspection."""
    return {
        "fingerprint": alert.fingerprint,
        "status": alert.status,
        "startsAt": alert.starts_at.isoformat() if alert.starts_at else None,
        "endsAt": alert.ends_at.isoformat() if alert.ends_at else None,
        "generatorURL": alert.generator_url,
        "labels": alert.labels,
        "annotations": alert.annotations,
        "value": alert.value,
        "threshold": alert.threshold,
        "receiver": receiver,
        "webhookReceivedAt": received_at.isoformat(),
    }


def _format_number(value: float | None) -> str | None:
    if value is None:
        return None
    return f"{value:g}"
