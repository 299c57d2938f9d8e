"""
Unit tests for Grafana payload parsing.

Tests cover:
- Envelope reading (malformed bodies, legacy single-alert bodies, key casing)
- Alert identity (fingerprint, rule UID, occurrence id)
- Tolerant field coercion (severity, category, values, timestamps)
- Case content (title, description, tags)
"""

import json
from datetime import datetime, timezone

import pytest

from app.exceptions import AlertParseError, WebhookProcessingException
from app.models import CaseCategory, CaseSeverity
from app.services import alert_parser
from tests.fixtures.factories import BASE_TIME, create_alert, create_payload


@pytest.mark.unit
class TestParseEnvelope:
    """Tests for parse_envelope."""

    def test_parses_grafana_envelope(self):
        body = json.dumps(create_payload(create_alert(), create_alert(fingerprint="fp2")))

        envelope = alert_parser.parse_envelope(body.encode("utf-8"))

        assert envelope.receiver == "alertcase-webhook"
        assert envelope.status == "firing"
        assert envelope.org_id == 1
        assert len(envelope.alerts) == 2

    @pytest.mark.parametrize("body", [b"", b"   ", "\n"])
    def test_empty_body_rejected(self, body):
        with pytest.raises(WebhookProcessingException, match="Empty"):
            alert_parser.parse_envelope(body)

    def test_malformed_json_rejected(self):
        with pytest.raises(WebhookProcessingException, match="Malformed JSON"):
            alert_parser.parse_envelope(b'{"alerts": [')

    def test_non_object_rejected(self):
        with pytest.raises(WebhookProcessingException, match="JSON object"):
            alert_parser.parse_envelope(b"[1, 2, 3]")

    def test_invalid_utf8_rejected(self):
        with pytest.raises(WebhookProcessingException, match="UTF-8"):
            alert_parser.parse_envelope(b"\xff\xfe\x00")

    def test_legacy_single_alert_is_wrapped(self):
        body = json.dumps(create_alert(fingerprint="solo"))

        envelope = alert_parser.parse_envelope(body)

        assert len(envelope.alerts) == 1
        assert envelope.alerts[0]["fingerprint"] == "solo"

    def test_keys_are_matched_case_insensitively(self):
        body = json.dumps({"Receiver": "ops", "STATUS": "resolved", "Alerts": [create_alert()]})

        envelope = alert_parser.parse_envelope(body)

        assert envelope.receiver == "ops"
        assert envelope.status == "resolved"
        assert len(envelope.alerts) == 1

    def test_null_alerts_becomes_empty_list(self):
        envelope = alert_parser.parse_envelope(json.dumps({"status": "firing", "alerts": None}))
        assert envelope.alerts == []

    def test_alerts_must_be_a_list(self):
        with pytest.raises(WebhookProcessingException, match="alerts"):
            alert_parser.parse_envelope(json.dumps({"alerts": "nope"}))


@pytest.mark.unit
class TestParseAlert:
    """Tests for parse_alert."""

    def test_parses_complete_alert(self):
        alert = alert_parser.parse_alert(create_alert(rule_uid="rule-42"), BASE_TIME)

        assert alert.fingerprint == "fp1"
        assert alert.status == "firing"
        assert alert.rule_uid == "rule-42"
        assert alert.severity == CaseSeverity.CRITICAL
        assert alert.value == 12.5
        assert alert.starts_at == datetime(2026, 3, 14, 8, 59, tzinfo=timezone.utc)
        assert alert.ends_at is None  # Grafana's zero time
        assert alert.alert_id == "ALERT-rule-42-20260314085900"

    def test_non_object_alert_rejected(self):
        with pytest.raises(AlertParseError):
            alert_parser.parse_alert("not an alert", BASE_TIME)

    def test_alert_without_identity_rejected(self):
        with pytest.raises(AlertParseError, match="fingerprint"):
            alert_parser.parse_alert({"status": "firing"}, BASE_TIME)

    def test_fingerprint_derived_from_labels(self):
        first = alert_parser.parse_alert({"labels": {"alertname": "A", "instance": "x"}}, BASE_TIME)
        second = alert_parser.parse_alert({"labels": {"instance": "x", "alertname": "A"}}, BASE_TIME)

        assert first.fingerprint == second.fingerprint
        assert len(first.fingerprint) == 16

    def test_status_defaults_to_firing_and_is_lowercased(self):
        assert alert_parser.parse_alert({"fingerprint": "x"}, BASE_TIME).status == "firing"
        assert alert_parser.parse_alert({"fingerprint": "x", "status": "RESOLVED"}, BASE_TIME).is_resolved

    def test_label_values_are_stringified(self):
        alert = alert_parser.parse_alert(
            {"fingerprint": "x", "labels": {"count": 3, "empty": None}}, BASE_TIME,
        )
        assert alert.labels == {"count": "3", "empty": ""}

    def test_garbage_timestamps_degrade_to_none(self):
        alert = alert_parser.parse_alert(
            {"fingerprint": "x", "startsAt": "yesterday", "endsAt": 12}, BASE_TIME,
        )
        assert alert.starts_at is None
        assert alert.ends_at is None

    def test_nanosecond_timestamps_are_accepted(self):
        alert = alert_parser.parse_alert(
            {"fingerprint": "x", "startsAt": "2026-03-14T08:59:00.123456789Z"}, BASE_TIME,
        )
        assert alert.starts_at == datetime(2026, 3, 14, 8, 59, 0, 123456, tzinfo=timezone.utc)

    def test_alert_id_uses_explicit_label(self):
        alert = alert_parser.parse_alert(create_alert(labels={"alertId": "ALERT-77"}), BASE_TIME)
        assert alert.alert_id == "ALERT-77"

    def test_alert_id_falls_back_to_fingerprint_and_receipt_time(self):
        raw = {"fingerprint": "abcdef123456", "labels": {"alertname": "A"}}
        alert = alert_parser.parse_alert(raw, BASE_TIME)
        assert alert.alert_id == "ALERT-abcdef12-20260314090000"


@pytest.mark.unit
class TestFieldExtraction:
    """Tests for the tolerant field helpers."""

    @pytest.mark.parametrize(
        "labels,expected",
        [
            ({"rule_id": "r1"}, "r1"),
            ({"__alert_rule_uid__": "r2"}, "r2"),
            ({"rule_id": "  "}, None),
        ],
    )
    def test_rule_uid_from_labels(self, labels, expected):
        assert alert_parser.extract_rule_uid(labels, None) == expected

    def test_rule_uid_from_generator_url_path(self):
        url = "https://grafana.example.com/alerting/grafana/ddx9a1/view?orgId=1"
        assert alert_parser.extract_rule_uid({}, url) == "ddx9a1"

    def test_rule_uid_from_generator_url_query(self):
        url = "https://grafana.example.com/alerting/list?ruleUID=q-rule"
        assert alert_parser.extract_rule_uid({}, url) == "q-rule"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("critical", CaseSeverity.CRITICAL),
            ("P1", CaseSeverity.CRITICAL),
            ("major", CaseSeverity.HIGH),
            ("warning", CaseSeverity.MEDIUM),
            ("info", CaseSeverity.LOW),
            ("whatever", None),
        ],
    )
    def test_severity_from_labels(self, value, expected):
        assert alert_parser.severity_from_labels({"severity": value}) == expected

    def test_severity_falls_back_to_priority_label(self):
        assert alert_parser.severity_from_labels({"priority": "2"}) == CaseSeverity.HIGH

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("fraud", CaseCategory.FRAUD),
            ("QUALITY_ISSUE", CaseCategory.QUALITY),
            ("network_issue", CaseCategory.NETWORK_ISSUE),
            ("unknown", None),
            ("", None),
        ],
    )
    def test_category_from_labels(self, value, expected):
        assert alert_parser.category_from_labels({"category": value}) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("85%", 85.0),
            (" 1.5 ", 1.5),
            (3, 3.0),
            ("N/A", None),
            ("nan", None),
            (True, None),
            (None, None),
            ([], None),
        ],
    )
    def test_to_float(self, value, expected):
        assert alert_parser.to_float(value) == expected

    def test_value_from_value_string(self):
        raw = {"fingerprint": "x", "valueString": "[ var='B' labels={} value=3.75 ]"}
        assert alert_parser.parse_alert(raw, BASE_TIME).value == 3.75

    def test_unusable_values_map_is_ignored(self):
        raw = {"fingerprint": "x", "values": "oops", "annotations": {"value": "42"}}
        assert alert_parser.parse_alert(raw, BASE_TIME).value == 42.0


@pytest.mark.unit
class TestCaseContent:
    """Tests for title, description and tag building."""

    def test_title_from_summary_is_cleaned(self):
        raw = create_alert(annotations={"summary": 'Error rate "high" [no value]'})
        alert = alert_parser.parse_alert(raw, BASE_TIME)

        assert alert_parser.build_title(alert) == "Error rate high No Data"

    def test_title_falls_back_to_alertname(self):
        alert = alert_parser.parse_alert(create_alert(annotations={}), BASE_TIME)
        assert alert_parser.build_title(alert) == "HighErrorRate"

    def test_title_is_truncated(self):
        raw = create_alert(annotations={"summary": "x" * 600})
        title = alert_parser.build_title(alert_parser.parse_alert(raw, BASE_TIME))

        assert len(title) == alert_parser.MAX_TITLE_LENGTH
        assert title.endswith("...")

    def test_description_sections(self):
        raw = create_alert(
            labels={"environment": "prod", "instance": "10.0.0.4:9100"},
            annotations={"summary": "s", "description": "5xx above 5%", "threshold": "5"},
        )
        description = alert_parser.build_description(alert_parser.parse_alert(raw, BASE_TIME))

        assert "Alert Rule: HighErrorRate" in description
        assert "Alert Details:\n5xx above 5%" in description
        assert "- Environment: prod" in description
        assert "- Service: billing-api" in description
        assert "- Value: 12.5" in description
        assert "- Threshold: 5" in description
        assert "Alert Started: 2026-03-14T08:59:00+00:00" in description

    def test_tags(self):
        alert = alert_parser.parse_alert(create_alert(labels={"env": "staging"}), BASE_TIME)
        tags = alert_parser.build_tags(alert, CaseSeverity.HIGH, CaseCategory.QUALITY)

        assert tags == ["grafana", "quality", "high", "env:staging", "service:billing-api"]

    def test_snapshot_is_json_safe(self):
        alert = alert_parser.parse_alert(create_alert(), BASE_TIME)
        snapshot = alert_parser.alert_snapshot(alert, BASE_TIME, "ops")

        json.dumps(snapshot)
        assert snapshot["receiver"] == "ops"
        assert snapshot["webhookReceivedAt"] == "2026-03-14T09:00:00+00:00"
