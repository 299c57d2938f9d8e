"""Test fixtures package."""

from .factories import (  # Users & teams; Rule assignments; Grafana payloads
    BASE_TIME,
    create_alert,
    create_payload,
    create_rule_assignment,
    create_team,
    create_token,
    create_user,
    payload_body,
)

__all__ = [
    # Users & teams
    "create_user",
    "create_team",
    "create_token",
    # Rule assignments
    "create_rule_assignment",
    # Grafana payloads
    "create_alert",
    "create_payload",
    "payload_body",
    "BASE_TIME",
]
