"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_ATTESTER_DELETED,
    EVENT_REASON_ATTESTER_READY,
    EVENT_REASON_POLICY_COMPILED,
    EVENT_REASON_POLICY_INVALID,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_SECRET_CREATED,
    EVENT_REASON_SECRET_INVALID,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Body of the involved object
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_policy_compiled(body: dict[str, Any]) -> None:
    emit_event(body, EVENT_REASON_POLICY_COMPILED, "Policy compiled")


def emit_policy_invalid(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_POLICY_INVALID, message, type_="Warning")


def emit_secret_created(body: dict[str, Any], secret_name: str) -> None:
    emit_event(body, EVENT_REASON_SECRET_CREATED, f"Signer secret {secret_name} created")


def emit_secret_invalid(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_SECRET_INVALID, message, type_="Warning")


def emit_attester_ready(body: dict[str, Any]) -> None:
    emit_event(body, EVENT_REASON_ATTESTER_READY, "Attester is ready")


def emit_attester_deleted(body: dict[str, Any]) -> None:
    emit_event(body, EVENT_REASON_ATTESTER_DELETED, "Attester cleaned up")
