"""Workflow errors raised by services. The API maps each class to an HTTP status."""
from __future__ import annotations


class WorkflowError(ValueError):
    """Invalid input or state; message is shown to the user as-is (400)."""

    status_code = 400


class NotFound(WorkflowError):
    status_code = 404


class Forbidden(WorkflowError):
    """Acting member may not perform this action on the resource."""

    status_code = 403


class Conflict(WorkflowError):
    """Request clashes with current data (duplicate membership, full team, already paid)."""

    status_code = 409


class MessagingError(WorkflowError):
    """WhatsApp API unreachable, disconnected or refusing the request."""

    status_code = 503
