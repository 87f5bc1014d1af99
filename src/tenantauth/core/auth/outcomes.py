"""Workflow outcomes.

Login-like workflows return one of these variants instead of a loosely
shaped dict; callers match on the type and handle every branch.
"""

from dataclasses import dataclass
from uuid import UUID

from tenantauth.core.exceptions import ErrorCode, NextStepRequired


@dataclass(frozen=True)
class Authenticated:
    """Access and refresh tokens were issued."""

    access_token: str
    refresh_token: str
    org_id: UUID
    user_id: UUID


@dataclass(frozen=True)
class HandoffIssued:
    """WEBSITE login: the client must redeem the handoff token on its subdomain."""

    subdomain_token: str
    org_id: UUID
    org_name: str
    subdomain: str


@dataclass(frozen=True)
class Registered:
    """A new identity was created by an external provider sign-in."""

    token: str
    user_id: UUID


@dataclass(frozen=True)
class NeedsProfile:
    """Name or phone missing."""

    token: str


@dataclass(frozen=True)
class NeedsOrganization:
    """The identity belongs to no organization yet."""

    token: str


@dataclass(frozen=True)
class NeedsPlan:
    """The owned organization has no usable subscription."""

    token: str
    org_id: UUID


PendingStep = NeedsProfile | NeedsOrganization | NeedsPlan
LoginOutcome = Authenticated | HandoffIssued | PendingStep
GoogleOutcome = LoginOutcome | Registered


def next_step_error(outcome: PendingStep) -> NextStepRequired:
    """Convert a pending onboarding step into its client-facing error."""
    if isinstance(outcome, NeedsProfile):
        return NextStepRequired(ErrorCode.INCOMPLETE_PROFILE, data={"token": outcome.token})
    if isinstance(outcome, NeedsOrganization):
        return NextStepRequired(
            ErrorCode.USER_NOT_ASSOCIATED_WITH_ANY_ORGANIZATION,
            data={"token": outcome.token},
        )
    return NextStepRequired(
        ErrorCode.USER_NOT_TAKEN_ANY_PLAN,
        data={"token": outcome.token, "organizationId": str(outcome.org_id)},
    )
