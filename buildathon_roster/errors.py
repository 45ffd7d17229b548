"""Exception types raised by the roster layers.

Every public operation either completes or raises one of these.  Callers can
catch :class:`RosterError` to handle all of them at once.
"""

from __future__ import annotations


class RosterError(Exception):
    """Base class for roster failures."""


class NotFoundError(RosterError):
    """A referenced participant, team or check-in does not exist."""

    def __init__(self, kind: str, entity_id: str, message: str | None = None) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(message or f"{kind} with ID {entity_id} not found")


class ConflictError(RosterError):
    """The participant already belongs to a different team."""

    def __init__(
        self,
        message: str,
        *,
        participant_id: str | None = None,
        team_id: str | None = None,
        team_name: str | None = None,
    ) -> None:
        self.participant_id = participant_id
        self.team_id = team_id
        self.team_name = team_name
        super().__init__(message)


class ValidationError(RosterError):
    """Input data (backup payload, CSV rows, team edits) is malformed."""
