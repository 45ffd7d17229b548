"""Core package for the buildathon roster.

This module exposes the data models and the service objects built on top of
the storage layer so that consumers can import them straight from
``buildathon_roster``.  :func:`open_roster` wires a storage adapter to all of
them in one call.
"""

from .core.models import BackupSnapshot, ImportDiagnostics, Participant, Team
from .core.storage import RosterStorage
from .data.backup import BackupCodec
from .data.csv_import import CsvImporter
from .data.repository import EntityRepository
from .data.roster import RosterEngine
from .errors import ConflictError, NotFoundError, RosterError, ValidationError
from .services import RosterServices, open_roster

__all__ = [
    "BackupCodec",
    "BackupSnapshot",
    "ConflictError",
    "CsvImporter",
    "EntityRepository",
    "ImportDiagnostics",
    "NotFoundError",
    "Participant",
    "RosterEngine",
    "RosterError",
    "RosterServices",
    "RosterStorage",
    "Team",
    "ValidationError",
    "open_roster",
]
