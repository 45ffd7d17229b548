"""Wiring of storage, repository and the operations built on it."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .adapters.base import KeyValueAdapter
from .adapters.json_file import JSONFileAdapter
from .core.storage import RosterStorage
from .data.backup import BackupCodec
from .data.csv_import import CsvImporter
from .data.repository import EntityRepository
from .data.roster import RosterEngine


@dataclass
class RosterServices:
    storage: RosterStorage
    repository: EntityRepository
    engine: RosterEngine
    importer: CsvImporter
    backup: BackupCodec


def open_roster(source: KeyValueAdapter | str | os.PathLike[str]) -> RosterServices:
    """Build the service objects over an adapter or a JSON file path."""
    adapter = source if isinstance(source, KeyValueAdapter) else JSONFileAdapter(source)
    storage = RosterStorage(adapter)
    repository = EntityRepository(storage)
    return RosterServices(
        storage=storage,
        repository=repository,
        engine=RosterEngine(repository),
        importer=CsvImporter(repository),
        backup=BackupCodec(repository),
    )
