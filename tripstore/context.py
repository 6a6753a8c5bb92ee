"""
Data context: the explicit owner of every tripstore component.

Instead of a process-wide shared instance, callers build one DataContext
and pass it to whatever needs document or history access. Tests build
one per temporary directory.

Invariants:
    - One DataContext per document per process; its store serializes saves
    - Reload listeners run only after a save succeeded
"""

from __future__ import annotations

import logging
from typing import Callable

from .changes.reducer import ChangeReducer
from .codec.codec import SnapshotCodec
from .codec.identifiers import Identifier
from .config import Settings
from .history.base import TransactionLog
from .history.file import FileTransactionLog
from .prefs.base import PreferenceStore
from .prefs.file import JsonFilePreferenceStore
from .schema.registry import SchemaRegistry
from .schema.trips import build_trip_registry
from .store.document_store import DocumentStore, JSONStoreConfiguration, SaveRequest, SaveResult

logger = logging.getLogger(__name__)

ReloadListener = Callable[[], None]


class DataContext:
    """Bundles the store, log, preferences and change reducer.

    Attributes:
        settings: Loaded configuration
        registry: Frozen schema registry
        codec: Snapshot codec for the registry
        store: Document store
        transaction_log: Log written by the store and scanned by the reducer
        preferences: Cursor and unread-list storage
        reducer: Change reducer

    Example:
        >>> context = DataContext.open(Settings(data_dir=tmp_path))
        >>> context.add_reload_listener(widget.reload_timelines)
        >>> await context.save(SaveRequest(updated=[snap]), author="widget")
    """

    def __init__(
        self,
        settings: Settings,
        registry: SchemaRegistry,
        store: DocumentStore,
        transaction_log: TransactionLog,
        preferences: PreferenceStore,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.codec = SnapshotCodec(registry)
        self.store = store
        self.transaction_log = transaction_log
        self.preferences = preferences
        self.reducer = ChangeReducer(
            store,
            transaction_log,
            preferences,
            author=settings.widget_author,
        )
        self._reload_listeners: list[ReloadListener] = []

    @classmethod
    def open(
        cls,
        settings: Settings | None = None,
        registry: SchemaRegistry | None = None,
    ) -> DataContext:
        """Build a context backed by files under settings.data_dir."""
        settings = settings or Settings()
        registry = registry or build_trip_registry()
        settings.data_dir.mkdir(parents=True, exist_ok=True)

        transaction_log = FileTransactionLog(settings.history_path)
        store = DocumentStore(
            JSONStoreConfiguration(
                name=settings.store_name,
                file_path=settings.document_path,
                schema=registry,
            ),
            transaction_log=transaction_log,
        )
        preferences = JsonFilePreferenceStore(settings.preferences_path)

        logger.debug("Opened data context", extra={"data_dir": str(settings.data_dir)})
        return cls(settings, registry, store, transaction_log, preferences)

    def provisional_identifier(self, entity_name: str) -> Identifier:
        """Mint a provisional identifier in this context's store."""
        return Identifier.provisional_for(self.store.identifier, entity_name)

    async def save(self, request: SaveRequest, author: str | None = None) -> SaveResult:
        """Save a batch, then signal reload listeners."""
        result = await self.store.save(request, author=author)
        self.reload_presentation()
        return result

    def add_reload_listener(self, listener: ReloadListener) -> None:
        self._reload_listeners.append(listener)

    def remove_reload_listener(self, listener: ReloadListener) -> None:
        self._reload_listeners.remove(listener)

    def reload_presentation(self) -> None:
        """Tell consumers that cached renders are stale."""
        for listener in list(self._reload_listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Reload listener failed: {e}", exc_info=True)
