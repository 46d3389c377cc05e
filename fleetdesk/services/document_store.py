"""Document store integration: Supabase tables, or process memory for development and tests."""

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from supabase import create_client

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import DocumentStoreError
from fleetdesk.core.logging import get_logger

logger = get_logger(__name__)

COLLECTIONS = (
    "organizations",
    "users",
    "whatsapp_users",
    "conversation_sessions",
    "processed_messages",
    "routes",
    "drivers",
    "vehicles",
    "clients",
    "invoices",
    "invoice_profiles",
    "expenses",
    "virtual_accounts",
    "notifications",
)


class DocumentStore(ABC):
    """
    Collection/document storage used by every component.

    Only equality filters and a result limit are assumed; range filters and
    ordering are done in memory by callers.
    """

    mode = "abstract"

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by id, or None."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Documents whose fields equal every value in ``filters``."""

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert with a generated id and return it."""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace the document with an explicit id."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Apply a field-level update in one write. Raises DocumentStoreError if missing."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document."""

    async def health_check(self) -> bool:
        return True


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed store; documents are copied in and out."""

    mode = "memory"

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = filters or {}
        results = []
        for doc in self._collection(collection).values():
            if all(doc.get(key) == value for key, value in filters.items()):
                results.append(copy.deepcopy(doc))
                if limit is not None and len(results) >= limit:
                    break
        return results

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = str(uuid.uuid4())
        await self.set(collection, doc_id, data)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._collection(collection)[doc_id] = {**copy.deepcopy(data), "id": doc_id}

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise DocumentStoreError(f"{collection}/{doc_id} not found", operation="update")
        docs[doc_id].update(copy.deepcopy(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)


class SupabaseDocumentStore(DocumentStore):
    """One Supabase table per collection, text primary key ``id``."""

    mode = "supabase"

    def __init__(self, client):
        self.client = client

    def _execute(self, operation: str, collection: str, builder):
        try:
            return builder.execute()
        except Exception as e:
            logger.error("Document store operation failed", operation=operation, collection=collection, error=str(e))
            raise DocumentStoreError(str(e), operation=operation, collection=collection)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            "get", collection,
            self.client.table(collection).select('*').eq('id', doc_id).limit(1),
        )
        return response.data[0] if response.data else None

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        builder = self.client.table(collection).select('*')
        for key, value in (filters or {}).items():
            builder = builder.eq(key, value)
        if limit is not None:
            builder = builder.limit(limit)
        response = self._execute("query", collection, builder)
        return response.data if response.data else []

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = str(uuid.uuid4())
        self._execute("add", collection, self.client.table(collection).insert({**data, "id": doc_id}))
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._execute("set", collection, self.client.table(collection).upsert({**data, "id": doc_id}))

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        response = self._execute(
            "update", collection,
            self.client.table(collection).update(fields).eq('id', doc_id),
        )
        if not response.data:
            raise DocumentStoreError(f"{collection}/{doc_id} not found", operation="update")

    async def delete(self, collection: str, doc_id: str) -> None:
        self._execute("delete", collection, self.client.table(collection).delete().eq('id', doc_id))

    async def health_check(self) -> bool:
        try:
            self.client.table('organizations').select('id').limit(1).execute()
            return True
        except Exception as e:
            logger.error("Document store health check failed", error=str(e))
            return False


def create_document_store(settings: Optional[Settings] = None) -> DocumentStore:
    """Supabase when configured and reachable, otherwise the in-memory store."""
    settings = settings or get_settings()
    if not settings.store_configured:
        logger.warning("Supabase not configured, using in-memory document store")
        return InMemoryDocumentStore()

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.warning("Database connection failed, using in-memory document store", error=str(e))
        return InMemoryDocumentStore()

    logger.info("Supabase document store initialized")
    return SupabaseDocumentStore(client)
