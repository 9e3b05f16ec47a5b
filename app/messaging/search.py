"""
Elasticsearch projection of messages.

Messages are written to the "messages" index as
{id, number, body, chatId, createdAt}, using the message id as document id.
Re-indexing the same message overwrites the same document, so at-least-once
delivery from the indexing task is safe.

Search Modes:
    match      Full-text match on body, inside a bool query with an
               optional chatId term filter
    wildcard   Case-insensitive *text* substring match on the body.wildcard
               subfield (wildcard field type, so long bodies are matched too)

Usage:
    from messaging.search import MessageSearchIndex, build_message_document

    index = MessageSearchIndex()
    index.index_document(build_message_document(message))

    hits, total = index.search("hello", chat_id=chat.id, offset=0, limit=10)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from elasticsearch import Elasticsearch, helpers

from messaging.constants import SEARCH_CONFIG

if TYPE_CHECKING:
    from collections.abc import Iterable

    from messaging.models import Message

logger = logging.getLogger(__name__)


def build_message_document(message: Message) -> dict:
    """Project a Message row into its search document."""
    return {
        "id": message.id,
        "number": message.number,
        "body": message.body,
        "chatId": message.chat_id,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


def _escape_wildcard(text: str) -> str:
    for char in ("\\", "*", "?"):
        text = text.replace(char, f"\\{char}")
    return text


class MessageSearchIndex:
    """
    Thin wrapper around the Elasticsearch client for the messages index.

    The client is created lazily from settings.ELASTICSEARCH_URL so that
    importing this module never opens a connection. Errors from the client
    propagate; callers decide whether to retry (indexing task) or degrade
    (search endpoint).
    """

    def __init__(
        self,
        client: Elasticsearch | None = None,
        index_name: str = SEARCH_CONFIG.INDEX_NAME,
    ):
        self._client = client
        self.index_name = index_name

    @property
    def client(self) -> Elasticsearch:
        if self._client is None:
            self._client = Elasticsearch(
                settings.ELASTICSEARCH_URL,
                request_timeout=settings.ELASTICSEARCH_TIMEOUT,
            )
        return self._client

    def ensure_index(self) -> bool:
        """
        Create the index with explicit mappings if it does not exist.

        Returns:
            True when the index was created by this call.
        """
        if self.client.indices.exists(index=self.index_name):
            return False
        self.client.indices.create(
            index=self.index_name,
            mappings=SEARCH_CONFIG.MAPPINGS,
        )
        logger.info(f"Created search index {self.index_name}")
        return True

    # =========================================================================
    # Writes
    # =========================================================================

    def index_document(self, document: dict) -> None:
        self.client.index(
            index=self.index_name,
            id=str(document["id"]),
            document=document,
        )

    def bulk_index(self, documents: Iterable[dict]) -> int:
        """
        Index many documents in chunks.

        Returns:
            Number of documents successfully indexed.
        """
        actions = (
            {
                "_op_type": "index",
                "_index": self.index_name,
                "_id": str(document["id"]),
                "_source": document,
            }
            for document in documents
        )
        success, _errors = helpers.bulk(
            self.client,
            actions,
            chunk_size=SEARCH_CONFIG.BULK_CHUNK_SIZE,
        )
        return success

    def delete_document(self, message_id: int) -> bool:
        """
        Remove one message document.

        Returns:
            True when a document was deleted, False when none existed.
        """
        response = self.client.options(ignore_status=404).delete(
            index=self.index_name,
            id=str(message_id),
        )
        return response.get("result") == "deleted"

    def delete_chat_documents(self, chat_ids: list[int]) -> int:
        """Remove every document belonging to the given chats."""
        if not chat_ids:
            return 0
        response = self.client.delete_by_query(
            index=self.index_name,
            query={"terms": {"chatId": list(chat_ids)}},
            conflicts="proceed",
        )
        return response["deleted"]

    # =========================================================================
    # Queries
    # =========================================================================

    def search(
        self,
        text: str,
        chat_id: int | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[dict], int]:
        """
        Full-text match on body, optionally restricted to one chat.

        Returns:
            (documents, total_hits)
        """
        query: dict = {"bool": {"must": [{"match": {"body": text}}]}}
        if chat_id is not None:
            query["bool"]["filter"] = [{"term": {"chatId": chat_id}}]
        return self._run(query, offset, limit)

    def wildcard_search(
        self,
        text: str,
        chat_id: int | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[dict], int]:
        """
        Substring match on body, for partial-token queries.

        Returns:
            (documents, total_hits)
        """
        query: dict = {
            "bool": {
                "must": [
                    {
                        "wildcard": {
                            "body.wildcard": {
                                "value": f"*{_escape_wildcard(text)}*",
                                "case_insensitive": True,
                            }
                        }
                    }
                ]
            }
        }
        if chat_id is not None:
            query["bool"]["filter"] = [{"term": {"chatId": chat_id}}]
        return self._run(query, offset, limit)

    def _run(self, query: dict, offset: int, limit: int) -> tuple[list[dict], int]:
        response = self.client.search(
            index=self.index_name,
            query=query,
            from_=offset,
            size=limit,
            sort=[{"number": {"order": "asc"}}],
        )
        hits = response["hits"]
        total = hits["total"]
        total_value = total["value"] if isinstance(total, dict) else int(total)
        return [hit["_source"] for hit in hits["hits"]], total_value
