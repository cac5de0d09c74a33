"""Gmail API inbox adapter.

Implements the core InboxPort. The Google client is blocking, so every call
runs in a worker thread; request timeouts are enforced by the HTTP transport
built in ``client.build_gmail_service``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from adapters.gmail_mapper import build_metadata, build_search_query, extract_body
from core.models import MessageMeta

METADATA_HEADERS = ["From", "To", "Subject", "Date"]


class GmailInbox:
    """Light wrapper around the Gmail ``users.messages`` resource."""

    def __init__(
        self,
        service: Any,
        user_id: str = "me",
        page_size: int = 100,
    ) -> None:
        self._service = service
        self._user_id = user_id
        self._page_size = page_size

    def _messages(self):
        return self._service.users().messages()

    def _list_sync(self, query: str) -> list[str]:
        # Ids are cheap to list, so every page is read; the per-cycle cap on
        # processing lives in the triage cycle, which works oldest first.
        ids: list[str] = []
        request = self._messages().list(userId=self._user_id, q=query, maxResults=self._page_size)
        while request is not None:
            response = request.execute()
            ids.extend(metadata["id"] for metadata in response.get("messages", []) or [])
            request = self._messages().list_next(previous_request=request, previous_response=response)
        return ids

    async def list_new_messages(self, since: Optional[int], search_filter: str) -> list[str]:
        """Return message ids matching the search, newest first."""

        query = build_search_query(search_filter, since)
        return await asyncio.to_thread(self._list_sync, query)

    def _get_sync(self, email_id: str, **kwargs: Any) -> dict[str, Any]:
        return self._messages().get(userId=self._user_id, id=email_id, **kwargs).execute()

    async def fetch_metadata(self, email_id: str) -> MessageMeta:
        message = await asyncio.to_thread(
            self._get_sync,
            email_id,
            format="metadata",
            metadataHeaders=METADATA_HEADERS,
        )
        return build_metadata(email_id, message)

    async def fetch_body(self, email_id: str) -> str:
        message = await asyncio.to_thread(self._get_sync, email_id, format="full")
        return extract_body(message)
