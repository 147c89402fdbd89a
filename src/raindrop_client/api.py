import json
import logging
from typing import List, Optional, Any, Dict

import httpx
from pydantic import ValidationError

from .config import API_HOST, DEFAULT_TIMEOUT, ClientConfig
from .errors import RequestBuildError
from .models import (
    Collection,
    CollectionCreate,
    CollectionRef,
    ItemEnvelope,
    ItemsEnvelope,
    Raindrop,
    RaindropCreate,
    ResultEnvelope,
    Tag,
)
from .scrape import PLACEHOLDER_TITLE, extract_html_title
from .transport import build_request, fetch, join_url, new_http_client

logger = logging.getLogger(__name__)

ENDPOINT_ROOT_COLLECTIONS = "/rest/v1/collections"
ENDPOINT_CHILD_COLLECTIONS = "/rest/v1/collections/childrens"
ENDPOINT_COLLECTION = "/rest/v1/collection"
ENDPOINT_RAINDROP = "/rest/v1/raindrop"
ENDPOINT_RAINDROPS = "/rest/v1/raindrops"
ENDPOINT_TAGS = "/rest/v1/tags"

ALL_RAINDROPS = "0"


def tag_search_filter(tag: str) -> str:
    """Search parameter matching raindrops carrying exactly ``tag``."""
    return json.dumps([{"key": "tag", "val": tag}], separators=(",", ":"), ensure_ascii=False)


class RaindropAPI:
    """
    Raindrop.io REST operations.

    Every method takes the caller's access token and an optional per-call
    ``timeout`` and performs a single request. ``result: false`` replies are
    returned as decoded envelopes; check ``.result``.
    """

    def __init__(self, config: Optional[ClientConfig] = None, client: Optional[httpx.AsyncClient] = None):
        # Resource calls only need the API host; the OAuth credentials are optional here.
        self.api_host = config.api_host if config is not None else API_HOST
        self._owns_client = client is None
        self.client = client or new_http_client(config.timeout if config is not None else DEFAULT_TIMEOUT)

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _request(
        self,
        token: str,
        method: str,
        path: str,
        model,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ):
        request = build_request(
            self.client,
            method,
            join_url(self.api_host, path),
            body=body,
            token=token,
            params=params,
            timeout=timeout,
        )
        return await fetch(self.client, request, model)

    async def get_root_collections(
        self, token: str, timeout: Optional[float] = None
    ) -> ItemsEnvelope[Collection]:
        return await self._request(
            token, "GET", ENDPOINT_ROOT_COLLECTIONS, ItemsEnvelope[Collection], timeout=timeout
        )

    async def get_child_collections(
        self, token: str, timeout: Optional[float] = None
    ) -> ItemsEnvelope[Collection]:
        return await self._request(
            token, "GET", ENDPOINT_CHILD_COLLECTIONS, ItemsEnvelope[Collection], timeout=timeout
        )

    async def get_collection(
        self, token: str, collection_id: int, timeout: Optional[float] = None
    ) -> ItemEnvelope[Collection]:
        return await self._request(
            token,
            "GET",
            f"{ENDPOINT_COLLECTION}/{collection_id}",
            ItemEnvelope[Collection],
            timeout=timeout,
        )

    async def create_collection(
        self,
        token: str,
        title: str,
        view: Optional[str] = None,
        sort: Optional[int] = None,
        public: Optional[bool] = None,
        cover: Optional[List[str]] = None,
        parent_id: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> ItemEnvelope[Collection]:
        """
        Create a collection. ``parent_id=None`` creates a root collection and
        leaves ``parent`` out of the payload; 0 is a real parent id.
        """
        collection = CollectionCreate(
            title=title,
            view=view,
            sort=sort,
            public=public,
            cover=cover,
            parent=CollectionRef(id=parent_id) if parent_id is not None else None,
        )
        return await self._request(
            token, "POST", ENDPOINT_COLLECTION, ItemEnvelope[Collection], body=collection, timeout=timeout
        )

    async def fetch_title(self, link: str, timeout: Optional[float] = None) -> str:
        """
        Best-effort page title for ``link``.

        Falls back to PLACEHOLDER_TITLE when the page can't be fetched or has
        no title; the cause is logged, never raised.
        """
        extra = {"timeout": timeout} if timeout is not None else {}
        try:
            response = await self.client.get(link, follow_redirects=True, **extra)
        except httpx.HTTPError as e:
            logger.warning("Can't fetch %s for its title (%s); using placeholder", link, e)
            return PLACEHOLDER_TITLE

        if response.is_error:
            logger.warning("Can't fetch %s for its title (status %d); using placeholder", link, response.status_code)
            return PLACEHOLDER_TITLE

        title = extract_html_title(response.text)
        if title is None:
            logger.warning("No <title> in %s; using placeholder", link)
            return PLACEHOLDER_TITLE
        return title

    async def create_simple_raindrop(
        self, token: str, link: str, timeout: Optional[float] = None
    ) -> ItemEnvelope[Raindrop]:
        """
        Bookmark ``link`` with its page title and ask Raindrop to parse the
        rest of the metadata.
        """
        try:
            RaindropCreate(link=link)
        except ValidationError as e:
            raise RequestBuildError(f"Invalid link {link!r}: {e.errors()[0]['msg']}") from e

        title = await self.fetch_title(link, timeout=timeout)
        raindrop = RaindropCreate(link=link, title=title, please_parse={})
        return await self._request(
            token, "POST", ENDPOINT_RAINDROP, ItemEnvelope[Raindrop], body=raindrop, timeout=timeout
        )

    async def get_raindrops(
        self,
        token: str,
        collection_id: Any,
        perpage: int = 25,
        timeout: Optional[float] = None,
    ) -> ItemsEnvelope[Raindrop]:
        return await self._request(
            token,
            "GET",
            f"{ENDPOINT_RAINDROPS}/{collection_id}",
            ItemsEnvelope[Raindrop],
            params={"perpage": perpage},
            timeout=timeout,
        )

    async def get_tagged_raindrops(
        self, token: str, tag: str, timeout: Optional[float] = None
    ) -> ItemsEnvelope[Raindrop]:
        """Raindrops across all collections tagged exactly ``tag``."""
        return await self._request(
            token,
            "GET",
            f"{ENDPOINT_RAINDROPS}/{ALL_RAINDROPS}",
            ItemsEnvelope[Raindrop],
            params={"search": tag_search_filter(tag)},
            timeout=timeout,
        )

    async def get_tags(self, token: str, timeout: Optional[float] = None) -> ItemsEnvelope[Tag]:
        return await self._request(token, "GET", ENDPOINT_TAGS, ItemsEnvelope[Tag], timeout=timeout)

    async def delete_tags(
        self, token: str, tags: List[str], timeout: Optional[float] = None
    ) -> ResultEnvelope:
        """Remove tags from every raindrop."""
        return await self._request(
            token, "DELETE", ENDPOINT_TAGS, ResultEnvelope, body={"tags": list(tags)}, timeout=timeout
        )
