# archeohub/services/web_search.py
from typing import Any, List, Optional

import requests
from loguru import logger

from archeohub.config import MAX_SOURCES, Settings
from archeohub.schemas import Source


class WebSearchError(RuntimeError):
    pass


def parse_bing_results(data: Any, limit: int = MAX_SOURCES) -> List[Source]:
    """
    Map a Bing v7 payload (webPages.value[]) to at most `limit` sources.
    Raises WebSearchError when the payload does not have that shape.
    """
    if not isinstance(data, dict):
        raise WebSearchError("search payload is not an object")
    # Bing omits webPages entirely when nothing matched
    web_pages = data.get("webPages") or {}
    if not isinstance(web_pages, dict):
        raise WebSearchError("webPages is not an object")
    pages = web_pages.get("value") or []
    if not isinstance(pages, list):
        raise WebSearchError("webPages.value is not a list")

    sources: List[Source] = []
    for page in pages:
        if len(sources) >= limit:
            break
        if not isinstance(page, dict) or not page.get("url"):
            continue
        sources.append(
            Source(
                url=str(page["url"]),
                title=page.get("name"),
                excerpt=page.get("snippet") or "",
            )
        )
    return sources


class WebSearchClient:
    """Bing Web Search. Never raises to the caller."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.settings.bing_api_key)

    def search(self, query: str, count: int = MAX_SOURCES) -> List[Source]:
        if not self.configured:
            return []

        count = max(0, min(count, MAX_SOURCES))
        if count == 0:
            return []
        try:
            r = self.session.get(
                self.settings.bing_endpoint,
                params={"q": query, "count": str(count)},
                headers={"Ocp-Apim-Subscription-Key": self.settings.bing_api_key},
                timeout=self.settings.search_timeout,
            )
            r.raise_for_status()
            return parse_bing_results(r.json(), limit=count)
        except (requests.exceptions.RequestException, ValueError, WebSearchError) as e:
            # ValueError covers an undecodable JSON body
            logger.warning("Bing search failed for {!r}: {}", query, e)
            return []
