"""QuickBooks Online connector — paginated queries and OAuth token exchange.

One QuickBooksClient is built at startup around a shared httpx.AsyncClient
and reused for every request (see main.py lifespan). Tests pass an
AsyncClient wired to httpx.MockTransport.

Pagination: QBO's query language takes STARTPOSITION (1-based) and
MAXRESULTS. A page shorter than the page size is the end-of-data signal.
A failing page stops pagination and whatever was collected is returned,
flagged incomplete. A page whose body is not the expected JSON shape counts
as a failing page.
"""

import base64
import logging
from dataclasses import dataclass, field

import httpx

from ..config import Settings
from ..exceptions import RemoteFetchError

log = logging.getLogger("vantage.qbo")


@dataclass
class QBOCredentials:
    """Decrypted connection details, alive only for the length of a sync."""

    realm_id: str
    access_token: str = field(repr=False)


@dataclass
class PageResult:
    records: list[dict] = field(default_factory=list)
    complete: bool = True
    pages: int = 0
    error: str | None = None


def _page_items(body, entity_name: str) -> list:
    """Records of one query page; a body of the wrong shape is a failed page."""
    if not isinstance(body, dict):
        raise RemoteFetchError(f"QBO query for {entity_name} returned {type(body).__name__}, not an object")
    response = body.get("QueryResponse") or {}
    if not isinstance(response, dict):
        raise RemoteFetchError(f"QBO QueryResponse for {entity_name} is not an object")
    items = response.get(entity_name) or []
    if not isinstance(items, list):
        raise RemoteFetchError(f"QBO {entity_name} payload is not a list")
    return items


class QuickBooksClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_base: str,
        token_url: str,
        client_id: str = "",
        client_secret: str = "",
        redirect_uri: str = "",
        page_size: int = 1000,
    ):
        self.http = http
        self.api_base = api_base.rstrip("/")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.page_size = page_size

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "QuickBooksClient":
        return cls(
            http,
            api_base=settings.qbo_api_base,
            token_url=settings.qbo_token_url,
            client_id=settings.qbo_client_id,
            client_secret=settings.qbo_client_secret,
            redirect_uri=settings.oauth_redirect_uri,
            page_size=settings.qbo_page_size,
        )

    # ── Queries ─────────────────────────────────────────────────────────

    async def fetch_pages(
        self, credentials: QBOCredentials, query: str, entity_name: str
    ) -> PageResult:
        """Run ``query`` page by page and collect every ``entity_name`` record."""
        result = PageResult()
        start = 1
        url = f"{self.api_base}/{credentials.realm_id}/query"
        headers = {
            "Authorization": f"Bearer {credentials.access_token}",
            "Accept": "application/json",
        }

        while True:
            paged = f"{query} STARTPOSITION {start} MAXRESULTS {self.page_size}"
            try:
                resp = await self.http.get(url, params={"query": paged}, headers=headers)
                if resp.status_code != 200:
                    raise RemoteFetchError(
                        f"QBO query failed for {entity_name} ({resp.status_code}): {resp.text[:200]}"
                    )
                items = _page_items(resp.json(), entity_name)
            except (httpx.HTTPError, ValueError, RemoteFetchError) as e:
                result.complete = False
                result.error = str(e)
                log.warning(
                    f"QBO pagination stopped for {entity_name} at position {start} "
                    f"with {len(result.records)} records: {e}"
                )
                break

            result.records.extend(items)
            result.pages += 1
            log.info(f"QBO: {len(items)} {entity_name} (total: {len(result.records)})")

            if len(items) < self.page_size:
                break
            start += self.page_size

        return result

    async def fetch_all_pages(
        self, credentials: QBOCredentials, query: str, entity_name: str
    ) -> list[dict]:
        return (await self.fetch_pages(credentials, query, entity_name)).records

    # ── OAuth ───────────────────────────────────────────────────────────

    def _basic_auth(self) -> str:
        raw = f"{self.client_id}:{self.client_secret}".encode()
        return "Basic " + base64.b64encode(raw).decode()

    async def _token_request(self, data: dict) -> dict:
        try:
            resp = await self.http.post(
                self.token_url,
                data=data,
                headers={
                    "Accept": "application/json",
                    "Authorization": self._basic_auth(),
                },
            )
        except httpx.HTTPError as e:
            raise RemoteFetchError(f"Token endpoint unreachable: {e}") from e
        if resp.status_code != 200:
            log.error(f"QBO token request failed ({resp.status_code}): {resp.text[:200]}")
            raise RemoteFetchError(f"Token request failed ({resp.status_code})")
        tokens = resp.json()
        if not tokens.get("access_token"):
            raise RemoteFetchError("Token response missing access_token")
        return tokens

    async def exchange_code(self, code: str) -> dict:
        """Trade an authorization code for access + refresh tokens."""
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
