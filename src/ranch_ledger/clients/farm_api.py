"""HTTP client for the farm dashboard: activity feed and inventory quantities."""

import time
from typing import Any, cast

import httpx
import structlog

from ranch_ledger.config import get_settings
from ranch_ledger.errors import IntegrationError

logger = structlog.get_logger(__name__)

FEED_PAGE_SIZE = 200


class FarmAPIClient:
    """Blocking client for the farm dashboard API.

    Transport failures and 5xx responses are retried with exponential
    backoff up to ``feed_max_retries`` times; anything still failing surfaces as
    ``IntegrationError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff: float = 1.0,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.feed_api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.feed_timeout
        self._max_retries = max_retries if max_retries is not None else settings.feed_max_retries
        self._backoff = backoff
        self._client: httpx.Client | None = None
        self._logger = logger.bind(component="farm_api", base_url=self.base_url)

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "FarmAPIClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _retry(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        retry_count: int,
        reason: str,
    ) -> dict[str, Any]:
        delay = self._backoff * (2**retry_count)
        self._logger.warning(
            "feed_request_retry",
            path=path,
            attempt=retry_count + 1,
            delay=delay,
            reason=reason,
        )
        time.sleep(delay)
        return self._request(method, path, params, retry_count + 1)

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any]:
        """Make a request, retrying transport errors and 5xx responses."""
        client = self._get_client()

        try:
            response = client.request(method=method, url=path, params=params)
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                return self._retry(method, path, params, retry_count, str(e))
            raise IntegrationError(
                f"Farm API unreachable: {e}", details={"path": path}
            ) from e

        if response.status_code >= 500 and retry_count < self._max_retries:
            return self._retry(
                method, path, params, retry_count, f"status {response.status_code}"
            )
        if response.status_code >= 400:
            raise IntegrationError(
                f"Farm API error: {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )

        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            raise IntegrationError("Farm API returned invalid JSON", details={"path": path}) from e
        if not isinstance(data, dict):
            raise IntegrationError(
                "Farm API returned an unexpected payload", details={"path": path}
            )
        return cast(dict[str, Any], data)

    @staticmethod
    def _unwrap(data: dict[str, Any]) -> Any:
        """Accept both the English and Portuguese response envelopes."""
        if data.get("success") is False or data.get("sucesso") is False:
            raise IntegrationError(
                "Farm API reported a failure",
                details={"error": data.get("error") or data.get("erro")},
            )
        if "data" in data:
            return data["data"]
        if "dados" in data:
            return data["dados"]
        return data

    # === Activity feed ===

    def list_activities(self, limit: int = 1000) -> list[dict[str, Any]]:
        """Fetch up to ``limit`` recent activities as raw dicts."""
        activities: list[dict[str, Any]] = []
        offset = 0
        while len(activities) < limit:
            page_size = min(FEED_PAGE_SIZE, limit - len(activities))
            payload = self._unwrap(
                self._request(
                    "GET", "/api/discord-logs", params={"limit": page_size, "offset": offset}
                )
            )
            page = payload.get("atividades_recentes") or payload.get("activities") or []
            if not isinstance(page, list):
                raise IntegrationError("Feed page is not a list")
            activities.extend(item for item in page if isinstance(item, dict))

            total = payload.get("total_atividades", payload.get("total"))
            offset += len(page)
            if len(page) < page_size or (isinstance(total, int) and offset >= total):
                break

        self._logger.info("feed_fetched", count=len(activities))
        return activities

    # === Inventory ===

    def get_quantities(self) -> dict[str, int]:
        """Current quantity per inventory item id."""
        payload = self._unwrap(self._request("GET", "/api/inventario"))
        items = payload.get("itens") or payload.get("items") or {}
        if not isinstance(items, dict):
            raise IntegrationError("Inventory items are not a mapping")

        quantities: dict[str, int] = {}
        for item_id, item in items.items():
            if isinstance(item, dict):
                raw = item.get("quantidade", item.get("quantity", 0))
            else:
                raw = item
            try:
                quantities[item_id] = int(raw or 0)
            except (TypeError, ValueError):
                self._logger.warning("inventory_quantity_invalid", item_id=item_id, value=raw)
                quantities[item_id] = 0
        return quantities
