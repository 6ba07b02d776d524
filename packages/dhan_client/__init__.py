"""
Dhan REST API client.

Thin async wrapper over the Dhan v2 REST API using httpx. Each method
forwards one call with the access token and returns the decoded JSON.
Upstream failures are raised as ``DhanApiError`` carrying the broker's own
message; nothing is retried here.
"""

from typing import Any, Optional

import httpx

from packages.dhan_config import DhanConfig, get_dhan_config
from packages.structured_logging import get_logger


logger = get_logger(__name__)

# Status reported when the broker could not be reached or answered garbage
UPSTREAM_UNAVAILABLE = 502


class DhanApiError(Exception):
    """Raised when Dhan rejects a call or cannot be reached.

    Attributes:
        status_code: Upstream HTTP status (502 for network/parse failures)
        message: Broker's error message, verbatim where available
        payload: Decoded error body, if any
    """

    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


def _error_message(response: httpx.Response, payload: Any) -> str:
    if isinstance(payload, dict):
        for key in ("errorMessage", "message", "error", "remarks"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    text = response.text.strip()
    if text:
        return text
    return f"Dhan API error: {response.status_code} {response.reason_phrase}"


class DhanClient:
    """
    Async Dhan API client.

    Features:
    - access-token / client-id headers on every call
    - Broker error messages preserved in DhanApiError
    - Injectable httpx transport for tests
    """

    def __init__(
        self,
        config: Optional[DhanConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Dhan client.

        Args:
            config: Dhan configuration (uses global if None)
            transport: httpx transport override (tests use httpx.MockTransport)
        """
        self.config = config or get_dhan_config()
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            timeout=self.config.timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Call the Dhan API.

        Args:
            method: HTTP method
            path: Path below the base URL (e.g. "/orders")
            json: JSON body
            params: Query parameters

        Returns:
            Decoded JSON body (None for an empty body)

        Raises:
            DhanConfigError: If no access token is configured
            DhanApiError: On non-2xx status, network failure or malformed JSON
        """
        self.config.require_credentials()
        headers = {"access-token": self.config.access_token}
        if self.config.client_id:
            headers["client-id"] = self.config.client_id

        logger.info("dhan_request", method=method, path=path)
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error("dhan_unreachable", method=method, path=path, error=str(e))
            raise DhanApiError(
                UPSTREAM_UNAVAILABLE, f"Failed to reach Dhan API: {e}"
            ) from e

        payload: Any = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = None
                if response.is_success:
                    logger.error("dhan_invalid_json", method=method, path=path)
                    raise DhanApiError(
                        UPSTREAM_UNAVAILABLE, "Invalid response from Dhan API", response.text
                    )

        if not response.is_success:
            message = _error_message(response, payload)
            logger.warning(
                "dhan_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise DhanApiError(response.status_code, message, payload)

        return payload

    # Orders

    async def place_order(self, order: dict) -> Any:
        return await self.request("POST", "/orders", json=order)

    async def place_sliced_order(self, order: dict) -> Any:
        return await self.request("POST", "/orders/slicing", json=order)

    async def get_order_book(self) -> Any:
        return await self.request("GET", "/orders")

    async def get_order(self, order_id: str) -> Any:
        return await self.request("GET", f"/orders/{order_id}")

    async def get_order_by_correlation_id(self, correlation_id: str) -> Any:
        return await self.request("GET", f"/orders/external/{correlation_id}")

    async def modify_order(self, order_id: str, modification: dict) -> Any:
        return await self.request("PUT", f"/orders/{order_id}", json=modification)

    async def cancel_order(self, order_id: str) -> Any:
        return await self.request("DELETE", f"/orders/{order_id}")

    # Trades

    async def get_trade_book(self) -> Any:
        return await self.request("GET", "/trades")

    async def get_trades_for_order(self, order_id: str) -> Any:
        return await self.request("GET", f"/trades/{order_id}")

    async def get_trade_history(self, from_date: str, to_date: str, page: int = 0) -> Any:
        return await self.request("GET", f"/trades/{from_date}/{to_date}/{page}")

    # Super orders

    async def place_super_order(self, order: dict) -> Any:
        return await self.request("POST", "/super/orders", json=order)

    async def get_super_orders(self) -> Any:
        return await self.request("GET", "/super/orders")

    async def modify_super_order(self, order_id: str, modification: dict) -> Any:
        return await self.request("PUT", f"/super/orders/{order_id}", json=modification)

    async def cancel_super_order_leg(self, order_id: str, leg_name: str) -> Any:
        return await self.request("DELETE", f"/super/orders/{order_id}/{leg_name}")

    # Forever orders

    async def get_forever_orders(self) -> Any:
        return await self.request("GET", "/forever/all")

    async def place_forever_order(self, order: dict) -> Any:
        return await self.request("POST", "/forever/orders", json=order)

    async def modify_forever_order(self, order_id: str, modification: dict) -> Any:
        return await self.request("PUT", f"/forever/orders/{order_id}", json=modification)

    async def cancel_forever_order(self, order_id: str) -> Any:
        return await self.request("DELETE", f"/forever/orders/{order_id}")

    # Portfolio and funds

    async def get_positions(self) -> Any:
        return await self.request("GET", "/positions")

    async def get_holdings(self) -> Any:
        return await self.request("GET", "/holdings")

    async def convert_position(self, conversion: dict) -> Any:
        return await self.request("POST", "/positions/convert", json=conversion)

    async def get_fund_limits(self) -> Any:
        return await self.request("GET", "/fundlimit")

    async def get_ledger(self, from_date: str, to_date: str) -> Any:
        return await self.request(
            "GET", "/ledger", params={"from-date": from_date, "to-date": to_date}
        )

    # Option chain

    async def get_option_chain(self, underlying_scrip: int, underlying_seg: str, expiry: str) -> Any:
        return await self.request(
            "POST",
            "/optionchain",
            json={
                "UnderlyingScrip": underlying_scrip,
                "UnderlyingSeg": underlying_seg,
                "Expiry": expiry,
            },
        )

    async def get_expiry_list(self, underlying_scrip: int, underlying_seg: str) -> Any:
        return await self.request(
            "POST",
            "/optionchain/expirylist",
            json={"UnderlyingScrip": underlying_scrip, "UnderlyingSeg": underlying_seg},
        )


__all__ = [
    "DhanApiError",
    "DhanClient",
    "UPSTREAM_UNAVAILABLE",
]
