from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from fxgov.config import Settings
from fxgov.core.exceptions import (
    BrokerError,
    MarketHaltedError,
    PermanentBrokerError,
    TransientBrokerError,
)
from fxgov.core.instruments import pip_divisor
from fxgov.utils.env import ENV

TRANSIENT_STATUS = (429, 503)
MARKET_HALTED = "MARKET_HALTED"


@dataclass(frozen=True, slots=True)
class Quote:
    """
    Top-of-book snapshot for one instrument.

    Attributes:
        pair (str): Instrument, e.g. ``USD_CAD``.
        bid (float): Best bid.
        ask (float): Best ask.
    """

    pair: str
    bid: float
    ask: float

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2.0

    @property
    def spread_pips(self) -> float:
        return (self.ask - self.bid) / pip_divisor(self.pair)


@dataclass(frozen=True, slots=True)
class BrokerFill:
    """Outcome of a filled market order."""

    order_id: str
    trade_id: Optional[str]
    price: float
    units: int
    latency_ms: int
    half_spread_cost: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def _error_code(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("errorCode") or payload.get("rejectReason") or "")


def _section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return ``payload[key]`` when it is an object, else an empty dict."""
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _number(value: Any, label: str) -> float:
    """
    Parse a broker-supplied decimal string.

    Args:
        value (Any): Raw field value (OANDA sends decimals as strings).
        label (str): Field name used in the error message.

    Returns:
        float: The finite parsed value.

    Raises:
        PermanentBrokerError: The value is missing, non-numeric or not finite.
    """
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise PermanentBrokerError(f"Malformed {label} in broker response: {value!r}") from exc
    if not math.isfinite(number):
        raise PermanentBrokerError(f"Non-finite {label} in broker response: {value!r}")
    return number


class OandaClient:
    """
    Minimal OANDA v3 REST adapter: account summary, pricing and FOK market orders.

    Transient failures (429, 503, ``MARKET_HALTED``, connection errors) are
    retried ``retries`` times with a linear ``backoff * attempt`` delay. After
    that they surface as :class:`TransientBrokerError` (or
    :class:`MarketHaltedError`); everything else, including malformed
    response bodies, surfaces as :class:`PermanentBrokerError`.

    Attributes:
        token (str): API bearer token.
        account_id (str): OANDA account id.
        base_url (str): REST host for the selected environment.
        timeout (float): Request timeout in seconds.
        retries (int): Retries for transient failures.
        backoff (float): Linear backoff factor in seconds.
        log (logging.Logger): The logger instance.
    """

    def __init__(
        self,
        token: str,
        account_id: str,
        base_url: str,
        *,
        timeout: float | None = None,
        retries: int | None = None,
        backoff: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initializes the OandaClient.

        Args:
            token (str): API bearer token.
            account_id (str): OANDA account id.
            base_url (str): REST host, e.g. ``https://api-fxpractice.oanda.com``.
            timeout (float | None): Request timeout; defaults to ``HTTP_TIMEOUT_SECS``.
            retries (int | None): Transient retries; defaults to ``HTTP_RETRIES``.
            backoff (float | None): Backoff factor; defaults to ``HTTP_BACKOFF``.
            logger (logging.Logger | None): The logger instance.
        """
        self.token = token
        self.account_id = account_id
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout if timeout is not None else ENV.HTTP_TIMEOUT_SECS)
        self.retries = max(0, retries if retries is not None else ENV.HTTP_RETRY_ATTEMPTS)
        self.backoff = max(
            0.0, backoff if backoff is not None else ENV.HTTP_RETRY_BACKOFF_SEC
        )
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, config: Settings) -> "OandaClient":
        """
        Build a client for the environment selected by ``OANDA_ENV``.

        Args:
            config (Settings): Application settings snapshot.

        Returns:
            OandaClient: Client bound to the environment's token, account and host.
        """
        return cls(
            config.oanda_token,
            config.oanda_account_id,
            config.oanda_base_url,
            timeout=config.http_timeout,
            retries=config.http_retries,
            backoff=config.http_backoff,
        )

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "fxgov/1.0 (+oanda-client)",
        }

    def _classify(self, resp: requests.Response) -> BrokerError:
        try:
            payload = resp.json()
        except ValueError:
            payload = {"raw": resp.text}
        code = _error_code(payload)
        message = f"{resp.status_code} {json.dumps(payload)[:200]}"
        if code == MARKET_HALTED:
            return MarketHaltedError(message, status_code=resp.status_code, reason=code)
        if resp.status_code in TRANSIENT_STATUS:
            return TransientBrokerError(message, status_code=resp.status_code, reason=code)
        return PermanentBrokerError(message, status_code=resp.status_code, reason=code)

    def _decode(self, resp: requests.Response) -> Dict[str, Any]:
        """
        Decode a 2xx body, which must be a JSON object.

        Raises:
            PermanentBrokerError: The body is not JSON or not an object.
        """
        try:
            payload = resp.json()
        except ValueError as exc:
            raise PermanentBrokerError(
                f"Non-JSON broker response: {str(resp.text)[:200]}",
                status_code=resp.status_code,
            ) from exc
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise PermanentBrokerError(
                f"Unexpected broker payload type {type(payload).__name__}",
                status_code=resp.status_code,
            )
        return payload

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Makes an HTTP request with retries.

        Args:
            method (str): The HTTP method.
            path (str): Path below ``base_url``.
            **kwargs: Additional keyword arguments for ``requests.request``.

        Returns:
            Dict[str, Any]: The decoded JSON object of a 2xx response.

        Raises:
            TransientBrokerError: Retries exhausted on a transient failure.
            PermanentBrokerError: Non-retryable status or malformed body.
        """
        url = f"{self.base_url}{path}"
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        attempt = 0
        while True:
            try:
                resp = requests.request(
                    method, url, headers=headers, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as e:
                error: BrokerError = TransientBrokerError(str(e))
            else:
                if 200 <= resp.status_code < 300:
                    return self._decode(resp)
                error = self._classify(resp)

            if isinstance(error, TransientBrokerError) and attempt < self.retries:
                delay = self.backoff * (attempt + 1)
                self.log.warning(
                    "HTTP %s %s -> %s; retrying in %.1fs (attempt %s/%s)",
                    method,
                    path,
                    error,
                    delay,
                    attempt + 1,
                    self.retries,
                )
                time.sleep(delay)
                attempt += 1
                continue
            raise error

    def health_check(self) -> bool:
        """
        Checks that the account summary endpoint answers.

        Returns:
            bool: True if the broker is reachable with these credentials.
        """
        try:
            self._request("GET", f"/v3/accounts/{self.account_id}/summary")
            return True
        except BrokerError as e:
            self.log.error("OANDA health_check failed: %s", e)
            return False

    def get_account_balance(self) -> float:
        """
        Fetches the account balance.

        Returns:
            float: Balance in account currency.

        Raises:
            BrokerError: Request failed or the summary carries no usable balance.
        """
        payload = self._request("GET", f"/v3/accounts/{self.account_id}/summary")
        balance = _section(payload, "account").get("balance")
        if balance is None:
            raise PermanentBrokerError(
                f"Missing balance in account summary: {json.dumps(payload)[:200]}"
            )
        return _number(balance, "balance")

    def get_price(self, pair: str) -> Quote:
        """
        Fetches the current top of book for ``pair``.

        Args:
            pair (str): Instrument, e.g. ``EUR_USD``.

        Returns:
            Quote: Best bid and ask.

        Raises:
            BrokerError: Request failed or the book is empty or malformed.
        """
        payload = self._request(
            "GET",
            f"/v3/accounts/{self.account_id}/pricing",
            params={"instruments": pair},
        )
        prices = payload.get("prices")
        if not isinstance(prices, list) or not prices or not isinstance(prices[0], dict):
            raise PermanentBrokerError(f"No price returned for {pair}")
        row = prices[0]
        bids = row.get("bids")
        asks = row.get("asks")
        if not isinstance(bids, list) or not isinstance(asks, list) or not bids or not asks:
            raise PermanentBrokerError(f"Empty book for {pair}")
        if not isinstance(bids[0], dict) or not isinstance(asks[0], dict):
            raise PermanentBrokerError(f"Malformed book for {pair}")
        bid = _number(bids[0].get("price"), "bid")
        ask = _number(asks[0].get("price"), "ask")
        if bid <= 0 or ask < bid:
            raise PermanentBrokerError(f"Crossed or non-positive book for {pair}: {bid}/{ask}")
        return Quote(pair=pair, bid=bid, ask=ask)

    def place_market_order(self, pair: str, units: int) -> BrokerFill:
        """
        Submit a fill-or-kill market order. Positive units buy.

        Args:
            pair (str): Instrument to trade.
            units (int): Signed unit count; must be non-zero.

        Returns:
            BrokerFill: Validated fill details.

        Raises:
            PermanentBrokerError: the order was cancelled or the response is malformed.
            MarketHaltedError: the order was cancelled because the market is halted.
        """
        if units == 0:
            raise ValueError("units must be non-zero")

        body = {
            "order": {
                "type": "MARKET",
                "instrument": pair,
                "units": str(int(units)),
                "timeInForce": "FOK",
                "positionFill": "DEFAULT",
            }
        }
        started = time.monotonic()
        payload = self._request(
            "POST", f"/v3/accounts/{self.account_id}/orders", json=body
        )
        latency_ms = int((time.monotonic() - started) * 1000)

        cancel = _section(payload, "orderCancelTransaction")
        if cancel or payload.get("orderCancelTransaction"):
            reason = str(cancel.get("reason") or "CANCELLED")
            if reason == MARKET_HALTED:
                raise MarketHaltedError(f"Order cancelled: {reason}", reason=reason)
            raise PermanentBrokerError(f"Order cancelled: {reason}", reason=reason)

        fill = _section(payload, "orderFillTransaction")
        order_id = _section(payload, "orderCreateTransaction").get("id") or fill.get("orderID")
        price = fill.get("price")
        if not order_id or price is None:
            raise PermanentBrokerError(
                f"Missing fill in order response: {json.dumps(payload)[:200]}"
            )
        fill_price = _number(price, "fill price")
        filled_units = int(_number(fill.get("units") or units, "filled units"))
        trade_id = _section(fill, "tradeOpened").get("tradeID")
        half_spread = fill.get("halfSpreadCost")
        self.log.info(
            "Filled %s x%s @ %s -> order=%s trade=%s (%sms)",
            pair,
            filled_units,
            fill_price,
            order_id,
            trade_id,
            latency_ms,
        )
        return BrokerFill(
            order_id=str(order_id),
            trade_id=str(trade_id) if trade_id else None,
            price=fill_price,
            units=filled_units,
            latency_ms=latency_ms,
            half_spread_cost=(
                _number(half_spread, "halfSpreadCost") if half_spread is not None else None
            ),
            raw=payload,
        )


__all__ = ["OandaClient", "Quote", "BrokerFill"]
