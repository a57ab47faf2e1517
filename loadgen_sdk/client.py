"""
Wallet API client.

Thin httpx wrapper around the three endpoints of the wallet service under
test. Setup calls raise PreconditionError when the service does not confirm
the state a run depends on; load calls never raise and return an
IterationResult instead.
"""

import json
import time
from typing import Dict, Optional

import httpx

from loadgen_sdk.common.config import DEFAULT_BASE_URL, EngineSettings
from loadgen_sdk.common.errors import PreconditionError
from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.executor import IterationResult

logger = get_logger(__name__)

CREATE_PATH = "/api/v1/wallet/create"
OPERATION_PATH = "/api/v1/wallet"
BALANCE_PATH = "/api/v1/wallets/{wallet_id}"

DEPOSIT = "DEPOSIT"
WITHDRAW = "WITHDRAW"


class WalletClient:
    """
    Shared HTTP client for one run.

    A single httpx.Client (and its connection pool) is shared by every VU.

    Example:
        with WalletClient("http://localhost:8080") as client:
            wallet_id = client.create_wallet()
            client.deposit(wallet_id, 1000)
            result = client.operate(wallet_id, "WITHDRAW", 10)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        max_connections: int = 1000,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            base_url: Service base URL.
            timeout: Per-request timeout in seconds.
            max_connections: Connection pool size.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "WalletClient":
        return cls(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_connections=settings.max_connections,
            transport=transport,
        )

    def create_wallet(self) -> str:
        """
        Create a wallet.

        Returns:
            The new wallet id.

        Raises:
            PreconditionError: If the service does not answer 201 with a walletId.
        """
        try:
            response = self._client.post(CREATE_PATH)
        except httpx.HTTPError as e:
            raise PreconditionError(f"Failed to create wallet: {e}") from e
        if response.status_code != 201:
            raise PreconditionError(
                f"Failed to create wallet: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            wallet_id = response.json()["walletId"]
        except (ValueError, KeyError, TypeError) as e:
            raise PreconditionError(
                f"Wallet create response has no walletId: {response.text[:200]}",
                status_code=response.status_code,
            ) from e
        logger.info(f"Wallet created: {wallet_id}")
        return wallet_id

    def deposit(self, wallet_id: str, amount: float) -> None:
        """
        Make a setup deposit that must succeed.

        Raises:
            PreconditionError: If the deposit is not answered with 200.
        """
        try:
            response = self._client.post(OPERATION_PATH, content=_payload(wallet_id, DEPOSIT, amount))
        except httpx.HTTPError as e:
            raise PreconditionError(f"Opening deposit for {wallet_id} failed: {e}") from e
        if response.status_code != 200:
            raise PreconditionError(
                f"Opening deposit for {wallet_id} failed: {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(f"Deposited {amount:.2f} into {wallet_id}")

    def operate(
        self,
        wallet_id: str,
        operation: str,
        amount: float,
        tags: Optional[Dict[str, str]] = None,
    ) -> IterationResult:
        """
        Send one deposit or withdrawal.

        Transport errors and timeouts come back as a result with status 0.
        """
        started = time.perf_counter()
        try:
            response = self._client.post(OPERATION_PATH, content=_payload(wallet_id, operation, amount))
        except httpx.HTTPError as e:
            return IterationResult.failure(
                f"{type(e).__name__}: {e}",
                duration_micros=_micros_since(started),
                tags=tags,
            )
        return IterationResult(
            status_code=response.status_code,
            body=response.content,
            duration_micros=_micros_since(started),
            tags=dict(tags or {}),
        )

    def get_balance(self, wallet_id: str) -> Optional[float]:
        """Fetch a wallet's balance, or None if the service does not return one."""
        try:
            response = self._client.get(BALANCE_PATH.format(wallet_id=wallet_id))
        except httpx.HTTPError as e:
            logger.warning(f"Failed to get balance for {wallet_id}: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Failed to get balance for {wallet_id}: {response.status_code}")
            return None
        try:
            return float(response.json()["balance"])
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Balance response for {wallet_id} is malformed: {response.text[:200]}")
            return None

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "WalletClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _payload(wallet_id: str, operation: str, amount: float) -> bytes:
    return json.dumps({
        "walletId": wallet_id,
        "operationType": operation,
        "amount": amount,
    }).encode("utf-8")


def _micros_since(started: float) -> int:
    return int((time.perf_counter() - started) * 1_000_000)
