"""
Pytest configuration and shared fixtures.
"""

import json
import sys
import threading
import time
import uuid
from pathlib import Path

import httpx
import pytest

# Add project root to path
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from loadgen_sdk.client import WalletClient  # noqa: E402
from loadgen_sdk.metrics import MetricAggregator  # noqa: E402

BASE_URL = "http://wallet.test"


class FakeWalletService:
    """
    In-memory wallet API served through httpx.MockTransport.

    Attributes:
        create_status: Status returned by POST /api/v1/wallet/create.
        deposit_status: Status returned for the opening deposit.
        conflict_ratio: Fraction (in tenths) of load operations answered 409.
        server_error_ratio: Fraction (in tenths) of load operations answered 500.
        latency: Seconds each load operation sleeps before answering.
    """

    def __init__(
        self,
        create_status: int = 201,
        deposit_status: int = 200,
        conflict_ratio: float = 0.0,
        server_error_ratio: float = 0.0,
        latency: float = 0.0,
    ):
        self.create_status = create_status
        self.deposit_status = deposit_status
        self.conflict_ratio = conflict_ratio
        self.server_error_ratio = server_error_ratio
        self.latency = latency

        self.balances = {}
        self.funded = set()
        self.creates = 0
        self.operations = 0
        self.balance_reads = 0
        self._lock = threading.Lock()

    def _operation_status(self, index: int) -> int:
        slot = index % 10
        conflicts = int(round(self.conflict_ratio * 10))
        errors = int(round(self.server_error_ratio * 10))
        if slot < conflicts:
            return 409
        if slot < conflicts + errors:
            return 500
        return 200

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == "/api/v1/wallet/create":
            with self._lock:
                self.creates += 1
                if self.create_status != 201:
                    return httpx.Response(self.create_status, json={"status": "error", "error": "boom"})
                wallet_id = str(uuid.uuid4())
                self.balances[wallet_id] = 0.0
            return httpx.Response(201, json={"walletId": wallet_id})

        if request.method == "POST" and path == "/api/v1/wallet":
            body = json.loads(request.content)
            wallet_id = body["walletId"]
            amount = float(body["amount"])
            with self._lock:
                if wallet_id not in self.funded:
                    # First operation on a wallet is the opening deposit
                    self.funded.add(wallet_id)
                    if self.deposit_status != 200:
                        return httpx.Response(self.deposit_status, json={"status": "error"})
                    self.balances[wallet_id] += amount
                    return httpx.Response(200, json={"status": "success"})
                index = self.operations
                self.operations += 1
            if self.latency:
                time.sleep(self.latency)
            status = self._operation_status(index)
            if status == 200:
                with self._lock:
                    sign = 1 if body["operationType"] == "DEPOSIT" else -1
                    self.balances[wallet_id] += sign * amount
                return httpx.Response(200, json={"status": "success"})
            return httpx.Response(status, json={"status": "error", "error": "conflict" if status == 409 else "internal"})

        if request.method == "GET" and path.startswith("/api/v1/wallets/"):
            wallet_id = path.rsplit("/", 1)[-1]
            with self._lock:
                self.balance_reads += 1
                if wallet_id not in self.balances:
                    return httpx.Response(404, json={"status": "error"})
                return httpx.Response(200, json={"walletId": wallet_id, "balance": self.balances[wallet_id]})

        return httpx.Response(404, json={"status": "error", "error": "not found"})

    def client(self) -> WalletClient:
        return WalletClient(BASE_URL, timeout=5.0, max_connections=100, transport=httpx.MockTransport(self.handle))


@pytest.fixture
def fake_wallet():
    """Fake wallet service with default (always succeeding) behavior."""
    return FakeWalletService()


@pytest.fixture
def wallet_client(fake_wallet):
    """WalletClient wired to the fake wallet service."""
    client = fake_wallet.client()
    yield client
    client.close()


@pytest.fixture
def aggregator():
    return MetricAggregator()


@pytest.fixture
def make_wallet_service():
    """Factory for fake wallet services with non-default behavior."""
    return FakeWalletService
