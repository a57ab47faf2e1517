"""
Unit tests for the wallet API client.
"""

import json

import httpx
import pytest

from loadgen_sdk.client import WalletClient
from loadgen_sdk.common.config import EngineSettings
from loadgen_sdk.common.errors import PreconditionError



def test_create_and_fund_wallet(fake_wallet, wallet_client):
    wallet_id = wallet_client.create_wallet()
    wallet_client.deposit(wallet_id, 1000.0)
    assert fake_wallet.balances[wallet_id] == 1000.0
    assert wallet_client.get_balance(wallet_id) == 1000.0


def test_create_wallet_non_201_is_precondition_failure(make_wallet_service):
    service = make_wallet_service(create_status=500)
    with service.client() as client:
        with pytest.raises(PreconditionError) as exc_info:
            client.create_wallet()
    assert exc_info.value.status_code == 500


def test_create_wallet_without_id_is_precondition_failure():
    transport = httpx.MockTransport(lambda request: httpx.Response(201, json={}))
    with WalletClient("http://wallet.test", transport=transport) as client:
        with pytest.raises(PreconditionError, match="walletId"):
            client.create_wallet()


def test_failed_opening_deposit_is_precondition_failure(make_wallet_service):
    service = make_wallet_service(deposit_status=503)
    with service.client() as client:
        wallet_id = client.create_wallet()
        with pytest.raises(PreconditionError) as exc_info:
            client.deposit(wallet_id, 100.0)
    assert exc_info.value.status_code == 503


def test_operate_sends_payload_and_returns_result():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "success"})

    with WalletClient("http://wallet.test", transport=httpx.MockTransport(handler)) as client:
        result = client.operate("w-1", "WITHDRAW", 7, tags={"operation": "WITHDRAW"})

    assert seen == [{"walletId": "w-1", "operationType": "WITHDRAW", "amount": 7}]
    assert result.status_code == 200
    assert result.json() == {"status": "success"}
    assert result.tags == {"operation": "WITHDRAW"}
    assert result.duration_micros >= 0
    assert result.error is None


def test_operate_transport_error_becomes_status_zero():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with WalletClient("http://wallet.test", transport=httpx.MockTransport(handler)) as client:
        result = client.operate("w-1", "DEPOSIT", 1, tags={"operation": "DEPOSIT"})

    assert result.status_code == 0
    assert not result.received
    assert "ConnectError" in result.error
    assert result.tags == {"operation": "DEPOSIT"}


def test_operate_timeout_becomes_status_zero():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with WalletClient("http://wallet.test", transport=httpx.MockTransport(handler)) as client:
        result = client.operate("w-1", "DEPOSIT", 1)
    assert result.status_code == 0
    assert "ReadTimeout" in result.error


def test_get_balance_of_unknown_wallet_is_none(wallet_client):
    assert wallet_client.get_balance("missing") is None


def test_from_settings_uses_base_url():
    settings = EngineSettings(base_url="http://wallet.example:9000/")
    transport = httpx.MockTransport(lambda request: httpx.Response(201, json={"walletId": str(request.url)}))
    with WalletClient.from_settings(settings, transport=transport) as client:
        assert client.base_url == "http://wallet.example:9000"
        assert client.create_wallet() == "http://wallet.example:9000/api/v1/wallet/create"
