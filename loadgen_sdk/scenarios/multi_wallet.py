"""
Multi-wallet: load spread over ten wallets to exercise per-wallet locking.
"""

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.client import WalletClient
from loadgen_sdk.options import LoadOptions
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scenarios.common import (
    balance_teardown,
    no_server_error,
    operation_mix,
    status_is,
    wallet_operation,
    wallet_setup,
)

NAME = "multi_wallet"
DESCRIPTION = "100 VUs for 2m over 10 wallets, 60/40 deposit/withdraw"
WALLETS = 10
OPENING_DEPOSIT = 50000.00

OPTIONS = LoadOptions(
    vus=100,
    duration="2m",
    thresholds={
        "http_req_duration": ["p(95)<300"],
        "http_req_failed": ["rate<0.01"],
    },
    think_time=0.05,
)


def build(client: WalletClient) -> Scenario:
    return Scenario(
        name=NAME,
        description=DESCRIPTION,
        options=OPTIONS,
        setup=wallet_setup(client, OPENING_DEPOSIT, wallets=WALLETS),
        iteration=wallet_operation(client, operation_mix(0.6), 1, 50),
        teardown=balance_teardown(client),
        checks=CheckSet.from_mapping({
            "status is 200": status_is(200),
            "no 5xx errors": no_server_error,
        }),
    )
