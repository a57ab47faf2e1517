"""
Spike: a sudden jump from 100 to 2000 VUs and back.

Contention on the single wallet makes 409 Conflict an expected outcome here,
so only 5xx responses and transport errors count as failed requests.
"""

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.client import WalletClient
from loadgen_sdk.executor import expected_statuses
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

NAME = "spike"
DESCRIPTION = "100 VUs, spike to 2000 for 30s, back to 100, 70/30 mix, 409 tolerated"
OPENING_DEPOSIT = 500000.00

OPTIONS = LoadOptions(
    stages=[
        {"duration": "10s", "target": 100},
        {"duration": "20s", "target": 100},
        {"duration": "10s", "target": 2000},
        {"duration": "30s", "target": 2000},
        {"duration": "10s", "target": 100},
        {"duration": "20s", "target": 100},
        {"duration": "10s", "target": 0},
    ],
    thresholds={
        "http_req_duration": ["p(95)<1000"],
        "http_req_failed": ["rate<0.05"],
    },
    think_time=0.01,
)


def build(client: WalletClient) -> Scenario:
    return Scenario(
        name=NAME,
        description=DESCRIPTION,
        options=OPTIONS,
        setup=wallet_setup(client, OPENING_DEPOSIT),
        iteration=wallet_operation(client, operation_mix(0.7), 1, 50),
        teardown=balance_teardown(client),
        checks=CheckSet.from_mapping({
            "status is 200 or 409": status_is(200, 409),
            "no 5xx errors": no_server_error,
        }),
        is_failure=expected_statuses((200, 499)),
    )
