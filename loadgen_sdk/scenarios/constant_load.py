"""
Constant load: 1000 VUs hammering one wallet for a minute.
"""

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.client import WalletClient
from loadgen_sdk.options import LoadOptions
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scenarios.common import (
    WALLET_OPERATIONS,
    balance_teardown,
    faster_than,
    no_server_error,
    operation_mix,
    status_is,
    wallet_operation,
    wallet_setup,
)

NAME = "constant_load"
DESCRIPTION = "1000 VUs for 1m on one wallet, 60/40 deposit/withdraw"
OPENING_DEPOSIT = 100000.00

OPTIONS = LoadOptions(
    vus=1000,
    duration="1m",
    thresholds={
        "http_req_duration": ["p(95)<500", "p(99)<1000"],
        "http_req_failed": ["rate<0.01"],
        "checks": ["rate>0.99"],
    },
    think_time=0.01,
)


def build(client: WalletClient) -> Scenario:
    return Scenario(
        name=NAME,
        description=DESCRIPTION,
        options=OPTIONS,
        setup=wallet_setup(client, OPENING_DEPOSIT),
        iteration=wallet_operation(client, operation_mix(0.6), 1, 10, tag_operation=True),
        teardown=balance_teardown(client),
        checks=CheckSet.from_mapping({
            "status is 200": status_is(200),
            "no 5xx errors": no_server_error,
            "response time < 500ms": faster_than(500),
        }),
        success_metric=WALLET_OPERATIONS,
    )
