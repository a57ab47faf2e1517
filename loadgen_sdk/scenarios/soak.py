"""
Soak: half an hour at 500 VUs to surface leaks and slow degradation.
"""

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.client import WalletClient
from loadgen_sdk.options import LoadOptions
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scenarios.common import (
    balance_teardown,
    faster_than,
    no_server_error,
    operation_mix,
    status_is,
    wallet_operation,
    wallet_setup,
)

NAME = "soak"
DESCRIPTION = "2m ramp to 500 VUs, 30m hold, 2m ramp down, 50/50 mix"
OPENING_DEPOSIT = 5000000.00

OPTIONS = LoadOptions(
    stages=[
        {"duration": "2m", "target": 500},
        {"duration": "30m", "target": 500},
        {"duration": "2m", "target": 0},
    ],
    thresholds={
        "http_req_duration": ["p(95)<500", "p(99)<1000"],
        "http_req_failed": ["rate<0.01"],
    },
    think_time=0.1,
)


def build(client: WalletClient) -> Scenario:
    return Scenario(
        name=NAME,
        description=DESCRIPTION,
        options=OPTIONS,
        setup=wallet_setup(client, OPENING_DEPOSIT),
        iteration=wallet_operation(client, operation_mix(0.5), 1, 100),
        teardown=balance_teardown(client, report_times=True),
        checks=CheckSet.from_mapping({
            "status is 200": status_is(200),
            "no 5xx errors": no_server_error,
            "response time < 1000ms": faster_than(1000),
        }),
    )
