"""
Stress: step up to 3000 VUs to find where the service breaks.
"""

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.client import WalletClient
from loadgen_sdk.options import LoadOptions
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scenarios.common import (
    balance_teardown,
    no_server_error,
    operation_mix,
    response_received,
    wallet_operation,
    wallet_setup,
)

NAME = "stress"
DESCRIPTION = "Step ramp 500/1000/2000/3000 VUs, 2m hold at 3000, 80/20 mix"
OPENING_DEPOSIT = 1000000.00

OPTIONS = LoadOptions(
    stages=[
        {"duration": "1m", "target": 500},
        {"duration": "1m", "target": 1000},
        {"duration": "1m", "target": 2000},
        {"duration": "1m", "target": 3000},
        {"duration": "2m", "target": 3000},
        {"duration": "1m", "target": 0},
    ],
    thresholds={
        "http_req_duration": ["p(99)<2000"],
        "http_req_failed": ["rate<0.10"],
    },
    think_time=0.01,
)


def build(client: WalletClient) -> Scenario:
    return Scenario(
        name=NAME,
        description=DESCRIPTION,
        options=OPTIONS,
        setup=wallet_setup(client, OPENING_DEPOSIT),
        iteration=wallet_operation(client, operation_mix(0.8), 1, 20),
        teardown=balance_teardown(client),
        checks=CheckSet.from_mapping({
            "no 5xx errors": no_server_error,
            "response received": response_received,
        }),
    )
