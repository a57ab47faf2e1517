"""
Shipped wallet scenarios.

Each module exposes NAME, DESCRIPTION, OPTIONS and build(client).

Example:
    from loadgen_sdk.scenarios import get_scenario

    scenario = get_scenario("spike", client)
"""

from types import ModuleType
from typing import Dict, List

from loadgen_sdk.client import WalletClient
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scenarios import constant_load, multi_wallet, soak, spike, stress

SCENARIOS: Dict[str, ModuleType] = {
    module.NAME: module
    for module in (constant_load, multi_wallet, soak, spike, stress)
}


def scenario_names() -> List[str]:
    return list(SCENARIOS)


def get_scenario(name: str, client: WalletClient) -> Scenario:
    """
    Build a shipped scenario bound to a client.

    Raises:
        KeyError: If no scenario has that name.
    """
    module = SCENARIOS.get(name)
    if module is None:
        raise KeyError(f"Unknown scenario '{name}'. Available: {', '.join(SCENARIOS)}")
    return module.build(client)


__all__ = ["SCENARIOS", "get_scenario", "scenario_names"]
