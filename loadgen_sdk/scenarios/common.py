"""
Building blocks shared by the wallet scenarios.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Tuple

from loadgen_sdk.checks import Predicate
from loadgen_sdk.client import DEPOSIT, WITHDRAW, WalletClient
from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.executor import IterationFn, IterationResult, VUState, uniform_amount, weighted_choice

logger = get_logger(__name__)

WALLET_OPERATIONS = "wallet_operations"


@dataclass(frozen=True)
class WalletContext:
    """
    Read-only state produced by setup and shared by every VU.

    Attributes:
        wallet_ids: Wallets the load is spread over.
        initial_balance: Opening deposit made into each wallet.
        started_at: When setup finished.
    """
    wallet_ids: Tuple[str, ...]
    initial_balance: float
    started_at: datetime

    @property
    def wallet_id(self) -> str:
        return self.wallet_ids[0]


def operation_mix(deposit_share: float) -> Dict[str, float]:
    """Weights for a DEPOSIT/WITHDRAW mix, e.g. 0.6 for 60% deposits."""
    if not 0.0 <= deposit_share <= 1.0:
        raise ValueError(f"deposit_share must be within [0, 1] (got {deposit_share})")
    return {DEPOSIT: deposit_share, WITHDRAW: 1.0 - deposit_share}


def wallet_setup(client: WalletClient, opening_deposit: float, wallets: int = 1) -> Callable[[], WalletContext]:
    """
    Build a setup function that creates wallets and funds each of them.

    Any failure raises PreconditionError from the client, which aborts the
    run before load starts.
    """
    def setup() -> WalletContext:
        logger.info(f"Creating {wallets} test wallet(s)...")
        wallet_ids = []
        for _ in range(wallets):
            wallet_id = client.create_wallet()
            client.deposit(wallet_id, opening_deposit)
            wallet_ids.append(wallet_id)
        logger.info(f"Initial deposit of {opening_deposit:.2f} completed. Starting load test...")
        return WalletContext(
            wallet_ids=tuple(wallet_ids),
            initial_balance=float(opening_deposit),
            started_at=datetime.now(timezone.utc),
        )

    return setup


def balance_teardown(client: WalletClient, report_times: bool = False) -> Callable[[WalletContext], None]:
    """Build a teardown function that logs each wallet's final balance."""
    def teardown(context: WalletContext) -> None:
        if report_times:
            logger.info(f"Start time: {context.started_at.isoformat()}")
            logger.info(f"End time: {datetime.now(timezone.utc).isoformat()}")
        for wallet_id in context.wallet_ids:
            balance = client.get_balance(wallet_id)
            if balance is None:
                continue
            logger.info(f"Wallet {wallet_id}: final balance {balance:.2f}, initial balance {context.initial_balance:.2f}")

    return teardown


def wallet_operation(
    client: WalletClient,
    weights: Mapping[str, float],
    low: int,
    high: int,
    tag_operation: bool = False,
) -> IterationFn:
    """
    Build an iteration that sends one randomly chosen operation.

    The wallet is drawn uniformly from the context, the operation from
    weights and the amount uniformly from [low, high].
    """
    weights = dict(weights)

    def iteration(context: WalletContext, vu: VUState) -> IterationResult:
        wallet_ids = context.wallet_ids
        wallet_id = wallet_ids[0] if len(wallet_ids) == 1 else vu.rng.choice(wallet_ids)
        operation = weighted_choice(vu.rng, weights)
        amount = uniform_amount(vu.rng, low, high)
        tags = {"operation": operation} if tag_operation else None
        return client.operate(wallet_id, operation, amount, tags=tags)

    return iteration


def status_is(*codes: int) -> Predicate:
    expected = frozenset(codes)
    return lambda r: r.status_code in expected


def no_server_error(result: IterationResult) -> bool:
    return result.status_code < 500


def faster_than(ms: float) -> Predicate:
    return lambda r: r.duration_ms < ms


def response_received(result: IterationResult) -> bool:
    return result.received
