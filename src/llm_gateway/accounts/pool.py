"""Account pool with pluggable selection and per-account cool-down."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol, Sequence

from llm_gateway.errors import NoAvailableAccount
from llm_gateway.models.config import AccountConfig

logger = logging.getLogger(__name__)


@dataclass
class Account:
    """A usable upstream credential and its health."""

    id: str
    api_key: str = field(repr=False)
    unhealthy_until: float = 0.0
    last_used: float = 0.0
    failure_reason: str | None = None

    def is_healthy(self, now: float) -> bool:
        return now >= self.unhealthy_until


class SelectionPolicy(Protocol):
    """Chooses one account among healthy candidates."""

    def choose(self, candidates: Sequence[Account]) -> Account: ...


class RoundRobinPolicy:
    """Cycle through accounts in pool order, skipping unhealthy ones."""

    def __init__(self):
        self._last_id: str | None = None

    def choose(self, candidates: Sequence[Account]) -> Account:
        ids = [account.id for account in candidates]
        if self._last_id in ids:
            chosen = candidates[(ids.index(self._last_id) + 1) % len(candidates)]
        else:
            chosen = candidates[0]
        self._last_id = chosen.id
        return chosen


class LeastRecentlyUsedPolicy:
    """Pick the account that has been idle the longest."""

    def choose(self, candidates: Sequence[Account]) -> Account:
        return min(candidates, key=lambda account: account.last_used)


POLICIES: dict[str, Callable[[], SelectionPolicy]] = {
    "round_robin": RoundRobinPolicy,
    "least_recently_used": LeastRecentlyUsedPolicy,
}


class AccountPool:
    """
    Pool of upstream credentials shared by all requests.

    Selection and health marking are serialized under a lock. Status reads
    (``active_count``) iterate an immutable tuple without locking.
    """

    def __init__(
        self,
        accounts: Iterable[Account] = (),
        policy: SelectionPolicy | None = None,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._accounts: tuple[Account, ...] = tuple(accounts)
        self.policy = policy or RoundRobinPolicy()
        self.cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        accounts: Iterable[AccountConfig],
        policy: str = "round_robin",
        cooldown: float = 60.0,
    ) -> "AccountPool":
        return cls(
            (Account(id=a.id, api_key=a.api_key) for a in accounts if a.enabled),
            policy=POLICIES[policy](),
            cooldown=cooldown,
        )

    @property
    def accounts(self) -> tuple[Account, ...]:
        return self._accounts

    @property
    def active_count(self) -> int:
        """Number of accounts currently eligible for selection."""
        now = self._clock()
        return sum(1 for account in self._accounts if account.is_healthy(now))

    def acquire(self, exclude: Iterable[str] = ()) -> Account:
        """
        Select an account for an outbound call.

        Args:
            exclude: Account ids that must not be chosen (already failed
                for this request).

        Raises:
            NoAvailableAccount: If no healthy account remains.
        """
        excluded = set(exclude)
        with self._lock:
            now = self._clock()
            candidates = [
                account
                for account in self._accounts
                if account.id not in excluded and account.is_healthy(now)
            ]
            if not candidates:
                raise NoAvailableAccount(
                    f"No available account ({len(self._accounts)} configured, "
                    f"{self.active_count} healthy)"
                )
            account = self.policy.choose(candidates)
            account.last_used = now
            if account.failure_reason is not None:
                logger.info(f"Account {account.id} back in rotation after cool-down")
                account.failure_reason = None
            return account

    def mark_unhealthy(self, account_id: str, reason: str) -> None:
        """Exclude an account from selection for the cool-down window."""
        with self._lock:
            account = self._find(account_id)
            if account is None:
                return
            account.unhealthy_until = self._clock() + self.cooldown
            account.failure_reason = reason
        logger.warning(
            f"Account {account_id} marked unhealthy ({reason}) for {self.cooldown:.0f}s"
        )

    def revalidate(self, account_id: str) -> bool:
        """Return an account to rotation before its cool-down lapses.

        Returns:
            False if no account has that id.
        """
        with self._lock:
            account = self._find(account_id)
            if account is None:
                return False
            account.unhealthy_until = 0.0
            account.failure_reason = None
        logger.info(f"Account {account_id} revalidated")
        return True

    def configure(self, policy: str, cooldown: float) -> None:
        """Switch selection policy and cool-down; health state is kept."""
        with self._lock:
            if not isinstance(self.policy, POLICIES[policy]):
                self.policy = POLICIES[policy]()
            self.cooldown = cooldown

    def replace_accounts(self, accounts: Iterable[Account]) -> None:
        """Swap the pool contents, keeping health state for surviving ids."""
        with self._lock:
            previous = {account.id: account for account in self._accounts}
            merged = []
            for account in accounts:
                old = previous.get(account.id)
                if old is not None:
                    account.unhealthy_until = old.unhealthy_until
                    account.last_used = old.last_used
                    account.failure_reason = old.failure_reason
                merged.append(account)
            self._accounts = tuple(merged)

    def _find(self, account_id: str) -> Account | None:
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None
