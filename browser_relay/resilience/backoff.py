"""Retry policies and exponential backoff with jitter.

A ``RetryPolicy`` is looked up by command kind; kinds without their own
policy use the default one.  Delays are in seconds.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field

from browser_relay.core.errors import ErrorCategory

logger = logging.getLogger(__name__)

# Upper bound of the uniform jitter, as a fraction of the computed delay.
JITTER_RATIO = 0.1

# Never retried, whatever a policy lists.
NON_RETRYABLE: frozenset[ErrorCategory] = frozenset({ErrorCategory.VALIDATION, ErrorCategory.PERMISSION})


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry budget for one command kind.

    Attributes:
        max_retries:        Retries after the first attempt.
        base_delay:         Delay before the first retry, in seconds.
        max_delay:          Cap on the pre-jitter delay, in seconds.
        backoff_multiplier: Growth factor per attempt.
        retryable:          Error categories worth another attempt.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable: frozenset[ErrorCategory] = field(
        default_factory=lambda: frozenset({ErrorCategory.NETWORK, ErrorCategory.SELECTOR, ErrorCategory.TIMEOUT})
    )

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        object.__setattr__(self, "retryable", frozenset(self.retryable))

    def allows(self, category: ErrorCategory) -> bool:
        return category in self.retryable and category not in NON_RETRYABLE


DEFAULT_POLICY = RetryPolicy()

DEFAULT_COMMAND_POLICIES: dict[str, RetryPolicy] = {
    "navigate": RetryPolicy(
        max_retries=5,
        base_delay=2.0,
        max_delay=15.0,
        backoff_multiplier=2.0,
        retryable=frozenset({ErrorCategory.NETWORK, ErrorCategory.TIMEOUT}),
    ),
    "click": RetryPolicy(
        max_retries=3,
        base_delay=0.5,
        max_delay=3.0,
        backoff_multiplier=1.5,
        retryable=frozenset({ErrorCategory.SELECTOR}),
    ),
    "extract": RetryPolicy(
        max_retries=2,
        base_delay=1.0,
        max_delay=5.0,
        backoff_multiplier=2.0,
        retryable=frozenset({ErrorCategory.SELECTOR, ErrorCategory.TIMEOUT}),
    ),
}


class BackoffPolicyResolver:
    """Maps command kinds to retry policies and computes retry delays.

    Args:
        policies: Per-kind policies; defaults to ``DEFAULT_COMMAND_POLICIES``.
        default:  Fallback for kinds without their own policy.
        rng:      Random source for jitter (seed it for reproducible tests).
    """

    def __init__(
        self,
        policies: Mapping[str, RetryPolicy] | None = None,
        default: RetryPolicy = DEFAULT_POLICY,
        rng: random.Random | None = None,
    ) -> None:
        self._policies: dict[str, RetryPolicy] = dict(DEFAULT_COMMAND_POLICIES if policies is None else policies)
        self._default = default
        self._rng = rng or random.Random()

    @property
    def default(self) -> RetryPolicy:
        return self._default

    def register(self, command: str, policy: RetryPolicy) -> None:
        self._policies[command] = policy

    def policy_for(self, command: str) -> RetryPolicy:
        return self._policies.get(command, self._default)

    @staticmethod
    def base_delay_for(policy: RetryPolicy, attempt: int) -> float:
        """Pre-jitter delay: ``min(base * multiplier**attempt, max_delay)``."""
        return min(policy.base_delay * policy.backoff_multiplier**attempt, policy.max_delay)

    def delay_for(self, policy: RetryPolicy, attempt: int) -> float:
        """Delay before retrying after 0-based *attempt*, with up to 10% jitter added."""
        delay = self.base_delay_for(policy, attempt)
        return delay + self._rng.uniform(0, JITTER_RATIO * delay)

    @staticmethod
    def exhausted(policy: RetryPolicy, attempt: int) -> bool:
        return attempt >= policy.max_retries
