"""Pure plan-limit policy for quota-gated capabilities."""

import logging
from typing import Optional

from .domain import FORCE_LIMIT_SENTINEL, PlanConfiguration, QuotaState
from .exceptions import LimitExceeded

logger = logging.getLogger(__name__)

_NO_THEME_CHANGES = "Your current plan doesn't support changing themes."
_NO_CUSTOM_THEMES = "Your current plan doesn't support custom themes."
_THEME_NOT_ALLOWED = "Your current plan doesn't support the '{value}' theme."
_TOO_MANY_THEMES = "Your current plan allows at most {max} custom themes."


class QuotaEvaluator:
    """Answers whether an operation would go over a plan's limits."""

    def __init__(self, plan: PlanConfiguration):
        self.plan = plan

    def _quota(self, capability: str) -> QuotaState:
        return self.plan.quota_for(capability)

    def is_limited(self, capability: str) -> bool:
        """True iff the plan marks ``capability`` as quota-bound at all."""
        return self._quota(capability).is_limited

    def permits_single_theme(self, capability: str) -> bool:
        quota = self._quota(capability)
        single_entry = quota.allowlist is not None and len(quota.allowlist) == 1
        return quota.is_limited and (single_entry or quota.max_allowed == 1)

    def would_exceed(
        self,
        capability: str,
        value: str = "",
        current_count: Optional[int] = None,
    ):
        """
        Raise if using ``value`` would take the plan over its limit.

        A plan permitting exactly one theme rejects every value, and the
        sentinel is rejected on every limited plan. Otherwise a non-empty
        value is rejected when the plan has an allow-list without it, and a
        known ``current_count`` is rejected when it has reached ``max``.

        Raises:
            LimitExceeded: With a human-readable, plan-appropriate message.
        """
        quota = self._quota(capability)
        if not quota.is_limited:
            return

        if self.permits_single_theme(capability):
            self._reject(quota, _NO_THEME_CHANGES)

        if value == FORCE_LIMIT_SENTINEL:
            self._reject(quota, _NO_CUSTOM_THEMES)

        candidate = (value or "").strip().lower()
        if (
            candidate
            and quota.allowlist is not None
            and candidate not in quota.allowlist
        ):
            self._reject(quota, _THEME_NOT_ALLOWED.format(value=value))

        if (
            quota.max_allowed is not None
            and current_count is not None
            and current_count >= quota.max_allowed
        ):
            self._reject(quota, _TOO_MANY_THEMES.format(max=quota.max_allowed))

    def _reject(self, quota: QuotaState, reason: str):
        message = f"{reason} {quota.upgrade_message}".strip()
        logger.info(f"Limit check failed: {message}")
        raise LimitExceeded(message)
