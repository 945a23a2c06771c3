"""Consecutive-failure policy deciding when a product gets hidden."""
from dataclasses import dataclass

from product_sync.constants.sync import NotificationKind


@dataclass(frozen=True)
class ErrorDecision:
    new_error_count: int
    should_hide: bool
    notification: NotificationKind


class ErrorPolicy:
    """
    Pure state transitions for the per-product error counter.

    On failure the counter grows by one and the product is hidden once it
    reaches ``max_errors``. On success it always goes back to zero.
    """

    @staticmethod
    def apply(current_error_count: int, max_errors: int) -> ErrorDecision:
        new_count = max(0, int(current_error_count or 0)) + 1
        should_hide = new_count >= max(1, int(max_errors))
        return ErrorDecision(
            new_error_count=new_count,
            should_hide=should_hide,
            notification=NotificationKind.HIDDEN if should_hide else NotificationKind.FAILURE,
        )

    @staticmethod
    def reset() -> int:
        return 0
