"""Error counter transitions."""
import pytest

from product_sync.constants.sync import NotificationKind
from product_sync.services.error_policy import ErrorPolicy


def test_reset_is_always_zero():
    assert ErrorPolicy.reset() == 0


@pytest.mark.parametrize("max_errors", [1, 2, 3, 5, 99])
def test_hide_flips_exactly_at_threshold(max_errors):
    count = 0
    flags = []
    for _ in range(max_errors + 3):
        decision = ErrorPolicy.apply(count, max_errors)
        assert decision.new_error_count == count + 1
        count = decision.new_error_count
        flags.append(decision.should_hide)

    # False until the crossing point, then True for every further failure
    assert flags == [False] * (max_errors - 1) + [True] * 4


def test_notification_kind_follows_hide_flag():
    assert ErrorPolicy.apply(0, 3).notification == NotificationKind.FAILURE
    assert ErrorPolicy.apply(2, 3).notification == NotificationKind.HIDDEN


def test_counter_restarts_after_success():
    count = ErrorPolicy.apply(ErrorPolicy.apply(0, 3).new_error_count, 3).new_error_count
    assert count == 2
    count = ErrorPolicy.reset()
    decision = ErrorPolicy.apply(count, 3)
    assert decision.new_error_count == 1
    assert not decision.should_hide


def test_bad_inputs_are_normalised():
    assert ErrorPolicy.apply(None, 1).new_error_count == 1
    assert ErrorPolicy.apply(-4, 0).should_hide
