import pytest

from clipflow.utils.duration import (
    calculate_total_duration,
    is_valid_clip_duration,
    suggest_clip_count,
    validation_message,
)


def test_clip_duration_bounds():
    assert is_valid_clip_duration(1)
    assert is_valid_clip_duration(120)
    assert not is_valid_clip_duration(0)
    assert not is_valid_clip_duration(121)


def test_single_clip_only_checks_clip_bounds():
    assert validation_message(1, 5) is None
    assert validation_message(1, 120) is None
    assert "between 1 and 120" in validation_message(1, 200)


def test_multi_clip_total_must_be_about_a_minute():
    assert calculate_total_duration(3, 20) == 60
    assert validation_message(3, 20) is None
    assert "at least 55" in validation_message(2, 10)
    assert "cannot exceed 65" in validation_message(4, 20)


@pytest.mark.parametrize("per_clip,expected", [(20, 3), (10, 6), (13, 5), (40, 1), (90, 1)])
def test_suggested_clip_count_passes_validation(per_clip, expected):
    count = suggest_clip_count(per_clip)
    assert count == expected
    assert validation_message(count, per_clip) is None


def test_no_suggestion_for_invalid_clip_duration():
    assert suggest_clip_count(0) is None
    assert suggest_clip_count(500) is None
