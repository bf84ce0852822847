import pytest

from src.domain.seating import seat_label_sort_key, seat_labels


def test_labels_start_at_one():
    assert seat_labels(3) == ["A1", "A2", "A3"]


def test_labels_reject_empty_show():
    with pytest.raises(ValueError):
        seat_labels(0)


def test_natural_order_puts_a2_before_a10():
    labels = ["A10", "A2", "A1", "A11", "A3"]

    assert sorted(labels, key=seat_label_sort_key) == ["A1", "A2", "A3", "A10", "A11"]


def test_natural_order_groups_rows():
    labels = ["B1", "A10", "b2", "A9"]

    assert sorted(labels, key=seat_label_sort_key) == ["A9", "A10", "B1", "b2"]
