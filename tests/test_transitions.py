import pytest

from rmatrack.records import CASE_STATUSES
from rmatrack.rma.transitions import TRANSITIONS, allowed_next, check_transition


def test_every_status_has_a_row():
    assert set(TRANSITIONS) == set(CASE_STATUSES)
    for targets in TRANSITIONS.values():
        assert set(targets) <= set(CASE_STATUSES)


def test_terminal_statuses_have_no_exits():
    assert allowed_next("Completed") == ()
    assert allowed_next("Rejected") == ()


def test_listed_and_off_table_moves():
    assert check_transition("Under Review", "Sent to CDS") is True
    assert check_transition("Under Review", "Under Review") is True
    assert check_transition("Under Review", "Completed") is False
    with pytest.raises(ValueError):
        check_transition("Under Review", "Completed", strict=True)
    with pytest.raises(ValueError):
        check_transition("Under Review", "Misplaced")
