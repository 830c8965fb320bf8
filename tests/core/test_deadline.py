import time

import pytest

from rendition_core.deadline import Deadline
from rendition_core.errors import DeadlineExceeded


def test_deadline_without_timeout():
    deadline = Deadline.none()
    assert deadline.remaining() is None
    assert not deadline.expired
    assert deadline.bound(30) == 30
    assert deadline.bound(None) is None
    deadline.check("noop")


def test_deadline_zero_timeout_never_expires():
    assert Deadline(0).remaining() is None


def test_deadline_bound_uses_smaller_budget():
    deadline = Deadline(5)
    assert deadline.bound(30) <= 5
    assert deadline.bound(1) == 1


def test_deadline_expires():
    deadline = Deadline(0.01)
    time.sleep(0.03)
    assert deadline.expired
    with pytest.raises(DeadlineExceeded, match="exceeded deadline"):
        deadline.check("upload small")


def test_deadline_cancel():
    deadline = Deadline(60)
    deadline.cancel()
    assert deadline.cancelled
    with pytest.raises(DeadlineExceeded, match="cancelled"):
        deadline.check("decode")
