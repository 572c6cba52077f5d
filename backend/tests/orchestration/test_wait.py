"""Tests for the bounded polling primitive."""
import pytest

from kubeforge.exceptions import CollaboratorError, TerminalStatusError, WaitTimeoutError
from kubeforge.orchestration.wait import PollPolicy, wait_until_ready


class StatusFeed:
    """Returns scripted statuses and counts fetches."""

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.fetches = 0

    async def __call__(self):
        self.fetches += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class Sleeper:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


POLICY = PollPolicy(attempts=8, start=10, increment=5)


async def test_ready_after_n_not_ready_costs_n_plus_one_fetches():
    feed = StatusFeed(["PENDING_CREATE"] * 3 + ["ACTIVE"])
    sleeper = Sleeper()

    status = await wait_until_ready(feed, lambda s: s == "ACTIVE", POLICY, "lb", sleep=sleeper)

    assert status == "ACTIVE"
    assert feed.fetches == 4
    assert sleeper.delays == [10, 15, 20]


async def test_ready_immediately_costs_one_fetch_and_no_sleep():
    feed = StatusFeed(["ACTIVE"])
    sleeper = Sleeper()

    await wait_until_ready(feed, lambda s: s == "ACTIVE", POLICY, "lb", sleep=sleeper)

    assert feed.fetches == 1
    assert sleeper.delays == []


async def test_budget_exhausted_raises_timeout():
    feed = StatusFeed(["PENDING_UPDATE"])
    sleeper = Sleeper()

    with pytest.raises(WaitTimeoutError) as exc_info:
        await wait_until_ready(feed, lambda s: s == "ACTIVE", POLICY, "lb to settle", sleep=sleeper)

    assert feed.fetches == POLICY.attempts
    assert len(sleeper.delays) == POLICY.attempts - 1
    assert exc_info.value.attempts == 8
    assert "lb to settle" in exc_info.value.message


async def test_failure_status_aborts_immediately():
    feed = StatusFeed(["PENDING_CREATE", "ERROR", "ACTIVE"])

    with pytest.raises(TerminalStatusError) as exc_info:
        await wait_until_ready(
            feed, lambda s: s == "ACTIVE", POLICY, "lb", is_failed=lambda s: s == "ERROR", sleep=Sleeper()
        )

    assert feed.fetches == 2
    assert exc_info.value.status == "ERROR"


async def test_fetch_error_propagates_without_retry():
    calls = []

    async def broken():
        calls.append(1)
        raise CollaboratorError("loadbalancer", "GET lb", 500)

    with pytest.raises(CollaboratorError):
        await wait_until_ready(broken, lambda s: True, POLICY, "lb", sleep=Sleeper())

    assert len(calls) == 1


async def test_constant_schedule_with_zero_increment():
    feed = StatusFeed([None, None, "kubeconfig"])
    sleeper = Sleeper()

    await wait_until_ready(
        feed, lambda k: k is not None, PollPolicy(attempts=20, start=15, increment=0), "kubeconfig", sleep=sleeper
    )

    assert sleeper.delays == [15, 15]


def test_policy_from_settings(test_settings):
    policy = PollPolicy.from_settings(test_settings, "LB_ONLINE")

    assert policy == PollPolicy(attempts=8, start=35, increment=5)
