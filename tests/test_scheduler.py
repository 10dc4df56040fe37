"""Tests for the bounded, retrying unit scheduler."""

import asyncio

import pytest

from archmap.config import SchedulerPolicy
from archmap.json_tools import Parsed, Unparsable
from archmap.scheduler import Scheduler, backoff_delay

from conftest import make_record, make_unit


def _policy(**kw):
    base = dict(max_concurrent=3, per_unit_timeout_s=2.0, max_attempts=2, backoff_base_s=1.0)
    base.update(kw)
    return SchedulerPolicy(**base)


class TestOutcome:
    @pytest.mark.asyncio
    async def test_one_permanent_failure_out_of_five(self, fake_sleep):
        units = [make_unit(f"chunk_{i}") for i in range(1, 6)]
        calls = {}

        async def analyze(unit):
            calls[unit.id] = calls.get(unit.id, 0) + 1
            if unit.id == "chunk_3":
                raise RuntimeError("model exploded")
            return make_record(unit_id=unit.id)

        outcome = await Scheduler(_policy(), sleep=fake_sleep).run(units, analyze)

        assert outcome.total_units == 5
        assert outcome.succeeded_count == 4
        assert outcome.failed_count == 1
        failed = outcome.unit_results[2]
        assert failed.unit_id == "chunk_3"
        assert failed.succeeded is False
        assert failed.attempts == 2
        assert failed.record is None
        assert failed.failure_reason == "RuntimeError: model exploded"
        assert calls["chunk_3"] == 2
        assert all(calls[u.id] == 1 for u in units if u.id != "chunk_3")

    @pytest.mark.asyncio
    async def test_results_keep_submission_order(self, fake_sleep):
        units = [make_unit(f"u{i}") for i in range(6)]

        async def analyze(unit):
            # Later units finish first.
            await asyncio.sleep(0.001 * (6 - int(unit.id[1:])))
            return make_record(unit_id=unit.id)

        outcome = await Scheduler(_policy(), sleep=fake_sleep).run(units, analyze)
        assert [r.unit_id for r in outcome.unit_results] == [u.id for u in units]

    @pytest.mark.asyncio
    async def test_empty_unit_list(self):
        async def analyze(unit):
            raise AssertionError("never called")

        outcome = await Scheduler(_policy()).run([], analyze)
        assert outcome.total_units == 0
        assert outcome.succeeded_count == 0

    @pytest.mark.asyncio
    async def test_parsed_wrapper_is_unwrapped(self, fake_sleep):
        record = make_record()

        async def analyze(unit):
            return Parsed(record)

        outcome = await Scheduler(_policy(), sleep=fake_sleep).run([make_unit("u1")], analyze)
        assert outcome.unit_results[0].record is record


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_cap(self, fake_sleep):
        in_flight = 0
        peak = 0

        async def analyze(unit):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return make_record()

        units = [make_unit(f"u{i}") for i in range(8)]
        outcome = await Scheduler(_policy(max_concurrent=3), sleep=fake_sleep).run(units, analyze)
        assert outcome.succeeded_count == 8
        assert peak == 3

    @pytest.mark.asyncio
    async def test_next_batch_waits_for_previous(self, fake_sleep):
        events = []

        async def analyze(unit):
            events.append(("start", unit.id))
            await asyncio.sleep(0.005 if unit.id == "u0" else 0.001)
            events.append(("end", unit.id))
            return make_record()

        units = [make_unit(f"u{i}") for i in range(4)]
        await Scheduler(_policy(max_concurrent=2), sleep=fake_sleep).run(units, analyze)
        assert events.index(("start", "u2")) > events.index(("end", "u0"))
        assert events.index(("start", "u2")) > events.index(("end", "u1"))


class TestRetries:
    @pytest.mark.asyncio
    async def test_permanent_failure_tried_exactly_max_attempts(self, fake_sleep):
        calls = 0

        async def analyze(unit):
            nonlocal calls
            calls += 1
            raise ValueError("bad")

        outcome = await Scheduler(_policy(max_attempts=3), sleep=fake_sleep).run([make_unit("u1")], analyze)
        assert calls == 3
        assert outcome.unit_results[0].attempts == 3

    @pytest.mark.asyncio
    async def test_exponential_backoff_between_attempts(self, fake_sleep):
        async def analyze(unit):
            raise ValueError("bad")

        policy = _policy(max_attempts=3, backoff_base_s=0.5)
        await Scheduler(policy, sleep=fake_sleep).run([make_unit("u1")], analyze)
        assert fake_sleep.delays == [1.0, 2.0]
        assert backoff_delay(policy, 1) == 1.0

    @pytest.mark.asyncio
    async def test_success_on_retry(self, fake_sleep):
        calls = 0

        async def analyze(unit):
            nonlocal calls
            calls += 1
            if calls == 1:
                return Unparsable(raw="not json")
            return make_record()

        outcome = await Scheduler(_policy(), sleep=fake_sleep).run([make_unit("u1")], analyze)
        result = outcome.unit_results[0]
        assert result.succeeded is True
        assert result.attempts == 2
        assert len(fake_sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_wrong_return_type_is_a_failure(self, fake_sleep):
        async def analyze(unit):
            return {"architecture_pattern": "MVC"}

        outcome = await Scheduler(_policy(max_attempts=1), sleep=fake_sleep).run([make_unit("u1")], analyze)
        result = outcome.unit_results[0]
        assert result.succeeded is False
        assert "expected Record" in result.failure_reason


class TestTimeout:
    @pytest.mark.asyncio
    async def test_slow_attempt_times_out_and_sibling_succeeds(self, fake_sleep, log):
        async def analyze(unit):
            if unit.id == "slow":
                await asyncio.sleep(5)
            return make_record()

        policy = _policy(per_unit_timeout_s=0.05)
        units = [make_unit("slow"), make_unit("fast")]
        outcome = await Scheduler(policy, sleep=fake_sleep, log=log).run(units, analyze)

        slow, fast = outcome.unit_results
        assert slow.succeeded is False
        assert slow.failure_reason == "timeout after 0.05s"
        assert slow.attempts == 2
        assert fast.succeeded is True
        assert any("unit=slow" in line and "giving up" in line for line in log.tagged("SCHED"))
