import asyncio

import pytest

from app.jobs.cleanup_cron import CleanupCron


def run(coro):
    return asyncio.run(coro)


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        CleanupCron(lambda: None, interval_seconds=0)


def test_initial_status():
    async def noop():
        return None

    status = CleanupCron(noop, interval_seconds=300).status()
    assert status["is_running"] is False
    assert status["interval_seconds"] == 300
    assert status["runs"] == 0
    assert status["last_run_at"] is None


def test_first_run_happens_immediately():
    async def scenario():
        calls = []

        async def cleanup():
            calls.append(1)
            return {"hidden_profiles": 2}

        cron = CleanupCron(cleanup, interval_seconds=60)
        cron.start()
        await asyncio.sleep(0.05)
        status = cron.status()
        await cron.stop()
        return calls, status

    calls, status = run(scenario())
    assert len(calls) == 1
    assert status["is_running"] is True
    assert status["last_result"] == {"hidden_profiles": 2}
    assert status["last_run_at"] is not None


def test_start_twice_runs_one_loop():
    async def scenario():
        calls = []

        async def cleanup():
            calls.append(1)

        cron = CleanupCron(cleanup, interval_seconds=60)
        assert cron.start() is True
        assert cron.start() is False
        await asyncio.sleep(0.05)
        await cron.stop()
        return calls

    assert len(run(scenario())) == 1


def test_stop_makes_it_not_running_and_is_idempotent():
    async def scenario():
        async def cleanup():
            return None

        cron = CleanupCron(cleanup, interval_seconds=60)
        cron.start()
        await asyncio.sleep(0.01)
        first = await cron.stop()
        second = await cron.stop()
        return cron, first, second

    cron, first, second = run(scenario())
    assert first is True
    assert second is False
    assert cron.is_running is False


def test_failing_run_does_not_stop_the_loop():
    async def scenario():
        calls = []

        async def cleanup():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            return {"ok": True}

        cron = CleanupCron(cleanup, interval_seconds=0.02)
        cron.start()
        await asyncio.sleep(0.2)
        status = cron.status()
        await cron.stop()
        return calls, status

    calls, status = run(scenario())
    assert len(calls) >= 2
    assert status["is_running"] is True
    assert status["last_error"] is None
    assert status["last_result"] == {"ok": True}


def test_runs_never_overlap():
    async def scenario():
        in_flight = 0
        max_in_flight = 0

        async def slow_cleanup():
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.03)
            in_flight -= 1

        cron = CleanupCron(slow_cleanup, interval_seconds=0.01)
        cron.start()
        await asyncio.sleep(0.2)
        await cron.stop()
        return max_in_flight

    assert run(scenario()) == 1


def test_run_once_records_error_and_raises():
    async def failing():
        raise RuntimeError("boom")

    cron = CleanupCron(failing, interval_seconds=60)
    with pytest.raises(RuntimeError):
        run(cron.run_once())
    assert cron.last_error == "boom"
    assert cron.runs == 1


def test_stop_lets_in_flight_run_finish():
    async def scenario():
        started = asyncio.Event()
        finished = []

        async def slow_cleanup():
            started.set()
            await asyncio.sleep(0.05)
            finished.append(1)
            return {"hidden_profiles": 1}

        cron = CleanupCron(slow_cleanup, interval_seconds=60)
        cron.start()
        await started.wait()
        stopped = await cron.stop()
        return cron, stopped, finished

    cron, stopped, finished = run(scenario())
    assert stopped is True
    assert finished == [1]
    assert cron.runs == 1
    assert cron.last_result == {"hidden_profiles": 1}
    assert cron.is_running is False


def test_stop_interrupts_the_wait():
    async def scenario():
        async def cleanup():
            return None

        cron = CleanupCron(cleanup, interval_seconds=3600)
        cron.start()
        await asyncio.sleep(0.01)
        loop = asyncio.get_running_loop()
        began = loop.time()
        await cron.stop()
        return loop.time() - began

    assert run(scenario()) < 1
