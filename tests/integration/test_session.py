"""
Integration tests for AutomationSession: resolve, interact, record, heal.
"""

import asyncio

import pytest

from resilient_agent import AutomationSession, PatternMemoryStore
from resilient_agent.config import Settings
from resilient_agent.exceptions import BehaviorInterruptedError, ElementStaleError
from resilient_agent.models import ElementQuery
from tests.conftest import FakeDriver, FakeElement, SleepRecorder

SUBMIT = ElementQuery.of("id:submit", "text:Sign in", field_name="submitButton")


def login_form(submit_id="submit", enabled=True):
    return FakeDriver([
        FakeElement(id="email", role="textbox", attributes={"name": "email"}),
        FakeElement(id="password", role="textbox", attributes={"name": "password"}),
        FakeElement(id=submit_id, text="Sign in", role="button", enabled=enabled),
    ])


@pytest.fixture
def store(settings):
    return PatternMemoryStore(settings.memory)


@pytest.fixture
def fast_settings():
    return Settings(
        behavior={"seed": 99},
        resolution={"budget_ms": 1000, "per_strategy_timeout_ms": 100},
        memory={"index": "brute_force"},
    )


class TestPipeline:

    @pytest.mark.asyncio
    async def test_success_is_recorded(self, settings, store, sleep):
        driver = login_form()
        session = AutomationSession(driver, store, settings, sleep=sleep)

        outcome = await session.click(SUBMIT)

        assert outcome.success
        assert not outcome.healed
        assert len(store) == 1
        pattern = store.get(1)
        assert pattern.success
        assert str(pattern.outcome.locator) == "id:submit"
        assert session.get_stats()["succeeded"] == 1

    @pytest.mark.asyncio
    async def test_form_fill(self, settings, store, sleep):
        driver = login_form()
        session = AutomationSession(driver, store, settings, sleep=sleep)

        await session.type("id:email", "ana@example.com")
        await session.type(ElementQuery.of("attr:name=password"), "hunter2")
        await session.click(SUBMIT)

        assert driver.typed_text() == "ana@example.comhunter2"
        assert [p.action_kind.value for p in store.patterns()] == ["type", "type", "click"]
        assert b"hunter2" not in store.snapshot()

    @pytest.mark.asyncio
    async def test_unresolvable_without_history_fails(self, settings, store, sleep):
        session = AutomationSession(login_form(), store, settings, sleep=sleep)

        outcome = await session.click(ElementQuery.of("id:missing", field_name="missingLink"))

        assert not outcome.success
        assert outcome.error is not None
        assert len(store) == 1
        assert not store.get(1).success
        assert session.get_stats()["failed"] == 1
        assert session.get_stats()["healing"]["no_history"] == 1

    @pytest.mark.asyncio
    async def test_healing_disabled(self, store, sleep):
        settings = Settings(behavior={"seed": 1}, healing={"enabled": False}, memory={"index": "brute_force"})
        session = AutomationSession(login_form(), store, settings, sleep=sleep)

        outcome = await session.click("id:missing")

        assert not outcome.success
        assert session.get_stats()["healing"]["attempts"] == 0


class TestHealing:

    @pytest.mark.asyncio
    async def test_failure_heals_and_succeeds(self, settings, store, sleep):
        # A first run where the id was already gone and the text fallback won
        first = AutomationSession(login_form(submit_id="btn-1"), store, settings, sleep=sleep)
        assert (await first.click(SUBMIT)).success
        assert str(store.get(1).outcome.locator) == "text:Sign in"

        # A later script only knows the id
        second = AutomationSession(login_form(submit_id="btn-2"), store, settings, sleep=sleep)
        outcome = await second.click(ElementQuery.of("id:submit", field_name="submitButton"))

        assert outcome.success
        assert outcome.healed
        assert outcome.resolution.healed_from == 1
        patterns = store.patterns()
        assert [p.success for p in patterns] == [True, False, True]
        assert patterns[2].supersedes == 1
        assert patterns[2].outcome.healed
        assert second.get_stats()["healed"] == 1

    @pytest.mark.asyncio
    async def test_healed_interaction_failure_is_recorded(self, fast_settings, sleep):
        store = PatternMemoryStore(fast_settings.memory)
        first = AutomationSession(login_form(submit_id="btn-1"), store, fast_settings, sleep=sleep)
        await first.click(SUBMIT)

        disabled = login_form(submit_id="btn-2", enabled=False)
        second = AutomationSession(disabled, store, fast_settings, sleep=sleep)
        outcome = await second.click(ElementQuery.of("id:submit", field_name="submitButton"))

        assert not outcome.success
        assert outcome.failure_reason == "Element is not enabled"
        assert len(store) == 4
        assert [p.id for p in store.lineage(4)] == [4, 3, 1]
        assert not store.get(4).success
        assert disabled.active_waits == 0

    @pytest.mark.asyncio
    async def test_superseded_heal_is_not_reused(self, fast_settings, sleep):
        store = PatternMemoryStore(fast_settings.memory)
        await AutomationSession(login_form(submit_id="btn-1"), store, fast_settings, sleep=sleep).click(SUBMIT)
        disabled = AutomationSession(login_form(submit_id="btn-2", enabled=False), store, fast_settings, sleep=sleep)
        await disabled.click(ElementQuery.of("id:submit", field_name="submitButton"))
        assert [(p.id, p.success, p.supersedes) for p in store.patterns()] == [
            (1, True, None), (2, False, None), (3, True, 1), (4, False, 3),
        ]

        third = AutomationSession(login_form(submit_id="btn-3"), store, fast_settings, sleep=sleep)
        outcome = await third.click(ElementQuery.of("id:submit", field_name="submitButton"))

        assert not outcome.success
        assert not outcome.healed
        assert third.get_stats()["healing"]["no_history"] == 1
        assert [p.success for p in store.patterns()] == [True, False, True, False, False]


class TestInterruptions:

    @pytest.mark.asyncio
    async def test_navigation_is_raised_and_not_recorded(self, settings, store, sleep):
        driver = login_form()

        def navigate(driver, event):
            if event.kind == "down":
                driver.navigate("https://example.com/dashboard")

        driver.on_event = navigate
        session = AutomationSession(driver, store, settings, sleep=sleep)

        with pytest.raises(BehaviorInterruptedError):
            await session.click(SUBMIT)

        assert len(store) == 0
        assert session.get_stats()["interrupted"] == 1

    @pytest.mark.asyncio
    async def test_repeated_staleness_becomes_failed_outcome(self, settings, store, sleep):
        driver = login_form()

        def churn(driver, event):
            if event.kind == "move":
                driver.mutate()

        driver.on_event = churn
        session = AutomationSession(driver, store, settings, sleep=sleep)

        outcome = await session.click(SUBMIT)

        assert not outcome.success
        assert isinstance(outcome.error, ElementStaleError)
        assert len(store) == 1
        assert not store.get(1).success


class TestConcurrentSessions:

    @pytest.mark.asyncio
    async def test_sessions_share_one_store(self, settings, store):
        async def run(n):
            driver = login_form()
            driver.url = f"https://example.com/login?tenant={n}"
            session = AutomationSession(driver, store, settings, sleep=SleepRecorder())
            await session.type("id:email", f"user{n}@example.com")
            await session.type("id:password", "pw")
            outcome = await session.click(SUBMIT)
            return driver, outcome

        results = await asyncio.gather(*(run(n) for n in range(6)))

        assert all(outcome.success for _, outcome in results)
        assert len(store) == 18
        assert [p.id for p in store.patterns()] == list(range(1, 19))
        for n, (driver, _) in enumerate(results):
            assert driver.typed_text() == f"user{n}@example.compw"
