from __future__ import annotations

import pytest

from reel_engine.core.errors import AuthenticationError
from reel_engine.session.credentials import CookieBundle
from reel_engine.session.session_manager import SessionManager
from reel_engine.session.state import SessionState
from tests.fakes import READY, FakeClock, FakeDriver, ready_driver


def _manager(driver: FakeDriver, *, values: dict | None = None, state: SessionState | None = None) -> SessionManager:
    clock = FakeClock()
    bundle = CookieBundle(values={"sso": "abc", "sso-rw": "def"} if values is None else values)
    return SessionManager(driver, bundle, state or SessionState(), sleep_fn=clock.sleep, clock=clock)


@pytest.mark.asyncio
async def test_start_applies_cookies_and_marks_session_active() -> None:
    driver = ready_driver()
    manager = _manager(driver)

    await manager.start()

    assert manager.state.is_active is True
    assert manager.is_running() is True
    assert {cookie["name"] for cookie in driver.added_cookies} == {"sso", "sso-rw"}
    assert all(cookie["domain"] == ".grok.com" for cookie in driver.added_cookies)
    assert driver.navigations[0] == ("https://grok.com/imagine", "networkidle")


@pytest.mark.asyncio
async def test_start_is_idempotent() -> None:
    driver = ready_driver()
    manager = _manager(driver)

    await manager.start()
    await manager.start()

    assert driver.open_calls == 1
    assert len(driver.navigations) == 1


@pytest.mark.asyncio
async def test_start_without_cookies_fails_before_opening() -> None:
    driver = ready_driver()
    manager = _manager(driver, values={})

    with pytest.raises(AuthenticationError):
        await manager.start()

    assert driver.open_calls == 0
    assert manager.state.is_active is False


@pytest.mark.asyncio
async def test_login_redirect_is_authentication_failure_and_tears_down() -> None:
    driver = ready_driver(url_after_navigate="https://grok.com/login?next=imagine")
    manager = _manager(driver)

    with pytest.raises(AuthenticationError, match="Redirected"):
        await manager.start()

    assert driver.close_calls == 1
    assert manager.state.is_active is False
    assert manager.state.is_running is True


@pytest.mark.asyncio
async def test_missing_surface_names_visible_login_prompt() -> None:
    driver = FakeDriver(present=['text="Sign in"'])
    manager = _manager(driver)

    with pytest.raises(AuthenticationError, match="Sign in"):
        await manager.start()

    assert driver.is_open is False


@pytest.mark.asyncio
async def test_missing_surface_without_prompt() -> None:
    driver = FakeDriver()
    manager = _manager(driver)

    with pytest.raises(AuthenticationError, match="input surface did not appear"):
        await manager.start()


@pytest.mark.asyncio
async def test_stop_swallows_close_errors() -> None:
    driver = ready_driver()
    manager = _manager(driver)
    await manager.start()
    driver.close_error = RuntimeError("browser already gone")

    await manager.stop()
    await manager.stop()

    assert manager.state.is_active is False
    assert manager.is_running() is False


@pytest.mark.asyncio
async def test_recover_falls_back_to_reload_without_raising() -> None:
    driver = ready_driver()
    manager = _manager(driver)
    await manager.start()
    driver.navigate_errors = [RuntimeError("tab crashed"), RuntimeError("timeout")]

    await manager.recover_to_entry()

    assert driver.new_page_calls == 1
    assert [mode for _, mode in driver.navigations[1:]] == ["networkidle", "domcontentloaded"]
    assert driver.reload_calls == 1


@pytest.mark.asyncio
async def test_recover_is_noop_without_open_driver() -> None:
    driver = ready_driver()
    manager = _manager(driver)

    await manager.recover_to_entry()

    assert driver.navigations == []
    assert driver.new_page_calls == 0


@pytest.mark.asyncio
async def test_validate_reports_and_always_stops() -> None:
    good = ready_driver()
    assert await _manager(good).validate() is True
    assert good.is_open is False

    bad = FakeDriver()
    assert await _manager(bad).validate() is False
    assert bad.is_open is False


@pytest.mark.asyncio
async def test_ready_surface_may_appear_late() -> None:
    driver = FakeDriver()
    clock = FakeClock()
    clock.at(4, lambda: driver.present.add(READY))
    manager = SessionManager(
        driver,
        CookieBundle(values={"sso": "abc"}),
        SessionState(),
        sleep_fn=clock.sleep,
        clock=clock,
    )

    await manager.start()

    assert manager.state.is_active is True


@pytest.mark.asyncio
async def test_start_does_not_rearm_cancelled_session() -> None:
    driver = ready_driver()
    state = SessionState()
    state.cancel()
    manager = _manager(driver, state=state)

    await manager.start()

    assert manager.state.is_active is True
    assert manager.is_running() is False


@pytest.mark.asyncio
async def test_validate_keeps_liveness() -> None:
    manager = _manager(ready_driver())

    assert await manager.validate() is True

    assert manager.state.is_active is False
    assert manager.is_running() is True
