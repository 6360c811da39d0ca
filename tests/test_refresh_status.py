from custom_components.bililive.refresh_status import (
    NO_COUNTDOWN,
    RefreshReconciler,
    RefreshState,
    RefreshStatus,
    derive_from_detail,
    derive_refresh_state,
    tick_refresh_state,
)

RUNNING = {"scheduler_running": True, "has_waiters": True}


def _derive(scheduler, rate_limit=None, **kwargs):
    state = derive_refresh_state(scheduler, rate_limit, now=0.0, **kwargs)
    return state.status, state.countdown


def test_scheduled_wait_without_rate_limit():
    assert _derive({**RUNNING, "seconds_until_next_request": 5}) == (
        RefreshStatus.WAITING_INTERVAL,
        5,
    )


def test_scheduled_wait_blocked_by_rate_limit():
    assert _derive(
        {**RUNNING, "seconds_until_next_request": 4.2},
        {"next_request_in_sec": 30},
    ) == (RefreshStatus.WAITING_RATE_LIMIT, 5)


def test_scheduled_due_but_rate_limited_uses_rate_countdown():
    assert _derive(
        {**RUNNING, "seconds_until_next_request": 0},
        {"next_request_in_sec": 7.1},
    ) == (RefreshStatus.WAITING_RATE_LIMIT, 8)


def test_scheduled_due_is_idle():
    assert _derive({**RUNNING, "seconds_until_next_request": 0}) == (RefreshStatus.IDLE, 0)


def test_stopped_scheduler_has_no_schedule():
    assert _derive({"scheduler_running": False}) == (RefreshStatus.NO_SCHEDULE, NO_COUNTDOWN)
    assert _derive({"scheduler_running": True, "has_waiters": False}) == (
        RefreshStatus.NO_SCHEDULE,
        NO_COUNTDOWN,
    )


def test_negative_seconds_means_no_schedule():
    assert _derive({**RUNNING, "seconds_until_next_request": -1}) == (
        RefreshStatus.NO_SCHEDULE,
        NO_COUNTDOWN,
    )


def test_scheduler_wins_over_inconsistent_rate_limit_info():
    # The legacy fields alone would say "waiting_interval 15".
    assert _derive(
        {**RUNNING, "seconds_until_next_request": 0},
        {"waited_seconds": 5, "min_interval_sec": 20},
    ) == (RefreshStatus.IDLE, 0)


def test_legacy_rate_limited():
    assert _derive(None, {"next_request_in_sec": 11.3}) == (RefreshStatus.WAITING_RATE_LIMIT, 12)


def test_legacy_interval_uses_min_interval():
    assert _derive(None, {"waited_seconds": 4.6, "min_interval_sec": 10}) == (
        RefreshStatus.WAITING_INTERVAL,
        5,
    )


def test_legacy_waited_half_seconds_round_up():
    assert _derive(None, {"waited_seconds": 2.5, "min_interval_sec": 20}) == (
        RefreshStatus.WAITING_INTERVAL,
        17,
    )
    assert _derive(None, {"waited_seconds": 19.5, "min_interval_sec": 20}) == (RefreshStatus.IDLE, 0)


def test_legacy_interval_falls_back_to_platform_limit_then_default():
    assert _derive(None, {"waited_seconds": 10}, platform_rate_limit=30) == (
        RefreshStatus.WAITING_INTERVAL,
        20,
    )
    assert _derive(None, {"waited_seconds": 10}) == (RefreshStatus.WAITING_INTERVAL, 10)


def test_legacy_idle_after_interval():
    assert _derive(None, {"waited_seconds": 25, "min_interval_sec": 20}) == (RefreshStatus.IDLE, 0)


def test_derive_from_detail_reads_platform_limit():
    state = derive_from_detail(
        {"rate_limit_info": {"waited_seconds": 1}, "platform_rate_limit": 6}, now=0.0
    )
    assert (state.status, state.countdown) == (RefreshStatus.WAITING_INTERVAL, 5)


def test_tick_counts_down_and_lands_on_idle():
    state = RefreshState(RefreshStatus.WAITING_RATE_LIMIT, 2, 1.0)
    state = tick_refresh_state(state)
    assert (state.status, state.countdown) == (RefreshStatus.WAITING_RATE_LIMIT, 1)
    state = tick_refresh_state(state)
    assert (state.status, state.countdown) == (RefreshStatus.IDLE, 0)
    assert state.updated_at == 1.0


def test_tick_leaves_frozen_states_alone():
    for status, countdown in (
        (RefreshStatus.NO_SCHEDULE, NO_COUNTDOWN),
        (RefreshStatus.REFRESHING, 6),
        (RefreshStatus.IDLE, 0),
    ):
        state = RefreshState(status, countdown)
        assert tick_refresh_state(state) is state


def test_reconciler_tick_reports_changed_rooms():
    reconciler = RefreshReconciler()
    reconciler.apply("a", RefreshState(RefreshStatus.WAITING_INTERVAL, 3))
    reconciler.apply("b", RefreshState(RefreshStatus.NO_SCHEDULE, NO_COUNTDOWN))

    assert reconciler.tick(["a", "b", "missing"]) == {"a"}
    assert reconciler.get("a").countdown == 2


def test_reconciler_refresh_and_revert():
    reconciler = RefreshReconciler()
    reconciler.apply("a", RefreshState(RefreshStatus.WAITING_RATE_LIMIT, 12))

    reconciler.begin_refresh("a")
    assert reconciler.get("a").status is RefreshStatus.REFRESHING
    assert reconciler.get("a").countdown == 12
    assert reconciler.tick(["a"]) == set()

    assert reconciler.revert_refresh("a") is True
    assert (reconciler.get("a").status, reconciler.get("a").countdown) == (RefreshStatus.IDLE, 0)
    assert reconciler.revert_refresh("a") is False


def test_revert_does_not_clobber_authoritative_update():
    reconciler = RefreshReconciler()
    reconciler.begin_refresh("a")
    reconciler.apply("a", RefreshState(RefreshStatus.WAITING_INTERVAL, 9))
    assert reconciler.revert_refresh("a") is False
    assert reconciler.get("a").countdown == 9
