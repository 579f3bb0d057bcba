"""Tests for the phase run.

Covers:
- Only actions of the requested phase run, by ascending priority
- Ties keep their list order
- A false condition means zero executor invocations
- Mirror close/restore across BeforeStart and AfterStop
- Failures never stop the run
- Dry run, dependencies, cancellation and the worker thread
"""

from __future__ import annotations

import threading

from autoprofile.automation.engine import AutomationEngine, PhaseReport, actions_for_phase
from autoprofile.models import Action, ActionCondition, ActionKind, ConditionKind, ExecutionPhase, Profile
from autoprofile.statistics import StatisticsService


def _close_chrome() -> Action:
    return Action(
        name="Close Chrome",
        kind=ActionKind.TERMINATE_PROCESS,
        path="chrome.exe",
        phase=ExecutionPhase.BEFORE_START,
        mirror=True,
        priority=0,
    )


# ============================================================
# Ordering and phase filtering
# ============================================================


class TestOrdering:
    def test_only_requested_phase_runs(self, engine, recorder, tracker, make_action) -> None:
        profile = Profile("p", [
            make_action("before", phase=ExecutionPhase.BEFORE_START),
            make_action("after-start", phase=ExecutionPhase.AFTER_START),
            make_action("after-stop", phase=ExecutionPhase.AFTER_STOP),
        ])
        engine.run(profile, ExecutionPhase.AFTER_START, tracker)
        assert recorder.names == ["after-start"]

    def test_lower_priority_runs_first(self, engine, recorder, tracker, make_action) -> None:
        high = make_action("five", priority=5)
        low = make_action("one", priority=1)
        report = engine.run(Profile("p", [high, low]), ExecutionPhase.BEFORE_START, tracker)
        assert recorder.names == ["one", "five"]
        assert report.dispatched_ids == [low.id, high.id]

    def test_ties_keep_list_order(self, engine, recorder, tracker, make_action) -> None:
        profile = Profile("p", [
            make_action("b", priority=3),
            make_action("a", priority=3),
            make_action("first", priority=0),
            make_action("c", priority=3),
        ])
        engine.run(profile, ExecutionPhase.BEFORE_START, tracker)
        assert recorder.names == ["first", "b", "a", "c"]

    def test_actions_for_phase_does_not_mutate_profile(self, make_action) -> None:
        actions = [make_action("z", priority=9), make_action("y", priority=1)]
        profile = Profile("p", list(actions))
        ordered = actions_for_phase(profile, ExecutionPhase.BEFORE_START)
        assert [a.name for a in ordered] == ["y", "z"]
        assert profile.actions == actions

    def test_no_profile_is_a_no_op(self, engine, recorder, tracker) -> None:
        report = engine.run(None, ExecutionPhase.AFTER_START, tracker)
        assert report.executed == []
        assert recorder.calls == []


# ============================================================
# Conditions
# ============================================================


class TestConditions:
    def test_false_condition_never_dispatches(self, engine, recorder, tracker, action_log, make_action) -> None:
        guarded = make_action(
            "guarded",
            condition=ActionCondition(ConditionKind.FILE_EXISTS, "/nonexistent"),
        )
        free = make_action("free")
        report = engine.run(Profile("p", [guarded, free]), ExecutionPhase.BEFORE_START, tracker)

        assert recorder.names == ["free"]
        assert report.skipped_count == 1
        skipped = report.executed[0].result
        assert skipped.skipped and skipped.success
        assert "condition not met" in skipped.message
        assert action_log.last_for_action(guarded.id).message.startswith("Skipped")

    def test_condition_uses_process_table(self, engine, recorder, processes, tracker, make_action) -> None:
        processes.running.add("obs64")
        only_if_obs = make_action(
            "only-if-obs",
            condition=ActionCondition(ConditionKind.PROCESS_RUNNING, "obs64.exe"),
        )
        only_without_obs = make_action(
            "only-without-obs",
            condition=ActionCondition(ConditionKind.PROCESS_NOT_RUNNING, "obs64.exe"),
        )
        engine.run(Profile("p", [only_if_obs, only_without_obs]), ExecutionPhase.BEFORE_START, tracker)
        assert recorder.names == ["only-if-obs"]


# ============================================================
# Mirror close / restore
# ============================================================


class TestMirror:
    def test_already_closed_target_is_not_restored(self, engine, recorder, tracker) -> None:
        close = _close_chrome()
        profile = Profile("p", [close])

        engine.run(profile, ExecutionPhase.BEFORE_START, tracker)
        assert tracker.observed(close.id)
        assert tracker.should_restore(close) is False

        report = engine.run(profile, ExecutionPhase.AFTER_STOP, tracker)
        assert [e for e in report.executed if e.restore] == []
        assert [a.kind for a in recorder.calls] == [ActionKind.TERMINATE_PROCESS]

    def test_running_target_is_relaunched(self, engine, recorder, processes, tracker) -> None:
        processes.running.add("chrome")
        close = _close_chrome()
        profile = Profile("p", [close])

        engine.run(profile, ExecutionPhase.BEFORE_START, tracker)
        assert processes.terminated == ["chrome"]
        assert tracker.should_restore(close) is True

        report = engine.run(profile, ExecutionPhase.AFTER_STOP, tracker)
        restores = [e for e in report.executed if e.restore]
        assert len(restores) == 1
        assert restores[0].action.kind == ActionKind.LAUNCH_PROCESS
        assert restores[0].action.path == "chrome.exe"
        assert restores[0].action.name == "Restore: Close Chrome"
        assert recorder.calls[-1].kind == ActionKind.LAUNCH_PROCESS

    def test_restores_follow_after_stop_actions(self, engine, recorder, processes, tracker, make_action) -> None:
        processes.running.update({"chrome", "discord"})
        close_chrome = _close_chrome()
        close_discord = Action(name="Close Discord", kind=ActionKind.TERMINATE_PROCESS, path="Discord.exe",
                               mirror=True, priority=1)
        cleanup = make_action("cleanup", phase=ExecutionPhase.AFTER_STOP)
        profile = Profile("p", [close_discord, close_chrome, cleanup])

        engine.run(profile, ExecutionPhase.BEFORE_START, tracker)
        recorder.calls.clear()
        engine.run(profile, ExecutionPhase.AFTER_STOP, tracker)
        assert recorder.names == ["cleanup", "Restore: Close Chrome", "Restore: Close Discord"]

    def test_before_start_clears_previous_session(self, engine, processes, tracker) -> None:
        processes.running.add("chrome")
        close = _close_chrome()
        engine.run(Profile("p", [close]), ExecutionPhase.BEFORE_START, tracker)
        assert len(tracker) == 1

        engine.run(Profile("other", []), ExecutionPhase.BEFORE_START, tracker)
        assert len(tracker) == 0

    def test_skipped_mirror_action_is_not_observed(self, engine, processes, tracker) -> None:
        processes.running.add("chrome")
        close = _close_chrome()
        close.condition = ActionCondition(ConditionKind.FILE_EXISTS, "/nonexistent")
        engine.run(Profile("p", [close]), ExecutionPhase.BEFORE_START, tracker)
        assert not tracker.observed(close.id)
        assert processes.running == {"chrome"}


# ============================================================
# Failures, dependencies, dry run
# ============================================================


class TestFailures:
    def test_failure_does_not_stop_the_run(self, engine, recorder, tracker, make_action) -> None:
        first = make_action("first", priority=0)
        second = make_action("second", priority=1)
        third = make_action("third", priority=2)
        recorder.fail_ids.add(second.id)

        report = engine.run(Profile("p", [first, second, third]), ExecutionPhase.AFTER_START, tracker)
        assert recorder.names == ["first", "second", "third"]
        assert report.success_count == 2
        assert report.failure_count == 1

    def test_executor_exception_becomes_failure(self, ctx, tracker, make_action, recorder) -> None:
        class Exploding:
            kind = ActionKind.WAIT

            def execute(self, action, ctx):
                raise RuntimeError("device gone")

        registry = dict(recorder.registry)
        registry[ActionKind.WAIT] = Exploding()
        engine = AutomationEngine(ctx, executors=registry)
        report = engine.run(
            Profile("p", [make_action("w", kind=ActionKind.WAIT), make_action("after")]),
            ExecutionPhase.BEFORE_START,
            tracker,
        )
        assert report.executed[0].result.success is False
        assert report.executed[0].result.message == "device gone"
        assert report.executed[0].result.exit_code == -1
        assert recorder.names == ["after"]

    def test_dependency_failure_skips_dependent(self, engine, recorder, tracker, make_action) -> None:
        setup = make_action("setup", priority=0)
        dependent = make_action("dependent", priority=1, depends_on=setup.id, requires_previous_success=True)
        independent = make_action("independent", priority=2, depends_on=setup.id)
        recorder.fail_ids.add(setup.id)

        report = engine.run(Profile("p", [setup, dependent, independent]), ExecutionPhase.BEFORE_START, tracker)
        assert recorder.names == ["setup", "independent"]
        skipped = report.executed[1].result
        assert skipped.skipped and not skipped.success
        assert report.failure_count == 2

    def test_dependency_success_runs_dependent(self, engine, recorder, tracker, make_action) -> None:
        setup = make_action("setup", priority=0)
        dependent = make_action("dependent", priority=1, depends_on=setup.id, requires_previous_success=True)
        engine.run(Profile("p", [setup, dependent]), ExecutionPhase.BEFORE_START, tracker)
        assert recorder.names == ["setup", "dependent"]

    def test_dry_run_dispatches_nothing(self, engine, recorder, processes, tracker, action_log, make_action) -> None:
        processes.running.add("chrome")
        close = _close_chrome()
        guarded = make_action("guarded", condition=ActionCondition(ConditionKind.FILE_EXISTS, "/nonexistent"))
        profile = Profile("p", [close, guarded])

        report = engine.run(profile, ExecutionPhase.BEFORE_START, tracker, dry_run=True)
        assert recorder.calls == []
        assert processes.running == {"chrome"}
        assert report.dry_run
        assert report.success_count == 2
        entries = action_log.entries()
        assert all(e.dry_run for e in entries)
        assert entries[0].message.startswith("Would execute: terminate_process - chrome.exe")
        assert len(tracker) == 0

    def test_statistics_are_recorded(self, ctx, recorder, tracker, make_action) -> None:
        stats = StatisticsService()
        engine = AutomationEngine(ctx, statistics=stats, executors=recorder.registry)
        action = make_action("counted")
        engine.run(Profile("p", [action]), ExecutionPhase.BEFORE_START, tracker)
        engine.run(Profile("p", [action]), ExecutionPhase.BEFORE_START, tracker)
        assert stats.total_actions_executed() == 2


# ============================================================
# Cancellation and background runs
# ============================================================


class TestBackground:
    def test_cancel_stops_before_next_action(self, ctx, recorder, tracker, make_action) -> None:
        engine = AutomationEngine(ctx, executors=recorder.registry)

        def cancel_after_first(msg: str) -> None:
            if msg.startswith("OK: first"):
                ctx.cancel_event.set()

        engine.on_log(cancel_after_first)
        report = engine.run(
            Profile("p", [make_action("first", priority=0), make_action("second", priority=1)]),
            ExecutionPhase.AFTER_START,
            tracker,
        )
        assert report.cancelled
        assert recorder.names == ["first"]

    def test_start_reports_on_done(self, engine, recorder, tracker, make_action) -> None:
        finished = threading.Event()
        reports = []

        def done(report: PhaseReport) -> None:
            reports.append(report)
            finished.set()

        engine.on_done(done)
        assert engine.start(Profile("p", [make_action("bg")]), ExecutionPhase.AFTER_START, tracker) is True
        assert finished.wait(5.0)
        engine.join(5.0)
        assert not engine.is_running()
        assert reports[0].success_count == 1
        assert recorder.names == ["bg"]

    def test_log_callback_sees_progress(self, engine, tracker, make_action) -> None:
        lines = []
        engine.on_log(lines.append)
        engine.run(Profile("p", [make_action("only")]), ExecutionPhase.AFTER_START, tracker)
        assert lines[0] == "[1/1] only (run_system_command)"
        assert lines[-1] == "OK: only - ok"
