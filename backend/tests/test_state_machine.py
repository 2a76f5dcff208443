"""Tests for the status/incident transition rules."""
import random

import pytest

from pulsemonitor.schemas.status import HISTORY_LIMIT, Status
from pulsemonitor.services.state_machine import apply_check
from pulsemonitor.utils.clock import utcnow

from fakes import down, up


def run(results, threshold=3, auto_resolve=True):
    """Feed results through apply_check, tracking the ongoing incident like MonitorState."""
    status = Status()
    ongoing = False
    transitions = []
    for result in results:
        transition = apply_check(status, result, ongoing, threshold, auto_resolve, utcnow())
        if transition.open_incident:
            assert not ongoing
            ongoing = True
        if transition.resolve_incident:
            ongoing = False
        status = transition.status
        transitions.append(transition)
    return transitions


class TestConsecutiveFailures:
    def test_counter_counts_downs_since_last_up(self):
        rng = random.Random(7)
        for _ in range(50):
            results = [rng.choice([up, down])() for _ in range(30)]
            expected = 0
            for result, transition in zip(results, run(results)):
                expected = 0 if result.status == "UP" else expected + 1
                assert transition.status.consecutive_failures == expected

    def test_resets_exactly_on_up(self):
        transitions = run([down(), down(), up(), down()])
        assert [t.status.consecutive_failures for t in transitions] == [1, 2, 0, 1]


class TestIncidentRules:
    def test_up_to_down_opens_incident_even_above_threshold(self):
        transitions = run([up(), down()], threshold=5)
        assert transitions[1].open_incident
        assert transitions[1].previous_status == "UP"

    def test_first_failure_scenario_opens_once(self):
        transitions = run([up(), down(), down(), down(), down()], threshold=3)
        assert [t.open_incident for t in transitions] == [False, True, False, False, False]

    def test_pending_to_down_waits_for_threshold(self):
        transitions = run([down(), down(), down()], threshold=3)
        assert [t.open_incident for t in transitions] == [False, False, True]

    def test_threshold_reopens_after_manual_close(self):
        # Incident closed by hand while the endpoint stays down
        status = Status()
        transition = apply_check(status, up(), False, 3, True, utcnow())
        transition = apply_check(transition.status, down(), False, 3, True, utcnow())
        assert transition.open_incident

        transition = apply_check(transition.status, down(), False, 3, True, utcnow())
        assert not transition.open_incident  # count 2 < threshold
        transition = apply_check(transition.status, down(), False, 3, True, utcnow())
        assert transition.open_incident  # count 3 reached, none ongoing

    def test_no_second_incident_while_one_is_ongoing(self):
        rng = random.Random(11)
        for _ in range(50):
            results = [rng.choice([up, down, down])() for _ in range(40)]
            # run() asserts that no incident opens while one is ongoing
            run(results, threshold=rng.randint(1, 4), auto_resolve=rng.random() > 0.3)

    def test_recovery_resolves_with_auto_resolve(self):
        transitions = run([up(), down(), up()])
        assert transitions[2].resolve_incident

    def test_recovery_keeps_incident_without_auto_resolve(self):
        transitions = run([up(), down(), up()], auto_resolve=False)
        assert not transitions[2].resolve_incident

    def test_pending_to_up_resolves_nothing(self):
        transition = apply_check(Status(), up(), False, 3, True, utcnow())
        assert not transition.resolve_incident
        assert transition.status_changed


class TestStatusFields:
    def test_history_is_prepended_and_capped(self):
        transitions = run([up(message=f"sample {i}") for i in range(HISTORY_LIMIT + 5)])
        history = transitions[-1].status.history
        assert len(history) == HISTORY_LIMIT
        assert history[0].message == f"sample {HISTORY_LIMIT + 4}"

    def test_check_counters(self):
        status = run([up(), down(), up()])[-1].status
        assert status.total_checks == 3
        assert status.successful_checks == 2

    @pytest.mark.parametrize("results,changed", [
        ([up(), up()], False),
        ([up(), down()], True),
        ([down(), down()], False),
    ])
    def test_status_changed_only_when_value_changes(self, results, changed):
        assert run(results)[-1].status_changed is changed

    def test_inputs_are_not_mutated(self):
        previous = Status()
        apply_check(previous, down(), False, 3, True, utcnow())
        assert previous.total_checks == 0
        assert previous.history == []
