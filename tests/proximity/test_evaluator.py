import logging
import random
from unittest.mock import Mock

import pytest

from proximity.evaluator import ProximityEvaluator
from proximity.zones import (
    ClosestChanged,
    TransitionKind,
    Zone,
    ZoneTransition,
    classify_zone,
    reset_boundary,
)
from settings import ProximitySettings


def labels(result) -> list[str]:
    return [event.label for event in transitions(result)]


def transitions(result) -> list[ZoneTransition]:
    return [event for event in result.events if isinstance(event, ZoneTransition)]


def closest_events(result) -> list[ClosestChanged]:
    return [event for event in result.events if isinstance(event, ClosestChanged)]


@pytest.fixture
def evaluator():
    return ProximityEvaluator()


@pytest.mark.unit
class TestClassifyZone:
    def test_inclusive_boundaries(self, proximity_settings):
        assert classify_zone(50.0, proximity_settings) is Zone.INNER
        assert classify_zone(50.01, proximity_settings) is Zone.OUTER
        assert classify_zone(250.0, proximity_settings) is Zone.OUTER
        assert classify_zone(250.01, proximity_settings) is Zone.FAR

    def test_reset_boundary_covers_card_distance(self):
        settings = ProximitySettings(inner_distance=50, outer_distance=250, card_distance=400)
        assert reset_boundary(settings) == 400


@pytest.mark.unit
class TestSorting:
    def test_sorted_by_distance_not_insertion_order(
        self, evaluator, landmark_factory, proximity_settings
    ):
        far = landmark_factory.landmark(500, id="a-far")
        near = landmark_factory.landmark(100, id="z-near")
        mid = landmark_factory.landmark(300, id="m-mid")

        result = evaluator.evaluate(
            landmark_factory.position(), [far, near, mid], proximity_settings
        )

        assert [item.landmark.id for item in result.landmarks] == ["z-near", "m-mid", "a-far"]

    def test_output_is_non_decreasing(self, evaluator, landmark_factory, proximity_settings):
        rng = random.Random(3)
        landmarks = [
            landmark_factory.landmark(rng.uniform(0, 3000), id=f"lm-{i}") for i in range(25)
        ]

        result = evaluator.evaluate(landmark_factory.position(), landmarks, proximity_settings)
        distances = [item.distance_m for item in result.landmarks]

        assert distances == sorted(distances)
        assert len(distances) == 25

    def test_ties_broken_by_id(self, evaluator, landmark_factory, proximity_settings):
        b = landmark_factory.landmark(100, id="b")
        a = landmark_factory.landmark(100, id="a")
        evaluator.set_distance_override("a", 100.0)
        evaluator.set_distance_override("b", 100.0)

        result = evaluator.evaluate(landmark_factory.position(), [b, a], proximity_settings)

        assert [item.landmark.id for item in result.landmarks] == ["a", "b"]
        assert result.closest.landmark.id == "a"

    def test_max_distance_limits_results(self, evaluator, landmark_factory, proximity_settings):
        near = landmark_factory.landmark(100)
        far = landmark_factory.landmark(1500)

        result = evaluator.evaluate(
            landmark_factory.position(), [near, far], proximity_settings, max_distance=1000
        )

        assert [item.landmark for item in result.landmarks] == [near]
        assert result.nearest_distance_m == pytest.approx(100.0)

    def test_max_distance_is_inclusive(self, evaluator, landmark_factory, proximity_settings):
        landmark = landmark_factory.landmark(id="edge")
        evaluator.set_distance_override("edge", 1000.0)

        result = evaluator.evaluate(
            landmark_factory.position(), [landmark], proximity_settings, max_distance=1000
        )

        assert result.closest.landmark.id == "edge"


@pytest.mark.unit
class TestClosest:
    def test_first_evaluation_emits_closest(self, evaluator, landmark_factory, proximity_settings):
        landmark = landmark_factory.landmark(400)

        result = evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        [event] = closest_events(result)
        assert event.landmark == landmark
        assert event.distance_m == pytest.approx(400.0)
        assert event.previous_id is None
        assert evaluator.closest_id == landmark.id

    def test_unchanged_closest_not_re_emitted(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(400)
        evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        result = evaluator.evaluate(landmark_factory.position(20), [landmark], proximity_settings)

        assert closest_events(result) == []

    def test_change_carries_previous_id(self, evaluator, landmark_factory, proximity_settings):
        first = landmark_factory.landmark(400, id="first")
        second = landmark_factory.landmark(900, id="second")
        evaluator.evaluate(landmark_factory.position(), [first, second], proximity_settings)

        result = evaluator.evaluate(
            landmark_factory.position(800), [first, second], proximity_settings
        )

        [event] = closest_events(result)
        assert event.landmark.id == "second"
        assert event.previous_id == "first"

    def test_none_in_range_emits_cleared_closest(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(400)
        evaluator.evaluate(
            landmark_factory.position(), [landmark], proximity_settings, max_distance=1000
        )

        result = evaluator.evaluate(
            landmark_factory.position(-2000), [landmark], proximity_settings, max_distance=1000
        )

        [event] = closest_events(result)
        assert event.landmark is None
        assert event.previous_id == landmark.id
        assert result.closest is None


@pytest.mark.unit
class TestShortCircuits:
    def test_no_position_is_a_no_op(self, evaluator, landmark_factory, proximity_settings):
        listener = Mock()
        evaluator.subscribe(listener)

        result = evaluator.evaluate(None, [landmark_factory.landmark(10)], proximity_settings)

        assert result.landmarks == []
        assert result.events == []
        listener.assert_not_called()

    def test_no_landmarks_returns_empty(self, evaluator, landmark_factory, proximity_settings):
        listener = Mock()
        evaluator.subscribe(listener)

        result = evaluator.evaluate(landmark_factory.position(), [], proximity_settings)

        assert result.landmarks == []
        assert result.closest is None
        listener.assert_not_called()

    def test_emptied_landmarks_clear_closest(
        self, evaluator, landmark_factory, proximity_settings
    ):
        position = landmark_factory.position()
        landmark = landmark_factory.landmark(100, id="top-a")
        evaluator.evaluate(position, [landmark], proximity_settings)
        listener = Mock()
        evaluator.subscribe(listener)

        result = evaluator.evaluate(position, [], proximity_settings)

        assert result.events == [ClosestChanged(None, None, previous_id="top-a")]
        listener.assert_called_once_with(result.events[0])
        assert evaluator.closest_id is None
        assert evaluator.zone_state("top-a") is None

    def test_disabled_settings_are_a_no_op(self, evaluator, landmark_factory):
        settings = ProximitySettings(is_enabled=False)

        result = evaluator.evaluate(
            landmark_factory.position(), [landmark_factory.landmark(10)], settings
        )

        assert result.events == []
        assert evaluator.closest_id is None


@pytest.mark.unit
class TestZoneTransitions:
    def test_inner_zone_entry_at_40m(self, evaluator, landmark_factory, proximity_settings):
        landmark = landmark_factory.landmark(40)

        result = evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        assert labels(result) == ["enter:inner", "enter:card"]
        assert evaluator.zone_state(landmark.id).zone is Zone.INNER

    def test_approach_emits_outer_then_inner(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(1000)
        steps = [0, 800, 900, 960]  # distances 1000, 200, 100, 40

        emitted = []
        for step in steps:
            result = evaluator.evaluate(
                landmark_factory.position(step), [landmark], proximity_settings
            )
            emitted.append(labels(result))

        assert emitted == [[], ["enter:outer"], [], ["enter:inner", "enter:card"]]

    def test_repeated_confirmation_emits_nothing(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(40)
        evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        for offset in (1, 2, 3, 2, 1):
            result = evaluator.evaluate(
                landmark_factory.position(offset), [landmark], proximity_settings
            )
            assert labels(result) == []

    def test_moving_back_to_outer_does_not_re_enter(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(300)
        evaluator.evaluate(landmark_factory.position(100), [landmark], proximity_settings)
        evaluator.evaluate(landmark_factory.position(260), [landmark], proximity_settings)

        out = evaluator.evaluate(landmark_factory.position(150), [landmark], proximity_settings)
        back_in = evaluator.evaluate(
            landmark_factory.position(260), [landmark], proximity_settings
        )

        assert labels(out) == []
        assert labels(back_in) == []
        assert evaluator.zone_state(landmark.id).zone is Zone.INNER

    def test_exit_past_outer_emits_exit_for_each_entered_zone(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(300)
        evaluator.evaluate(landmark_factory.position(100), [landmark], proximity_settings)
        evaluator.evaluate(landmark_factory.position(260), [landmark], proximity_settings)

        result = evaluator.evaluate(landmark_factory.position(0), [landmark], proximity_settings)

        assert labels(result) == ["exit:inner", "exit:outer", "exit:card"]
        assert all(e.kind is TransitionKind.EXIT for e in transitions(result))
        assert evaluator.zone_state(landmark.id) is None

    def test_exit_and_re_entry_triggers_again(
        self, evaluator, landmark_factory, proximity_settings
    ):
        landmark = landmark_factory.landmark(300)

        first = evaluator.evaluate(landmark_factory.position(260), [landmark], proximity_settings)
        away = evaluator.evaluate(landmark_factory.position(0), [landmark], proximity_settings)
        again = evaluator.evaluate(
            landmark_factory.position(260), [landmark], proximity_settings
        )

        assert labels(first) == ["enter:inner", "enter:card"]
        assert labels(away) == ["exit:inner", "exit:card"]
        assert labels(again) == ["enter:inner", "enter:card"]

    def test_threshold_exactly_inside(self, evaluator, landmark_factory, proximity_settings):
        outer = landmark_factory.landmark(id="outer-edge")
        inner = landmark_factory.landmark(id="inner-edge")
        evaluator.set_distance_override("outer-edge", 250.0)
        evaluator.set_distance_override("inner-edge", 50.0)

        result = evaluator.evaluate(
            landmark_factory.position(), [outer, inner], proximity_settings
        )

        seen = {(e.landmark.id, e.label) for e in transitions(result)}
        assert ("outer-edge", "enter:outer") in seen
        assert ("inner-edge", "enter:inner") in seen
        assert ("inner-edge", "enter:card") in seen

    def test_landmarks_are_independent(self, evaluator, landmark_factory, proximity_settings):
        a = landmark_factory.landmark(40, id="a")
        b = landmark_factory.landmark(200, id="b")

        result = evaluator.evaluate(landmark_factory.position(), [a, b], proximity_settings)

        seen = [(e.landmark.id, e.label) for e in transitions(result)]
        assert seen == [("a", "enter:inner"), ("a", "enter:card"), ("b", "enter:outer")]

    def test_card_distance_independent_of_inner(self, evaluator, landmark_factory):
        settings = ProximitySettings(inner_distance=30, outer_distance=250, card_distance=100)
        landmark = landmark_factory.landmark(80)

        result = evaluator.evaluate(landmark_factory.position(), [landmark], settings)

        assert labels(result) == ["enter:outer", "enter:card"]

    def test_removed_landmark_state_is_pruned_silently(
        self, evaluator, landmark_factory, proximity_settings
    ):
        a = landmark_factory.landmark(40, id="a")
        b = landmark_factory.landmark(600, id="b")
        evaluator.evaluate(landmark_factory.position(), [a, b], proximity_settings)

        result = evaluator.evaluate(landmark_factory.position(), [b], proximity_settings)

        assert labels(result) == []
        assert evaluator.zone_state("a") is None


@pytest.mark.unit
class TestDistanceOverride:
    def test_override_short_circuits_distance_function(self, landmark_factory, proximity_settings):
        distance_fn = Mock(return_value=5000.0)
        evaluator = ProximityEvaluator(distance_fn=distance_fn)
        forced = landmark_factory.landmark(id="forced")
        other = landmark_factory.landmark(id="other")
        evaluator.set_distance_override("forced", 10.0)

        result = evaluator.evaluate(
            landmark_factory.position(), [forced, other], proximity_settings
        )

        assert distance_fn.call_count == 1
        assert result.closest.landmark.id == "forced"
        assert result.closest.distance_m == 10.0

    def test_clear_override(self, evaluator, landmark_factory, proximity_settings):
        landmark = landmark_factory.landmark(700, id="x")
        evaluator.set_distance_override("x", 10.0)
        evaluator.clear_distance_override("x")

        result = evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        assert result.closest.distance_m == pytest.approx(700.0)


@pytest.mark.unit
class TestListeners:
    def test_listeners_receive_events_in_order(
        self, evaluator, landmark_factory, proximity_settings
    ):
        received = []
        evaluator.subscribe(received.append)
        landmark = landmark_factory.landmark(40)

        result = evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        assert received == result.events
        assert isinstance(received[0], ClosestChanged)

    def test_failing_listener_does_not_block_others(
        self, evaluator, landmark_factory, proximity_settings, caplog
    ):
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        evaluator.subscribe(failing)
        evaluator.subscribe(healthy)

        with caplog.at_level(logging.ERROR):
            result = evaluator.evaluate(
                landmark_factory.position(), [landmark_factory.landmark(40)], proximity_settings
            )

        assert healthy.call_count == len(result.events)
        assert "Proximity listener failed" in caplog.text

    def test_listener_sees_updated_state(self, evaluator, landmark_factory, proximity_settings):
        seen = []
        evaluator.subscribe(lambda event: seen.append(evaluator.closest_id))
        landmark = landmark_factory.landmark(40)

        evaluator.evaluate(landmark_factory.position(), [landmark], proximity_settings)

        assert seen and all(closest_id == landmark.id for closest_id in seen)

    def test_unsubscribe(self, evaluator, landmark_factory, proximity_settings):
        listener = Mock()
        evaluator.subscribe(listener)
        evaluator.unsubscribe(listener)

        evaluator.evaluate(
            landmark_factory.position(), [landmark_factory.landmark(40)], proximity_settings
        )

        listener.assert_not_called()
