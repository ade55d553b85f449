"""State machine and workflow profile resolution (no database)."""

import pytest

from queuepos.errors import IllegalTransition, ValidationError
from queuepos.services import queue_workflow as wf


def test_profile_resolution_by_business_type():
    assert wf.resolve_workflow_profile("Restaurant").name == "restaurant"
    assert wf.resolve_workflow_profile("Beauty Parlour").name == "salon"
    assert wf.resolve_workflow_profile("Fast Food Corner").name == "quick_service"
    assert wf.resolve_workflow_profile("Hardware").name == "generic"
    assert wf.resolve_workflow_profile(None).name == "generic"


def test_explicit_override_wins_and_invalid_override_is_ignored():
    assert wf.resolve_workflow_profile("Restaurant", "counter").name == "counter"
    assert wf.resolve_workflow_profile("Restaurant", "nonsense").name == "restaurant"


def test_next_action_follows_profile_path():
    restaurant = wf.PROFILES["restaurant"]
    assert wf.next_action("WAITING", restaurant) == "CALLED"
    assert wf.next_action("CALLED", restaurant) == "IN_PROGRESS"
    assert wf.next_action("READY", restaurant) == "DONE"
    assert wf.next_action("DONE", restaurant) is None
    assert wf.next_action("CANCELLED", restaurant) is None

    counter = wf.PROFILES["counter"]
    assert wf.next_action("WAITING", counter) == "READY"


def test_next_action_resumes_after_stage_missing_from_profile():
    # IN_PROGRESS is not on the quick_service path
    assert wf.next_action("IN_PROGRESS", wf.PROFILES["quick_service"]) == "READY"


def test_kitchen_skip_profile_rejects_in_progress():
    quick = wf.PROFILES["quick_service"]
    with pytest.raises(IllegalTransition) as exc:
        wf.validate_transition("CALLED", "IN_PROGRESS", quick)
    assert exc.value.details["current_status"] == "CALLED"
    assert exc.value.details["expected_status"] == "READY"
    assert wf.validate_transition("CALLED", "READY", quick) == "READY"


@pytest.mark.parametrize("profile_name", sorted(wf.PROFILES))
def test_only_next_step_or_cancel_is_accepted(profile_name):
    profile = wf.PROFILES[profile_name]
    for current in wf.ACTIVE_STATUSES:
        expected = wf.next_action(current, profile)
        for requested in wf.STATUSES:
            if requested in (expected, wf.CANCELLED):
                assert wf.validate_transition(current, requested, profile) == requested
            else:
                with pytest.raises(IllegalTransition):
                    wf.validate_transition(current, requested, profile)


def test_terminal_statuses_accept_nothing():
    profile = wf.PROFILES["generic"]
    for current in ("DONE", "CANCELLED"):
        for requested in wf.STATUSES:
            with pytest.raises(IllegalTransition):
                wf.validate_transition(current, requested, profile)


def test_settled_token_is_frozen():
    with pytest.raises(IllegalTransition):
        wf.validate_transition("READY", "CANCELLED", wf.PROFILES["restaurant"], settled=True)


def test_legacy_status_names_are_accepted():
    assert wf.normalize_status("in_kitchen") == "IN_PROGRESS"
    assert wf.normalize_status("SERVED") == "DONE"
    with pytest.raises(ValidationError):
        wf.normalize_status("BOGUS")


def test_order_type_aliases_and_fallback():
    restaurant = wf.PROFILES["restaurant"]
    assert wf.normalize_order_type("Take Away", restaurant) == "takeaway"
    assert wf.normalize_order_type("dinein", restaurant) == "dine_in"
    assert wf.normalize_order_type("spaceship", restaurant) == "dine_in"
    assert wf.normalize_order_type(None, wf.PROFILES["salon"]) == "walk_in"


def test_status_sort_rank_is_canonical_order():
    ranks = [wf.status_sort_rank(s) for s in wf.STATUSES]
    assert ranks == sorted(ranks)
