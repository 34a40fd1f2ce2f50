"""Tests for status derivation and manual status actions."""

from dataclasses import replace

import pytest

from prospect_engine.constants import Trigger
from prospect_engine.services.lifecycle import (
    apply_status_action,
    derive_status,
    next_status,
    status_label,
)
from prospect_engine.services.scoring_state import ScoringState


def _state(score=0, status="cold", **kwargs) -> ScoringState:
    return ScoringState(prospect_id="p1", score=score, group=score, status=status, **kwargs)


class TestDeriveStatus:
    def test_bounced_is_absorbing(self, policy):
        prev = _state(3, "bounced")
        scored = replace(prev, score=6, group=6)
        assert derive_status(prev, scored, policy, Trigger.EVENT, "email_replied") == "bounced"
        assert derive_status(prev, prev, policy, Trigger.MANUAL, requested="handoff") == "bounced"
        assert derive_status(prev, replace(prev, score=0, group=0), policy, Trigger.DECAY) == "bounced"

    def test_bounce_event_wins_over_top_group(self, policy):
        prev = _state(6, "handoff")
        assert derive_status(prev, prev, policy, Trigger.EVENT, "email_bounced") == "bounced"

    def test_top_group_hands_off(self, policy):
        prev = _state(5, "qualified")
        assert derive_status(prev, _state(6), policy, Trigger.EVENT, "email_opened") == "handoff"

    def test_decay_to_min_resets_to_cold(self, policy):
        prev = _state(1, "interested")
        assert derive_status(prev, _state(0), policy, Trigger.DECAY) == "cold"

    def test_decay_above_min_keeps_status(self, policy):
        prev = _state(4, "interested")
        assert derive_status(prev, _state(3), policy, Trigger.DECAY) == "interested"

    def test_decay_never_hands_off(self, policy):
        prev = _state(6, "qualified")
        assert derive_status(prev, _state(6), policy, Trigger.DECAY) == "qualified"

    def test_status_never_moves_backwards_on_events(self, policy):
        prev = _state(1, "qualified")
        assert derive_status(prev, _state(2), policy, Trigger.EVENT, "email_opened") == "qualified"

    def test_group_advances_status(self, policy):
        prev = _state(2, "contacted")
        assert derive_status(prev, _state(3), policy, Trigger.EVENT, "email_opened") == "replied"
        assert derive_status(prev, _state(5), policy, Trigger.EVENT, "email_clicked") == "qualified"

    def test_event_mapping_advances_status(self, policy):
        prev = _state(0, "cold")
        assert derive_status(prev, prev, policy, Trigger.EVENT, "call_made") == "contacted"
        assert derive_status(prev, prev, policy, Trigger.EVENT, "meeting_scheduled") == "interested"

    def test_unmapped_event_keeps_status(self, policy):
        prev = _state(0, "cold")
        assert derive_status(prev, prev, policy, Trigger.EVENT, "note_added") == "cold"


class TestStatusActions:
    @pytest.mark.parametrize("requested", ["contacted", "replied", "interested", "qualified"])
    def test_forward_moves(self, policy, requested):
        result = apply_status_action(_state(0, "cold"), requested, policy)
        assert result.applied
        assert result.state.status == requested
        assert result.state.score == 0
        assert result.trigger == Trigger.MANUAL

    def test_manual_handoff(self, policy):
        result = apply_status_action(_state(2, "replied"), "handoff", policy)
        assert result.state.status == "handoff"
        assert result.reason == "Marked Hand-off"

    def test_reason_names_the_status_applied(self, policy):
        result = apply_status_action(_state(4, "contacted"), "replied", policy)
        assert result.state.status == "interested"
        assert result.reason == "Marked Interested"

    def test_backward_request_is_a_noop(self, policy):
        result = apply_status_action(_state(3, "interested"), "contacted", policy)
        assert not result.applied
        assert result.state.status == "interested"

    def test_same_status_is_a_noop(self, policy):
        assert not apply_status_action(_state(1, "contacted"), "contacted", policy).applied

    def test_cannot_mark_bounced(self, policy):
        result = apply_status_action(_state(1, "contacted"), "bounced", policy)
        assert not result.applied
        assert "email_bounced" in result.reason

    def test_unknown_status(self, policy):
        result = apply_status_action(_state(), "won", policy)
        assert not result.applied
        assert "unknown status" in result.reason

    def test_bounced_prospect_ignores_actions(self, policy):
        result = apply_status_action(_state(2, "bounced"), "handoff", policy)
        assert not result.applied
        assert result.state.status == "bounced"


def test_next_status_chain():
    assert next_status("cold") == "contacted"
    assert next_status("qualified") == "handoff"
    assert next_status("handoff") is None
    assert next_status("bounced") is None


def test_status_labels():
    assert status_label("handoff") == "Hand-off"
    assert status_label("cold") == "Cold"
    assert status_label("mystery") == "mystery"
