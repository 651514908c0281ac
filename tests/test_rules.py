"""Tests for event metadata parsing and the rule catalog."""

import pytest

from coordinator.triggers.metadata import (
    MalformedEventError,
    BlockerPersistedMetadata,
    SnoozeExpiredMetadata,
    ActivityMetadata,
    parse_event_metadata,
)
from coordinator.triggers.models import EventType, Severity, TriggerCandidate
from coordinator.triggers.rules import (
    COORDINATION_RULES,
    ACTION_OVERDUE_RULE_ID,
    BLOCKER_PERSISTED_RULE_ID,
    MISSING_STANDUP_RULE_ID,
    QUESTION_UNANSWERED_RULE_ID,
    CoordinationRule,
    escalation_level_for,
    evaluate_creation,
    evaluate_resolution,
    get_rule_by_id,
    resolve_escalation_target,
)


def _draft_for(event):
    return evaluate_creation(event, parse_event_metadata(event))


class TestMetadataParsing:

    def test_typed_variant_by_event_type(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"blockerDays": 3, "blockerReason": "waiting on API"})
        metadata = parse_event_metadata(event)

        assert isinstance(metadata, BlockerPersistedMetadata)
        assert metadata.blocker_days == 3
        assert metadata.blocker_reason == "waiting on API"
        assert metadata.resolved is False

    def test_missing_age_is_rejected_by_the_rule(self, make_event):
        event = make_event(EventType.MISSING_STANDUP_DETECTED, {}, event_id="event-bad")
        metadata = parse_event_metadata(event)

        with pytest.raises(MalformedEventError) as exc_info:
            evaluate_creation(event, metadata)

        assert exc_info.value.event_id == "event-bad"
        assert "missingDays" in exc_info.value.detail

    def test_resolution_only_fields_parse_without_ages(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"resolved": True})
        metadata = parse_event_metadata(event)

        assert metadata.blocker_days is None
        assert evaluate_resolution(event, metadata).rule_ids == [BLOCKER_PERSISTED_RULE_ID]

    def test_wrong_field_type(self, make_event):
        event = make_event(EventType.QUESTION_UNANSWERED, {"unansweredHours": "a while"})

        with pytest.raises(MalformedEventError):
            parse_event_metadata(event)

    def test_retrigger_requires_previous_level(self, make_event):
        event = make_event(EventType.SNOOZE_EXPIRED, {"retrigger": True})

        with pytest.raises(MalformedEventError):
            parse_event_metadata(event)

    def test_snooze_without_retrigger_needs_no_level(self, make_event):
        metadata = parse_event_metadata(make_event(EventType.SNOOZE_EXPIRED, {}))
        assert isinstance(metadata, SnoozeExpiredMetadata)
        assert metadata.retrigger is False

    def test_telemetry_events_accept_empty_metadata(self, make_event):
        metadata = parse_event_metadata(make_event(EventType.SUMMARY_VIEWED))
        assert isinstance(metadata, ActivityMetadata)

    def test_unknown_keys_are_kept(self, make_event):
        event = make_event(EventType.SUMMARY_VIEWED, {"source": "digest"})
        assert parse_event_metadata(event).model_extra == {"source": "digest"}


class TestCatalog:

    def test_catalog_order(self):
        assert [rule.rule_id for rule in COORDINATION_RULES] == [
            "missing-standup-two-days",
            "question-unanswered-24h",
            "action-overdue",
            "blocker-persisted-high-severity",
            "snooze-expired-retrigger",
        ]

    def test_get_rule_by_id(self):
        assert get_rule_by_id(ACTION_OVERDUE_RULE_ID).rule_id == ACTION_OVERDUE_RULE_ID
        assert get_rule_by_id("no-such-rule") is None

    def test_first_creation_match_wins(self, make_event):
        class AlwaysLevelOne(CoordinationRule):
            rule_id = "first"

            def matches_creation(self, event, metadata):
                return TriggerCandidate(target_user_id="user-a", severity=Severity.LOW, escalation_level=1)

        class AlwaysLevelTwo(AlwaysLevelOne):
            rule_id = "second"

        event = make_event(EventType.SUMMARY_VIEWED)
        metadata = parse_event_metadata(event)

        draft = evaluate_creation(event, metadata, rules=(AlwaysLevelOne(), AlwaysLevelTwo()))
        assert draft.rule_id == "first"

        draft = evaluate_creation(event, metadata, rules=(AlwaysLevelTwo(), AlwaysLevelOne()))
        assert draft.rule_id == "second"

    def test_unrelated_event_matches_nothing(self, make_event):
        event = make_event(EventType.DIGEST_COPIED)
        metadata = parse_event_metadata(event)

        assert evaluate_creation(event, metadata) is None
        assert evaluate_resolution(event, metadata) is None


class TestEscalationLevels:

    @pytest.mark.parametrize("value,level", [(2, 1), (3, 2), (4, 3), (10, 3)])
    def test_day_thresholds(self, value, level):
        assert escalation_level_for(value, level_2_at=3, level_3_at=4) == level

    @pytest.mark.parametrize("hours,level", [(24, 1), (47.5, 1), (48, 2), (71, 2), (72, 3)])
    def test_question_levels(self, make_event, hours, level):
        draft = _draft_for(make_event(EventType.QUESTION_UNANSWERED, {"unansweredHours": hours}))

        assert draft.rule_id == QUESTION_UNANSWERED_RULE_ID
        assert draft.escalation_level == level

    def test_question_below_24h(self, make_event):
        assert _draft_for(make_event(EventType.QUESTION_UNANSWERED, {"unansweredHours": 23})) is None

    @pytest.mark.parametrize("days,level", [(2, 1), (3, 2), (4, 3)])
    def test_missing_standup_levels(self, make_event, days, level):
        draft = _draft_for(make_event(EventType.MISSING_STANDUP_DETECTED, {"missingDays": days}))

        assert draft.rule_id == MISSING_STANDUP_RULE_ID
        assert draft.escalation_level == level
        assert draft.severity == Severity.MEDIUM

    def test_single_missed_standup(self, make_event):
        assert _draft_for(make_event(EventType.MISSING_STANDUP_DETECTED, {"missingDays": 1})) is None

    def test_source_level_blocks_same_or_lower(self, make_event):
        event = make_event(EventType.QUESTION_UNANSWERED, {"unansweredHours": 72})
        metadata = parse_event_metadata(event)

        assert evaluate_creation(event, metadata, source_escalation_level=3) is None

    def test_source_level_allows_higher(self, make_event):
        event = make_event(EventType.QUESTION_UNANSWERED, {"unansweredHours": 72})
        metadata = parse_event_metadata(event)

        assert evaluate_creation(event, metadata, source_escalation_level=1).escalation_level == 3

    def test_source_level_in_metadata_is_ignored(self, make_event):
        event = make_event(
            EventType.QUESTION_UNANSWERED,
            {"unansweredHours": 72, "sourceEscalationLevel": 3},
        )
        assert _draft_for(event).escalation_level == 3

    @pytest.mark.parametrize("event_type,metadata,key", [
        (EventType.MISSING_STANDUP_DETECTED, {"missingDays": -2}, "missingDays"),
        (EventType.QUESTION_UNANSWERED, {"unansweredHours": -30}, "unansweredHours"),
        (EventType.ACTION_OVERDUE, {"overdueDays": -1}, "overdueDays"),
        (EventType.ACTION_INTERACTION, {"actionState": "OVERDUE", "overdueDays": -1}, "overdueDays"),
    ])
    def test_negative_age_is_malformed(self, make_event, event_type, metadata, key):
        with pytest.raises(MalformedEventError) as exc_info:
            _draft_for(make_event(event_type, metadata))

        assert key in exc_info.value.detail

    def test_entity_id_with_separator_is_malformed(self, make_event):
        event = make_event(EventType.ACTION_OVERDUE, {"overdueDays": 1}, related_entity_id="repo:42")

        with pytest.raises(MalformedEventError) as exc_info:
            _draft_for(event)

        assert "repo:42" in exc_info.value.detail


class TestEscalationTargets:

    def _metadata(self, make_event, **contacts):
        return parse_event_metadata(make_event(EventType.SUMMARY_VIEWED, contacts))

    def test_level_one_is_event_user(self, make_event):
        metadata = self._metadata(make_event, poUserId="po", managerUserId="manager")
        assert resolve_escalation_target(metadata, 1, "user-2") == "user-2"

    def test_level_two_prefers_dependency_owner(self, make_event):
        metadata = self._metadata(make_event, dependencyOwnerUserId="dep", managerUserId="manager")
        assert resolve_escalation_target(metadata, 2, "user-2") == "dep"

    def test_level_two_falls_back_to_manager(self, make_event):
        metadata = self._metadata(make_event, managerUserId="manager")
        assert resolve_escalation_target(metadata, 2, "user-2") == "manager"

    def test_level_three_prefers_po(self, make_event):
        metadata = self._metadata(make_event, poUserId="po", projectOwnerUserId="owner")
        assert resolve_escalation_target(metadata, 3, "user-2") == "po"

    def test_level_three_falls_back_to_project_owner(self, make_event):
        metadata = self._metadata(make_event, projectOwnerUserId="owner")
        assert resolve_escalation_target(metadata, 3, "user-2") == "owner"

    def test_no_contacts_falls_back_to_event_user(self, make_event):
        metadata = self._metadata(make_event)
        assert resolve_escalation_target(metadata, 3, "user-2") == "user-2"

    def test_escalated_draft_is_keyed_to_new_target(self, make_event):
        event = make_event(
            EventType.MISSING_STANDUP_DETECTED,
            {"missingDays": 4, "poUserId": "po-1"},
            related_entity_id=None,
        )
        draft = _draft_for(event)

        assert draft.target_user_id == "po-1"
        assert draft.dedup_key == "missing-standup-two-days:po-1:none:L3"

    def test_no_target_at_all(self, make_event):
        event = make_event(EventType.MISSING_STANDUP_DETECTED, {"missingDays": 2}, target_user_id=None)
        assert _draft_for(event) is None


class TestBlockerRule:

    def test_high_severity_blocker(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"blockerDays": 2}, severity=Severity.HIGH)
        draft = _draft_for(event)

        assert draft.rule_id == BLOCKER_PERSISTED_RULE_ID
        assert draft.severity == Severity.HIGH
        assert draft.escalation_level == 1

    def test_medium_severity_blocker_ignored(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"blockerDays": 5}, severity=Severity.MEDIUM)
        assert _draft_for(event) is None

    def test_young_blocker_ignored(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"blockerDays": 1}, severity=Severity.HIGH)
        assert _draft_for(event) is None

    def test_resolved_blocker_resolves(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"blockerDays": 5, "resolved": True}, severity=Severity.HIGH)
        metadata = parse_event_metadata(event)

        assert evaluate_creation(event, metadata) is None
        assert evaluate_resolution(event, metadata).rule_ids == [BLOCKER_PERSISTED_RULE_ID]

    def test_high_blocker_without_days_is_malformed(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {"blockerReason": "no days"}, severity=Severity.HIGH)

        with pytest.raises(MalformedEventError):
            _draft_for(event)

    def test_medium_blocker_without_days_is_ignored(self, make_event):
        event = make_event(EventType.BLOCKER_PERSISTED, {}, severity=Severity.MEDIUM)
        assert _draft_for(event) is None


class TestActionRules:

    def test_overdue_event(self, make_event):
        draft = _draft_for(make_event(EventType.ACTION_OVERDUE, {"overdueDays": 3}))

        assert draft.rule_id == ACTION_OVERDUE_RULE_ID
        assert draft.escalation_level == 2

    def test_overdue_defaults_to_one_day(self, make_event):
        draft = _draft_for(make_event(EventType.ACTION_OVERDUE))
        assert draft.escalation_level == 1

    def test_overdue_interaction(self, make_event):
        draft = _draft_for(make_event(EventType.ACTION_INTERACTION, {"actionState": "OVERDUE"}))

        assert draft.rule_id == ACTION_OVERDUE_RULE_ID
        assert draft.escalation_level == 1

    def test_done_resolves_action_and_blocker_rules(self, make_event):
        event = make_event(EventType.ACTION_INTERACTION, {"actionState": "DONE"}, related_entity_id="issue-1")
        match = evaluate_resolution(event, parse_event_metadata(event))

        assert match.related_entity_id == "issue-1"
        assert match.rule_ids == [ACTION_OVERDUE_RULE_ID, BLOCKER_PERSISTED_RULE_ID]

    def test_done_ignores_bad_overdue_days(self, make_event):
        event = make_event(EventType.ACTION_INTERACTION, {"actionState": "DONE", "overdueDays": -1})
        metadata = parse_event_metadata(event)

        assert evaluate_creation(event, metadata) is None
        assert evaluate_resolution(event, metadata).rule_ids == [ACTION_OVERDUE_RULE_ID, BLOCKER_PERSISTED_RULE_ID]

    def test_resolution_needs_an_entity(self, make_event):
        event = make_event(EventType.ACTION_INTERACTION, {"actionState": "DONE"}, related_entity_id=None)
        assert evaluate_resolution(event, parse_event_metadata(event)) is None

    def test_question_answered(self, make_event):
        event = make_event(EventType.QUESTION_EVENT, {"questionStatus": "ANSWERED"}, related_entity_id="question-1")
        match = evaluate_resolution(event, parse_event_metadata(event))

        assert match.rule_ids == [QUESTION_UNANSWERED_RULE_ID]

    def test_question_event_without_answer(self, make_event):
        event = make_event(EventType.QUESTION_EVENT, {"questionStatus": "ASKED"})
        assert evaluate_resolution(event, parse_event_metadata(event)) is None


class TestSnoozeRule:

    def test_retrigger_at_previous_level(self, make_event):
        event = make_event(EventType.SNOOZE_EXPIRED, {"retrigger": True, "previousEscalationLevel": 2})
        draft = _draft_for(event)

        assert draft.rule_id == "snooze-expired-retrigger"
        assert draft.escalation_level == 2
        assert draft.dedup_key == "snooze-expired-retrigger:user-2:entity-1:L2"

    def test_no_retrigger(self, make_event):
        assert _draft_for(make_event(EventType.SNOOZE_EXPIRED, {"retrigger": False})) is None
