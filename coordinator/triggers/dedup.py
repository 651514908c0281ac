"""Deterministic trigger keys used for deduplication and idempotent replays."""

from typing import Optional

KEY_SEPARATOR = ":"
NO_ENTITY = "none"


def build_dedup_key(
    rule_id: str,
    target_user_id: str,
    related_entity_id: Optional[str] = None,
    escalation_level: int = 1
) -> str:
    """
    Build the dedup key for a trigger condition.

    The escalation level is part of the key, so escalating a condition
    creates a new trigger instead of updating the existing one.

    Components are joined with ":" and a missing entity is written as
    "none", so ids containing ":" and an entity id of literally "none" would
    collide with other keys. Both are rejected.

    Example:
        build_dedup_key("question-unanswered-24h", "user-2", "question-1", 3)
        -> "question-unanswered-24h:user-2:question-1:L3"

    Raises:
        ValueError: a component contains ":" or the entity id is "none".
    """
    for name, value in (
        ("rule_id", rule_id),
        ("target_user_id", target_user_id),
        ("related_entity_id", related_entity_id),
    ):
        if value and KEY_SEPARATOR in value:
            raise ValueError(f"{name} {value!r} cannot contain {KEY_SEPARATOR!r}")
    if related_entity_id == NO_ENTITY:
        raise ValueError(f"related_entity_id {NO_ENTITY!r} is reserved for project-wide conditions")

    return KEY_SEPARATOR.join([
        rule_id,
        target_user_id,
        related_entity_id or NO_ENTITY,
        f"L{escalation_level}",
    ])
