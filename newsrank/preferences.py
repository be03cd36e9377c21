"""
Preference profile derivation from the interaction log.

The stored profile is a materialized aggregate: ``apply_interaction`` is
used both for incremental updates and for full replays, so the two can
never drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from newsrank.constants import ACTION_WEIGHTS
from newsrank.models import Interaction, UserPreferenceProfile

# Mutually exclusive reactions; setting one retracts the other.
REACTIONS = frozenset({"thumbs_up", "thumbs_down"})


def is_valid_action(action: str) -> bool:
    return action in ACTION_WEIGHTS


@dataclass
class ProfileState:
    profile: UserPreferenceProfile = field(default_factory=UserPreferenceProfile)
    # str(article_id) -> {"action", "category", "source"} of the live reaction
    reactions: dict[str, dict[str, str]] = field(default_factory=dict)


def apply_interaction(
    state: ProfileState,
    article_id: int,
    action: str,
    category: str,
    source: str,
) -> bool:
    """Fold one interaction into ``state``.

    Returns False if it changed nothing (repeating the live reaction).
    A reaction's retraction uses the category/source it was recorded
    against, so it cancels exactly what it added.
    """
    if action not in ACTION_WEIGHTS:
        raise ValueError(f"Unknown action: {action}")

    if action in REACTIONS:
        key = str(article_id)
        previous = state.reactions.get(key)
        if previous is not None:
            if previous.get("action") == action:
                return False
            state.profile.add(
                previous.get("category", category),
                previous.get("source", source),
                -ACTION_WEIGHTS[previous["action"]],
            )
        state.reactions[key] = {"action": action, "category": category, "source": source}

    state.profile.add(category, source, ACTION_WEIGHTS[action])
    state.profile.interaction_count += 1
    return True


def replay(
    interactions: Iterable[Interaction],
    articles: Mapping[int, tuple[str, str]],
) -> ProfileState:
    """Rebuild a profile from the log (oldest first).

    ``articles`` maps article id to (category, source). Interactions for
    articles no longer stored are skipped.
    """
    state = ProfileState()
    for interaction in sorted(interactions, key=lambda i: i.timestamp):
        meta: Optional[tuple[str, str]] = articles.get(interaction.article_id)
        if meta is None:
            continue
        category, source = meta
        apply_interaction(state, interaction.article_id, interaction.action, category, source)
    return state
