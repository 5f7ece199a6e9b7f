"""Betting rules: action legality, round completion and turn order.

Everything here works on the seat list handed in by the caller and keeps no
state of its own.  The GameEngine owns the pot and the street; these helpers
only decide what a single action does to the acting player and to the
round-level ``current_bet`` / ``min_raise`` pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from holdem.errors import PreconditionError, ValidationError
from holdem.player import PlayerState


class PlayerAction(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    RAISE = "raise"


@dataclass(frozen=True)
class ActionOutcome:
    """Result of a legal action."""

    action: PlayerAction
    chips_moved: int
    current_bet: int
    min_raise: int
    description: str


def apply_action(
    players: Sequence[PlayerState],
    idx: int,
    action: PlayerAction | str,
    amount: int,
    current_bet: int,
    min_raise: int,
) -> ActionOutcome:
    """Apply *action* for ``players[idx]``.

    For a raise, *amount* is the increment above ``current_bet``.  Illegal
    actions raise before anything is touched.  On success the player is
    marked as having acted this round.
    """
    try:
        action = PlayerAction(action)
    except ValueError:
        raise ValidationError(f"Unknown action: {action}") from None

    p = players[idx]
    if not p.can_act:
        raise PreconditionError("You cannot act right now")

    moved = 0
    if action == PlayerAction.FOLD:
        p.folded = True
        description = f"{p.name} folds"

    elif action == PlayerAction.CHECK:
        if p.bet != current_bet:
            raise ValidationError("Cannot check - must call or fold")
        description = f"{p.name} checks"

    elif action == PlayerAction.CALL:
        to_call = current_bet - p.bet
        if to_call <= 0:
            raise ValidationError("Nothing to call - check instead")
        moved = p.commit(to_call)
        description = f"{p.name} calls ${moved}"
        if p.all_in:
            description += " (ALL-IN)"

    else:
        raise_amount = _as_int(amount)
        if raise_amount < min_raise:
            raise ValidationError(f"Raise must be at least ${min_raise}")
        new_bet = current_bet + raise_amount
        to_call = new_bet - p.bet
        if to_call > p.chips:
            raise ValidationError("Not enough chips to raise")

        moved = p.commit(to_call)
        current_bet = new_bet
        min_raise = raise_amount
        for i, other in enumerate(players):
            if i != idx and other.can_act:
                other.has_acted = False
        description = f"{p.name} raises to ${new_bet}"
        if p.all_in:
            description += " (ALL-IN)"

    p.has_acted = True
    return ActionOutcome(action, moved, current_bet, min_raise, description)


def _as_int(amount: Any) -> int:
    try:
        return int(amount)
    except (TypeError, ValueError):
        raise ValidationError("Raise amount must be a whole number") from None


def valid_actions(p: PlayerState, current_bet: int, min_raise: int) -> list[dict[str, Any]]:
    """Hints for the acting player; mirrors the checks in apply_action."""
    if not p.can_act:
        return []

    actions: list[dict[str, Any]] = [{"action": PlayerAction.FOLD.value}]
    to_call = current_bet - p.bet
    if to_call == 0:
        actions.append({"action": PlayerAction.CHECK.value})
    if to_call > 0:
        actions.append({"action": PlayerAction.CALL.value, "amount": min(to_call, p.chips)})

    max_raise = p.chips - max(to_call, 0)
    if max_raise >= min_raise:
        actions.append(
            {
                "action": PlayerAction.RAISE.value,
                "min_amount": min_raise,
                "max_amount": max_raise,
            }
        )
    return actions


# ------------------------------------------------------------------
# Round state
# ------------------------------------------------------------------


def eligible_actors(players: Sequence[PlayerState]) -> list[int]:
    return [i for i, p in enumerate(players) if p.can_act]


def contenders(players: Sequence[PlayerState]) -> list[int]:
    """Indices of players still able to win the pot."""
    return [i for i, p in enumerate(players) if p.in_hand]


def is_round_complete(players: Sequence[PlayerState], current_bet: int) -> bool:
    """Everyone who can act has acted and matched the bet, or nobody can act."""
    actors = [players[i] for i in eligible_actors(players)]
    if not actors:
        return True
    return all(p.has_acted and p.bet == current_bet for p in actors)


def next_actor(players: Sequence[PlayerState], from_idx: int) -> Optional[int]:
    """First seat after *from_idx* (circular) that can act, or None."""
    n = len(players)
    for offset in range(1, n + 1):
        i = (from_idx + offset) % n
        if players[i].can_act:
            return i
    return None


def first_actor_from(players: Sequence[PlayerState], start_idx: int) -> Optional[int]:
    """Like next_actor but *start_idx* itself is considered first."""
    if not players:
        return None
    return next_actor(players, start_idx - 1)


def reset_for_street(players: Sequence[PlayerState]) -> None:
    for p in players:
        p.reset_for_new_round()
