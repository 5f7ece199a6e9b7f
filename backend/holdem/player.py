"""Per-room player state."""

from __future__ import annotations

from typing import Any, Optional

from holdem.cards import Card
from holdem.evaluator import HandRank


class PlayerState:
    """A player owned by exactly one GameEngine."""

    def __init__(self, player_id: str, name: str, chips: int) -> None:
        self.player_id = player_id
        self.name = name
        self.chips = chips
        self.hole_cards: list[Card] = []
        self.bet: int = 0
        self.folded: bool = False
        self.all_in: bool = False
        self.has_acted: bool = False
        self.away: bool = False
        self.best_hand: Optional[HandRank] = None

    @property
    def in_hand(self) -> bool:
        """Dealt into the current hand and still contesting the pot."""
        return bool(self.hole_cards) and not self.folded and not self.away

    @property
    def can_act(self) -> bool:
        """Eligible to be handed the turn."""
        return self.in_hand and not self.all_in

    @property
    def can_be_dealt(self) -> bool:
        return not self.away and self.chips > 0

    def reset_for_new_hand(self) -> None:
        self.hole_cards = []
        self.bet = 0
        self.folded = False
        self.all_in = False
        self.has_acted = False
        self.best_hand = None

    def reset_for_new_round(self) -> None:
        self.bet = 0
        if not self.folded and not self.all_in:
            self.has_acted = False

    def commit(self, amount: int) -> int:
        """Move up to *amount* chips from the stack into the current bet.

        Returns the chips actually moved; the player is marked all-in when
        the stack runs dry.
        """
        actual = min(amount, self.chips)
        self.chips -= actual
        self.bet += actual
        if self.chips == 0:
            self.all_in = True
        return actual

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.player_id,
            "name": self.name,
            "chips": self.chips,
            "bet": self.bet,
            "folded": self.folded,
            "all_in": self.all_in,
            "away": self.away,
            "card_count": len(self.hole_cards),
        }

    def __repr__(self) -> str:
        return f"PlayerState({self.name!r}, chips={self.chips}, bet={self.bet})"
