"""Texas Hold'em hand evaluator.

Evaluates the best 5-card hand from a player's hole cards plus the board.
A HandRank carries the category, a tie-break value list and the five cards
that make the hand; two HandRanks compare directly (higher is better).

Tie-break values are always five entries long, repeating the made ranks
(e.g. a full house of kings over fours is ``(13, 13, 13, 4, 4)``) and then
the kickers high-to-low.  Straights use the plain high-to-low card values,
so the wheel (A-2-3-4-5) compares as ``(14, 5, 4, 3, 2)``.

Only A-K-Q-J-10 suited is a royal flush.  A suited wheel is a straight flush
with the wheel's values, even though its top card is an ace.
"""

from __future__ import annotations

from collections import Counter
from enum import IntEnum
from itertools import combinations
from typing import Sequence

from holdem.cards import VALUE_NAMES, Card


class HandCategory(IntEnum):
    NO_HAND = 0
    HIGH_CARD = 1
    ONE_PAIR = 2
    TWO_PAIR = 3
    THREE_OF_A_KIND = 4
    STRAIGHT = 5
    FLUSH = 6
    FULL_HOUSE = 7
    FOUR_OF_A_KIND = 8
    STRAIGHT_FLUSH = 9
    ROYAL_FLUSH = 10


HAND_NAMES = {
    HandCategory.NO_HAND: "No hand",
    HandCategory.HIGH_CARD: "High Card",
    HandCategory.ONE_PAIR: "One Pair",
    HandCategory.TWO_PAIR: "Two Pair",
    HandCategory.THREE_OF_A_KIND: "Three of a Kind",
    HandCategory.STRAIGHT: "Straight",
    HandCategory.FLUSH: "Flush",
    HandCategory.FULL_HOUSE: "Full House",
    HandCategory.FOUR_OF_A_KIND: "Four of a Kind",
    HandCategory.STRAIGHT_FLUSH: "Straight Flush",
    HandCategory.ROYAL_FLUSH: "Royal Flush",
}

WHEEL = (14, 5, 4, 3, 2)


class HandRank:
    """Comparable hand ranking: (category, values...) ordered by significance."""

    __slots__ = ("category", "values", "cards")

    def __init__(
        self,
        category: HandCategory,
        values: tuple[int, ...],
        cards: list[Card],
    ) -> None:
        self.category = category
        self.values = values
        self.cards = cards

    @property
    def _key(self) -> tuple[int, ...]:
        return (int(self.category),) + self.values

    def __lt__(self, other: HandRank) -> bool:
        return compare_hands(self, other) < 0

    def __gt__(self, other: HandRank) -> bool:
        return compare_hands(self, other) > 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HandRank):
            return NotImplemented
        return compare_hands(self, other) == 0

    def __le__(self, other: HandRank) -> bool:
        return compare_hands(self, other) <= 0

    def __ge__(self, other: HandRank) -> bool:
        return compare_hands(self, other) >= 0

    def __hash__(self) -> int:
        return hash(self._key)

    @property
    def name(self) -> str:
        return HAND_NAMES[self.category]

    @property
    def description(self) -> str:
        return describe_hand(self)

    def __repr__(self) -> str:
        return f"HandRank({self.name}, {self.values})"


NO_HAND = HandRank(HandCategory.NO_HAND, (), [])


def _is_straight(values: list[int]) -> bool:
    """*values* must be five card values sorted high to low."""
    if all(values[i] - values[i + 1] == 1 for i in range(4)):
        return True
    return tuple(values) == WHEEL


def _evaluate_five(cards: Sequence[Card]) -> HandRank:
    """Evaluate exactly 5 cards and return their HandRank."""
    if len(cards) != 5:
        raise ValueError(f"Need exactly 5 cards, got {len(cards)}")

    ordered = sorted(cards, key=lambda c: c.value, reverse=True)
    values = [c.value for c in ordered]

    is_flush = len({c.suit for c in ordered}) == 1
    is_straight = _is_straight(values)

    counts = Counter(values)
    # (count desc, value desc) so the made ranks come first
    groups = sorted(counts.items(), key=lambda x: (x[1], x[0]), reverse=True)
    shape = [count for _, count in groups]

    def _spread() -> tuple[int, ...]:
        return tuple(v for v, count in groups for _ in range(count))

    if is_flush and is_straight:
        if values[0] == 14 and values[1] == 13:
            return HandRank(HandCategory.ROYAL_FLUSH, (14, 13, 12, 11, 10), ordered)
        return HandRank(HandCategory.STRAIGHT_FLUSH, tuple(values), ordered)

    if shape[0] == 4:
        return HandRank(HandCategory.FOUR_OF_A_KIND, _spread(), ordered)

    if shape[:2] == [3, 2]:
        return HandRank(HandCategory.FULL_HOUSE, _spread(), ordered)

    if is_flush:
        return HandRank(HandCategory.FLUSH, tuple(values), ordered)

    if is_straight:
        return HandRank(HandCategory.STRAIGHT, tuple(values), ordered)

    if shape[0] == 3:
        return HandRank(HandCategory.THREE_OF_A_KIND, _spread(), ordered)

    if shape[:2] == [2, 2]:
        return HandRank(HandCategory.TWO_PAIR, _spread(), ordered)

    if shape[0] == 2:
        return HandRank(HandCategory.ONE_PAIR, _spread(), ordered)

    return HandRank(HandCategory.HIGH_CARD, tuple(values), ordered)


def evaluate(cards: Sequence[Card]) -> HandRank:
    """Evaluate the best 5-card hand from any number of cards.

    Fewer than five cards yields the NO_HAND sentinel.
    """
    if len(cards) < 5:
        return NO_HAND

    best: HandRank | None = None
    for combo in combinations(cards, 5):
        rank = _evaluate_five(combo)
        if best is None or compare_hands(rank, best) > 0:
            best = rank

    assert best is not None
    return best


def evaluate_hand(hole_cards: Sequence[Card], community: Sequence[Card]) -> HandRank:
    """Best hand for a player: 2 hole cards + 0-5 community cards."""
    return evaluate(list(hole_cards) + list(community))


def compare_hands(a: HandRank, b: HandRank) -> int:
    """Negative if a < b, positive if a > b, 0 on an exact tie.

    Category first, then the value lists element by element; the first
    difference decides.
    """
    if a.category != b.category:
        return int(a.category) - int(b.category)
    for x, y in zip(a.values, b.values):
        if x != y:
            return x - y
    return 0


def _plural(value: int) -> str:
    name = VALUE_NAMES[value]
    return name + "es" if name.endswith("x") else name + "s"


def describe_hand(hand: HandRank | None) -> str:
    """Human-readable phrase, e.g. 'Full House, Kings over Fours'."""
    if hand is None or hand.category == HandCategory.NO_HAND:
        return "No hand"

    v = hand.values
    category = hand.category
    if category == HandCategory.ROYAL_FLUSH:
        return "Royal Flush!"
    if category == HandCategory.STRAIGHT_FLUSH:
        high = 5 if v == WHEEL else v[0]
        return f"Straight Flush, {VALUE_NAMES[high]} high"
    if category == HandCategory.FOUR_OF_A_KIND:
        return f"Four {_plural(v[0])}"
    if category == HandCategory.FULL_HOUSE:
        return f"Full House, {_plural(v[0])} over {_plural(v[3])}"
    if category == HandCategory.FLUSH:
        return f"Flush, {VALUE_NAMES[v[0]]} high"
    if category == HandCategory.STRAIGHT:
        high = 5 if v == WHEEL else v[0]
        return f"Straight, {VALUE_NAMES[high]} high"
    if category == HandCategory.THREE_OF_A_KIND:
        return f"Three {_plural(v[0])}"
    if category == HandCategory.TWO_PAIR:
        return f"Two Pair, {_plural(v[0])} and {_plural(v[2])}"
    if category == HandCategory.ONE_PAIR:
        return f"Pair of {_plural(v[0])}"
    return f"{VALUE_NAMES[v[0]]} high"


def determine_winners(player_hands: dict[str, HandRank]) -> list[str]:
    """Given {player_id: HandRank}, return the winner ids (ties possible)."""
    if not player_hands:
        return []

    best: HandRank | None = None
    winners: list[str] = []
    for pid, hand in player_hands.items():
        cmp = 1 if best is None else compare_hands(hand, best)
        if cmp > 0:
            best = hand
            winners = [pid]
        elif cmp == 0:
            winners.append(pid)
    return winners
