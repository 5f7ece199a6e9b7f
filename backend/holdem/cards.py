"""Card and Deck representation."""

from __future__ import annotations

import random
from enum import Enum
from typing import Iterable


class Suit(str, Enum):
    SPADES = "♠"
    HEARTS = "♥"
    DIAMONDS = "♦"
    CLUBS = "♣"


RANKS: tuple[str, ...] = (
    "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A",
)

RANK_VALUES: dict[str, int] = {rank: value for value, rank in enumerate(RANKS, start=2)}

VALUE_NAMES: dict[int, str] = {
    14: "Ace",
    13: "King",
    12: "Queen",
    11: "Jack",
    10: "Ten",
    9: "Nine",
    8: "Eight",
    7: "Seven",
    6: "Six",
    5: "Five",
    4: "Four",
    3: "Three",
    2: "Two",
}

# Short suit letters accepted by Card.from_str ("Ah", "10s", "Td")
_SUIT_LETTERS = {
    "s": Suit.SPADES,
    "h": Suit.HEARTS,
    "d": Suit.DIAMONDS,
    "c": Suit.CLUBS,
}


class Card:
    __slots__ = ("rank", "suit", "value")

    def __init__(self, rank: str, suit: Suit) -> None:
        if rank not in RANK_VALUES:
            raise ValueError(f"Unknown rank: {rank!r}")
        object.__setattr__(self, "rank", rank)
        object.__setattr__(self, "suit", Suit(suit))
        object.__setattr__(self, "value", RANK_VALUES[rank])

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("Card is immutable")

    def __repr__(self) -> str:
        return f"{self.rank}{self.suit.value}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.rank == other.rank and self.suit == other.suit

    def __hash__(self) -> int:
        return hash((self.rank, self.suit))

    def to_dict(self) -> dict:
        return {"suit": self.suit.value, "rank": self.rank, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> Card:
        return cls(data["rank"], Suit(data["suit"]))

    @classmethod
    def from_str(cls, s: str) -> Card:
        """Parse 'Ah', '10s', 'Td', 'K♣' etc."""
        rank_part, suit_part = s[:-1].upper(), s[-1]
        if rank_part == "T":
            rank_part = "10"
        suit = _SUIT_LETTERS.get(suit_part.lower())
        if suit is None:
            suit = Suit(suit_part)
        return cls(rank_part, suit)


class Deck:
    """52-card deck consumed from the end.

    ``draw`` removes and returns the last card.  Every draw checks the
    remaining length first so an exhausted deck raises instead of
    silently returning nothing.
    """

    def __init__(self, shuffle: bool = True) -> None:
        self._cards: list[Card] = [
            Card(rank, suit) for suit in Suit for rank in RANKS
        ]
        if shuffle:
            self.shuffle()

    @classmethod
    def stacked(cls, cards: Iterable[Card | str]) -> Deck:
        """Build a deck whose draws return *cards* in the given order.

        Any of the 52 cards not listed are placed underneath (drawn after),
        in a fixed order, so the deck is still complete.
        """
        wanted = [c if isinstance(c, Card) else Card.from_str(c) for c in cards]
        if len(set(wanted)) != len(wanted):
            raise ValueError("Stacked deck contains duplicate cards")
        deck = cls(shuffle=False)
        rest = [c for c in deck._cards if c not in set(wanted)]
        deck._cards = rest + list(reversed(wanted))
        return deck

    def shuffle(self) -> None:
        random.shuffle(self._cards)

    def draw(self) -> Card:
        if not self._cards:
            raise ValueError("Not enough cards in deck")
        return self._cards.pop()

    def draw_many(self, n: int) -> list[Card]:
        if n > len(self._cards):
            raise ValueError("Not enough cards in deck")
        return [self._cards.pop() for _ in range(n)]

    def burn(self) -> None:
        self.draw()

    @property
    def remaining(self) -> int:
        return len(self._cards)

    def __len__(self) -> int:
        return len(self._cards)
