"""Game engine for a single Texas Hold'em room.

Owns the authoritative room state: roster (seated / waiting / away), deck,
blinds, betting progression, showdown, pot distribution, hand history and
the host's administrative actions.  Nothing here awaits or locks; callers
serialize access per room (see holdem.rooms).

Every change of turn bumps ``turn_token``.  The action timer and the all-in
runout remember the token they were scheduled for and are ignored if the
token has moved on by the time they fire.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from enum import Enum
from typing import Callable, Optional

from holdem import betting, config
from holdem.betting import ActionOutcome, PlayerAction
from holdem.cards import Card, Deck
from holdem.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from holdem.evaluator import describe_hand, determine_winners, evaluate_hand
from holdem.models import (
    GameSettings,
    HandHistoryEntry,
    HistoryPlayer,
    HistoryWinner,
    PrivateState,
    PublicPlayer,
    PublicState,
    RebuyRequestView,
    ShowdownEntry,
    WaitingPlayer,
)
from holdem.player import PlayerState

logger = logging.getLogger(__name__)

STREET_NAMES = {1: "Flop", 2: "Turn", 3: "River"}


class JoinResult(str, Enum):
    JOINED = "joined"
    WAITING = "waiting"
    ALREADY_JOINED = "already-joined"
    ALREADY_WAITING = "already-waiting"


class GameEngine:
    """Aggregate root for one room."""

    def __init__(
        self,
        room_id: str,
        settings: GameSettings | None = None,
        deck_factory: Callable[[], Deck] = Deck,
    ) -> None:
        self.room_id = room_id
        self.settings = settings or GameSettings()
        self._deck_factory = deck_factory

        self.players: list[PlayerState] = []
        self.waiting: list[PlayerState] = []
        self.host_id: Optional[str] = None

        self.deck: Optional[Deck] = None
        self.community_cards: list[Card] = []
        self.pot: int = 0
        self.current_bet: int = 0
        self.min_raise: int = self.settings.big_blind
        self.dealer_idx: int = 0
        self.current_player_idx: int = -1
        self.betting_round: int = 0
        self.hand_number: int = 0
        self.game_started: bool = False
        self.hand_in_progress: bool = False
        self.last_action: str = "Waiting for host to start the game"

        # Timer bookkeeping (Unix timestamps)
        self.turn_token: int = 0
        self.action_deadline: Optional[float] = None
        self.runout_deadline: Optional[float] = None

        self.hand_history: deque[HandHistoryEntry] = deque(maxlen=config.HAND_HISTORY_LIMIT)
        self.rebuy_requests: list[str] = []
        self.showdown: list[ShowdownEntry] = []
        # Players dropped for having no chips at the end of the last hand
        self.busted: list[PlayerState] = []

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.players and not self.waiting

    @property
    def is_full(self) -> bool:
        return len(self.players) + len(self.waiting) >= config.MAX_PLAYERS

    @property
    def current_player(self) -> Optional[PlayerState]:
        if self.hand_in_progress and 0 <= self.current_player_idx < len(self.players):
            return self.players[self.current_player_idx]
        return None

    def _seat_index(self, player_id: str) -> Optional[int]:
        for i, p in enumerate(self.players):
            if p.player_id == player_id:
                return i
        return None

    def find_player(self, player_id: str) -> Optional[PlayerState]:
        """Seated or waiting player with this id."""
        for p in self.players + self.waiting:
            if p.player_id == player_id:
                return p
        return None

    def pop_busted(self) -> list[PlayerState]:
        busted, self.busted = self.busted, []
        return busted

    def _require_host(self, session_id: str, what: str) -> None:
        if session_id != self.host_id:
            raise AuthorizationError(f"Only the host can {what}")

    def _playable_indices(self) -> list[int]:
        return [i for i, p in enumerate(self.players) if p.can_be_dealt]

    def _next_playable(self, idx: int) -> int:
        n = len(self.players)
        for offset in range(1, n + 1):
            i = (idx + offset) % n
            if self.players[i].can_be_dealt:
                return i
        return idx

    def _set_turn(self, idx: int) -> None:
        """Hand the turn to seat *idx* (-1 for nobody) and restart the clock."""
        self.current_player_idx = idx
        self.turn_token += 1
        self.runout_deadline = None
        if idx >= 0 and self.hand_in_progress:
            self.action_deadline = time.time() + self.settings.turn_timer
        else:
            self.action_deadline = None

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def add_player(self, player_id: str, name: str) -> JoinResult:
        if self._seat_index(player_id) is not None:
            return JoinResult.ALREADY_JOINED
        if any(p.player_id == player_id for p in self.waiting):
            return JoinResult.ALREADY_WAITING
        if self.is_full:
            raise PreconditionError("Room is full")

        player = PlayerState(player_id, name, self.settings.starting_chips)
        if self.host_id is None:
            self.host_id = player_id
            logger.info("Room %s: %s is now the host", self.room_id, name)

        if self.hand_in_progress:
            self.waiting.append(player)
            return JoinResult.WAITING
        self.players.append(player)
        return JoinResult.JOINED

    def remove_player(self, player_id: str) -> Optional[PlayerState]:
        """Drop a player from every list in the room.

        Mid-hand, the departing player's chips already in the pot stay there.
        If they held the turn it moves on; if fewer than two contenders are
        left the hand ends.
        """
        removed: Optional[PlayerState] = None
        was_current = False
        idx = self._seat_index(player_id)

        if idx is not None:
            was_current = self.hand_in_progress and idx == self.current_player_idx
            removed = self.players.pop(idx)
            if self.players:
                if idx < self.dealer_idx:
                    self.dealer_idx -= 1
                self.dealer_idx %= len(self.players)
                if self.current_player_idx > idx:
                    self.current_player_idx -= 1
            else:
                self.dealer_idx = 0
        else:
            for i, p in enumerate(self.waiting):
                if p.player_id == player_id:
                    removed = self.waiting.pop(i)
                    break

        self.rebuy_requests = [pid for pid in self.rebuy_requests if pid != player_id]

        if removed is None:
            return None

        logger.info("Room %s: %s removed", self.room_id, removed.name)

        if self.host_id == player_id:
            successor = (self.players or self.waiting or [None])[0]
            self.host_id = successor.player_id if successor else None
            if successor:
                logger.info("Room %s: host transferred to %s", self.room_id, successor.name)

        if self.hand_in_progress:
            if len(betting.contenders(self.players)) < 2:
                self.end_hand()
            elif was_current:
                self._advance_turn(idx - 1)

        return removed

    def toggle_away(self, player_id: str) -> bool:
        """Flip a seated player's away flag and return the new value.

        Going away while holding cards forfeits the hand; the player is
        folded so coming back mid-hand does not put them back in it.
        """
        idx = self._seat_index(player_id)
        if idx is None:
            if any(p.player_id == player_id for p in self.waiting):
                raise PreconditionError("You will be seated when the next hand starts")
            raise NotFoundError("You are not seated at this table")

        p = self.players[idx]
        p.away = not p.away
        self.last_action = f"{p.name} is away" if p.away else f"{p.name} is back"

        if p.away and self.hand_in_progress and p.hole_cards and not p.folded:
            was_current = idx == self.current_player_idx
            p.folded = True
            p.has_acted = True
            self.last_action = f"{p.name} is away and folds"
            if len(betting.contenders(self.players)) <= 1:
                self.end_hand()
            elif was_current:
                self._advance_turn(idx)

        return p.away

    # ------------------------------------------------------------------
    # Hand lifecycle
    # ------------------------------------------------------------------

    def start_hand(self, session_id: str) -> None:
        """Shuffle, deal, post blinds and hand the turn to the first actor."""
        self._require_host(session_id, "start the hand")
        if self.hand_in_progress:
            raise PreconditionError("Hand already in progress")
        participants = self._playable_indices()
        if len(participants) < 2:
            raise PreconditionError("Need at least 2 players to start")

        self.hand_number += 1
        self.game_started = True
        self.hand_in_progress = True
        self.showdown = []
        self.busted = []
        self.deck = self._deck_factory()
        self.community_cards = []
        self.pot = 0
        self.betting_round = 0

        for p in self.players:
            p.reset_for_new_hand()

        if self.dealer_idx >= len(self.players):
            self.dealer_idx = 0
        if not self.players[self.dealer_idx].can_be_dealt:
            self.dealer_idx = self._next_playable(self.dealer_idx)

        # One card per player per pass
        for _ in range(2):
            for i in participants:
                self.players[i].hole_cards.append(self.deck.draw())

        heads_up = len(participants) == 2
        if heads_up:
            sb_idx = self.dealer_idx
        else:
            sb_idx = self._next_playable(self.dealer_idx)
        bb_idx = self._next_playable(sb_idx)

        sb_amount = self._post_blind(sb_idx, self.settings.small_blind)
        bb_amount = self._post_blind(bb_idx, self.settings.big_blind)
        self.current_bet = self.settings.big_blind
        self.min_raise = self.settings.big_blind

        self.last_action = (
            f"New hand started! Blinds: ${self.settings.small_blind}/${self.settings.big_blind}"
        )
        logger.info(
            "Room %s: hand #%d started with %d players (SB=%d, BB=%d)",
            self.room_id, self.hand_number, len(participants), sb_amount, bb_amount,
        )

        first = self.dealer_idx if heads_up else self._next_playable(bb_idx)
        first_actor = betting.first_actor_from(self.players, first)
        if first_actor is None:
            # Both blinds put everyone all-in
            self._advance_street()
        else:
            self._set_turn(first_actor)

    def _post_blind(self, idx: int, amount: int) -> int:
        posted = self.players[idx].commit(amount)
        self.pot += posted
        return posted

    def player_action(
        self, player_id: str, action: PlayerAction | str, amount: int = 0
    ) -> ActionOutcome:
        if not self.hand_in_progress:
            raise PreconditionError("No hand in progress")
        idx = self._seat_index(player_id)
        if idx is None:
            raise NotFoundError("You are not seated at this table")
        if idx != self.current_player_idx:
            raise PreconditionError("Not your turn")

        outcome = betting.apply_action(
            self.players, idx, action, amount, self.current_bet, self.min_raise
        )
        self.pot += outcome.chips_moved
        self.current_bet = outcome.current_bet
        self.min_raise = outcome.min_raise
        self.last_action = outcome.description
        logger.debug("Room %s: %s", self.room_id, outcome.description)

        self._advance_turn(idx)
        return outcome

    def _advance_turn(self, from_idx: int) -> None:
        if len(betting.contenders(self.players)) <= 1:
            self.end_hand()
            return
        if betting.is_round_complete(self.players, self.current_bet):
            self._advance_street()
            return
        nxt = betting.next_actor(self.players, from_idx)
        if nxt is None:
            self._advance_street()
        else:
            self._set_turn(nxt)

    def _advance_street(self) -> None:
        self.betting_round += 1
        self.current_bet = 0
        self.min_raise = self.settings.big_blind
        betting.reset_for_street(self.players)

        if self.betting_round == 1:
            self._deal_community(3)
        elif self.betting_round in (2, 3):
            self._deal_community(1)
        else:
            self.end_hand()
            return
        self.last_action = f"{STREET_NAMES[self.betting_round]} dealt"

        first = betting.first_actor_from(
            self.players, (self.dealer_idx + 1) % len(self.players)
        )
        if first is not None:
            self._set_turn(first)
        elif self.betting_round < 3:
            # Nobody can bet: deal the next street after a short pause
            self._set_turn(-1)
            self.runout_deadline = time.time() + config.RUNOUT_DELAY
        else:
            self.end_hand()

    def _deal_community(self, count: int) -> None:
        assert self.deck is not None
        if self.deck.remaining < count + 1:
            raise RuntimeError("Deck exhausted while dealing the board")
        self.deck.burn()
        cards = self.deck.draw_many(count)
        self.community_cards.extend(cards)
        logger.debug("Room %s: board %s", self.room_id, self.community_cards)

    def expire_turn(self, token: int) -> Optional[PlayerState]:
        """Fold the current player if the turn *token* is still current.

        Returns the folded player, or None when the turn already moved on.
        """
        p = self.current_player
        if p is None or token != self.turn_token or not p.can_act:
            return None
        p.folded = True
        p.has_acted = True
        self.last_action = f"{p.name} ran out of time and folds"
        logger.info("Room %s: %s timed out", self.room_id, p.name)
        self._advance_turn(self.current_player_idx)
        return p

    def run_out(self, token: int) -> bool:
        """Deal the next street of an all-in runout if *token* is still current."""
        if (
            not self.hand_in_progress
            or token != self.turn_token
            or self.runout_deadline is None
        ):
            return False
        self._advance_street()
        return True

    def end_hand(self) -> None:
        """Award the pot, record history, rotate the button and tidy the roster."""
        pot = self.pot
        self.hand_in_progress = False
        self._set_turn(-1)
        self.showdown = []

        in_hand = [self.players[i] for i in betting.contenders(self.players)]
        winners: list[HistoryWinner] = []

        if len(in_hand) == 1:
            w = in_hand[0]
            w.chips += pot
            winners.append(HistoryWinner(id=w.player_id, name=w.name, amount=pot, hand="Uncontested"))
            self.last_action = f"🏆 {w.name} wins ${pot}"
        elif in_hand:
            hands = {}
            for p in in_hand:
                p.best_hand = evaluate_hand(p.hole_cards, self.community_cards)
                hands[p.player_id] = p.best_hand
            winner_ids = determine_winners(hands)
            # Remainder chips from an uneven split are not awarded
            share = pot // len(winner_ids)
            for p in in_hand:
                won = p.player_id in winner_ids
                if won:
                    p.chips += share
                    winners.append(
                        HistoryWinner(
                            id=p.player_id, name=p.name, amount=share,
                            hand=describe_hand(p.best_hand),
                        )
                    )
                self.showdown.append(
                    ShowdownEntry(
                        player_id=p.player_id,
                        name=p.name,
                        cards=[c.to_dict() for c in p.hole_cards],
                        hand=describe_hand(p.best_hand),
                        winner=won,
                    )
                )
            if len(winners) == 1:
                self.last_action = f"🏆 {winners[0].name} wins ${pot} with {winners[0].hand}"
            else:
                names = ", ".join(w.name for w in winners)
                self.last_action = f"🏆 {names} split ${share} each"
        else:
            logger.warning(
                "Room %s: hand #%d ended with no contenders, pot of %d forfeited",
                self.room_id, self.hand_number, pot,
            )
            self.last_action = "Hand ended with no players left"

        self.pot = 0
        logger.info("Room %s: hand #%d over - %s", self.room_id, self.hand_number, self.last_action)

        self.hand_history.appendleft(
            HandHistoryEntry(
                hand_number=self.hand_number,
                pot=pot,
                community_cards=[c.to_dict() for c in self.community_cards],
                players=[
                    HistoryPlayer(
                        id=p.player_id,
                        name=p.name,
                        cards=[c.to_dict() for c in p.hole_cards],
                        folded=p.folded,
                        chips=p.chips,
                    )
                    for p in self.players
                    if p.hole_cards
                ],
                winners=winners,
                timestamp=time.time(),
            )
        )

        self._rotate_and_reseat()

    def _rotate_and_reseat(self) -> None:
        n = len(self.players)
        keep_broke = self.settings.rebuy_enabled
        survivors = [p for p in self.players if p.chips > 0 or keep_broke]

        # Button moves to the next seat that is still at the table
        next_dealer: Optional[PlayerState] = None
        for offset in range(1, n + 1):
            candidate = self.players[(self.dealer_idx + offset) % n]
            if candidate in survivors:
                next_dealer = candidate
                break

        self.busted = [p for p in self.players if p not in survivors]
        if self.busted:
            logger.info(
                "Room %s: removed %d broke player(s)", self.room_id, len(self.busted)
            )
        self.players = survivors

        if self.waiting:
            self.players.extend(self.waiting)
            self.last_action += f" | {len(self.waiting)} player(s) joined"
            self.waiting = []

        self.dealer_idx = self.players.index(next_dealer) if next_dealer else 0

        if len(self._playable_indices()) < 2:
            self.game_started = False
            self.last_action += " | Waiting for more players..."

    # ------------------------------------------------------------------
    # Rebuy & host administration
    # ------------------------------------------------------------------

    def request_rebuy(self, player_id: str) -> None:
        if not self.settings.rebuy_enabled:
            raise PreconditionError("Rebuys are disabled in this room")
        idx = self._seat_index(player_id)
        if idx is None:
            raise NotFoundError("You are not seated at this table")
        p = self.players[idx]
        if p.chips > 0:
            raise PreconditionError("You can only rebuy when you are out of chips")
        if self.hand_in_progress and p.in_hand:
            raise PreconditionError("Wait for the current hand to finish")
        if player_id in self.rebuy_requests:
            raise PreconditionError("Rebuy request already pending")
        self.rebuy_requests.append(player_id)

    def handle_rebuy(self, session_id: str, player_id: str, approved: bool) -> PlayerState:
        self._require_host(session_id, "handle rebuy requests")
        if player_id not in self.rebuy_requests:
            raise NotFoundError("No pending rebuy request for that player")
        self.rebuy_requests.remove(player_id)
        idx = self._seat_index(player_id)
        if idx is None:
            raise NotFoundError("Player not found")
        p = self.players[idx]
        if approved:
            p.chips = self.settings.rebuy_amount
        return p

    def give_chips(self, session_id: str, player_id: str, amount: int) -> PlayerState:
        self._require_host(session_id, "give chips")
        if amount < 1:
            raise ValidationError("Amount must be at least 1")
        p = self.find_player(player_id)
        if p is None:
            raise NotFoundError("Player not found")
        p.chips += amount
        return p

    def kick(self, session_id: str, player_id: str) -> PlayerState:
        self._require_host(session_id, "kick players")
        if player_id == session_id:
            raise AuthorizationError("You cannot kick yourself")
        if self.find_player(player_id) is None:
            raise NotFoundError("Player not found")
        removed = self.remove_player(player_id)
        assert removed is not None
        return removed

    def update_settings(self, session_id: str, settings: GameSettings) -> None:
        self._require_host(session_id, "change settings")
        if self.hand_in_progress:
            raise PreconditionError("Cannot change settings during a hand")
        self.settings = settings
        self.min_raise = settings.big_blind
        if not settings.rebuy_enabled:
            self.rebuy_requests = []

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def public_state(self) -> PublicState:
        names = {p.player_id: p.name for p in self.players + self.waiting}
        return PublicState(
            room_id=self.room_id,
            players=[PublicPlayer(**p.to_dict()) for p in self.players],
            waiting_players=[WaitingPlayer(id=p.player_id, name=p.name) for p in self.waiting],
            community_cards=[c.to_dict() for c in self.community_cards],
            pot=self.pot,
            current_bet=self.current_bet,
            min_raise=self.min_raise,
            current_player_index=self.current_player_idx,
            dealer_index=self.dealer_idx,
            betting_round=self.betting_round,
            game_started=self.game_started,
            hand_in_progress=self.hand_in_progress,
            hand_number=self.hand_number,
            host_id=self.host_id,
            last_action=self.last_action,
            settings=self.settings,
            hand_history=list(self.hand_history),
            rebuy_requests=[
                RebuyRequestView(player_id=pid, name=names.get(pid, "Unknown"))
                for pid in self.rebuy_requests
            ],
            showdown=[] if self.hand_in_progress else self.showdown,
            action_deadline=self.action_deadline,
        )

    def private_state(self, player_id: str) -> PrivateState:
        idx = self._seat_index(player_id)
        if idx is None:
            return PrivateState()
        p = self.players[idx]

        description = ""
        if len(self.community_cards) >= 3 and p.hole_cards and not p.away:
            description = describe_hand(evaluate_hand(p.hole_cards, self.community_cards))

        actions = []
        if self.hand_in_progress and idx == self.current_player_idx:
            actions = betting.valid_actions(p, self.current_bet, self.min_raise)

        return PrivateState(
            cards=[c.to_dict() for c in p.hole_cards],
            hand_description=description,
            valid_actions=actions,
        )
