"""Pydantic models for inbound requests and outbound room snapshots."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from holdem import config
from holdem.betting import PlayerAction


# --- Settings ---


class GameSettings(BaseModel):
    starting_chips: int = Field(default=config.DEFAULT_STARTING_CHIPS, ge=100, le=100000)
    small_blind: int = Field(default=config.DEFAULT_SMALL_BLIND, ge=1)
    big_blind: int = Field(default=config.DEFAULT_BIG_BLIND, ge=2)
    turn_timer: int = Field(default=config.DEFAULT_TURN_TIMER, ge=5, le=300)  # seconds
    rebuy_enabled: bool = config.DEFAULT_REBUY_ENABLED
    rebuy_amount: int = Field(default=config.DEFAULT_REBUY_AMOUNT, ge=1, le=100000)

    @model_validator(mode="after")
    def _blinds_ordered(self) -> GameSettings:
        if self.big_blind <= self.small_blind:
            raise ValueError("Big blind must be greater than small blind")
        return self


# --- Request models ---


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class JoinRequest(_Request):
    player_name: str = Field(..., min_length=2, max_length=20)
    room_code: Optional[str] = Field(default=None, max_length=12)


class ActionRequest(_Request):
    action: PlayerAction
    amount: int = 0


class ChatRequest(_Request):
    text: str = Field(..., min_length=1, max_length=200)


class UpdateSettingsRequest(_Request):
    settings: GameSettings


class GiveChipsRequest(_Request):
    player_id: str
    amount: int = Field(..., ge=1)


class KickRequest(_Request):
    player_id: str


class RebuyDecisionRequest(_Request):
    player_id: str
    approved: bool


# --- Snapshot models ---


class CardView(BaseModel):
    suit: str
    rank: str
    value: int


class PublicPlayer(BaseModel):
    id: str
    name: str
    chips: int
    bet: int
    folded: bool
    all_in: bool
    away: bool
    card_count: int


class WaitingPlayer(BaseModel):
    id: str
    name: str


class RebuyRequestView(BaseModel):
    player_id: str
    name: str


class ShowdownEntry(BaseModel):
    player_id: str
    name: str
    cards: list[CardView]
    hand: str
    winner: bool = False


class HistoryPlayer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    cards: list[CardView]
    folded: bool
    chips: int


class HistoryWinner(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    amount: int
    hand: str


class HandHistoryEntry(BaseModel):
    """Immutable record of a finished hand."""

    model_config = ConfigDict(frozen=True)

    hand_number: int
    pot: int
    community_cards: list[CardView]
    players: list[HistoryPlayer]
    winners: list[HistoryWinner]
    timestamp: float


class PublicState(BaseModel):
    """Room view shared by every session; no hole cards."""

    room_id: str
    players: list[PublicPlayer]
    waiting_players: list[WaitingPlayer]
    community_cards: list[CardView]
    pot: int
    current_bet: int
    min_raise: int
    current_player_index: int
    dealer_index: int
    betting_round: int
    game_started: bool
    hand_in_progress: bool
    hand_number: int
    host_id: Optional[str]
    last_action: str
    settings: GameSettings
    hand_history: list[HandHistoryEntry]
    rebuy_requests: list[RebuyRequestView]
    showdown: list[ShowdownEntry]
    action_deadline: Optional[float] = None


class PrivateState(BaseModel):
    """Per-session view: own hole cards and hand description."""

    cards: list[CardView] = Field(default_factory=list)
    hand_description: str = ""
    valid_actions: list[dict] = Field(default_factory=list)


class ChatMessage(BaseModel):
    type: str  # "system" or "player"
    text: str
    timestamp: float
    name: Optional[str] = None
