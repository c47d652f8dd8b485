"""Hanabi game model.

Core classes representing the Hanabi game ledger and the belief state
kept about it: card identities and identity sets, physical cards, action
records, the public game state, per-card belief records and the
per-observer belief stores that the clue interpreter reads and writes.
"""

from __future__ import annotations

import dataclasses
import enum
import logging

from variants import Clue, MAX_RANK, Variant

logger = logging.getLogger(__name__)


# =============================================================================
# ANSI Color Constants
# =============================================================================

class _Colors:
    """ANSI escape codes for terminal coloring."""
    BLUE = "\033[94m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    GREEN = "\033[92m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


# =============================================================================
# Enums
# =============================================================================

class ConnectionType(enum.Enum):
    """How a connecting card is expected to be played.

    KNOWN: The holder already knows the card's identity.
    PLAYABLE: The card is provably playable without private knowledge.
    PROMPT: Existing clues force the holder to play a clued card.
    FINESSE: The holder must blind-play an unclued card.
    """
    KNOWN = enum.auto()
    PLAYABLE = enum.auto()
    PROMPT = enum.auto()
    FINESSE = enum.auto()


class Interp(enum.Enum):
    """Final interpretation tag of a clue."""
    PLAY = enum.auto()
    SAVE = enum.auto()
    FIX = enum.auto()
    MISTAKE = enum.auto()
    DISTRIBUTION = enum.auto()
    CHOP_MOVE_TRASH = enum.auto()
    CHOP_MOVE_5 = enum.auto()
    CHOP_MOVE_TEMPO = enum.auto()
    STALL = enum.auto()
    STALL_5 = enum.auto()
    STALL_TEMPO = enum.auto()
    STALL_BURN = enum.auto()
    POSITIONAL = enum.auto()
    TRASH_PUSH = enum.auto()
    NONE = enum.auto()


class Level(enum.IntEnum):
    """Convention level. Higher levels enable more conventions."""
    BASIC = 1
    FIX = 3
    BASIC_CM = 4
    INTERMEDIATE_FINESSES = 5
    TEMPO_CLUES = 6
    BLUFFS = 11
    TRASH_PUSH = 14


class WaitingStatus(enum.Enum):
    """Lifecycle state of a waiting connection."""
    PENDING = enum.auto()
    ADVANCED = enum.auto()
    INVALIDATED = enum.auto()
    REWIND_TRIGGERED = enum.auto()


# =============================================================================
# Constants
# =============================================================================

MAX_CLUE_TOKENS = 8
MAX_STRIKES = 3

# Cards dealt to each player, keyed by player count.
HAND_SIZES: dict[int, int] = {2: 5, 3: 5, 4: 4, 5: 4, 6: 3}

DEFAULT_PLAYER_NAMES = ("Alice", "Bob", "Cathy", "Donald", "Emily", "Frank")


# =============================================================================
# Identities
# =============================================================================

@dataclasses.dataclass(frozen=True, order=True)
class Identity:
    """A card identity: a suit and a rank.

    Attributes:
        suit_index: Index into the variant's suit list.
        rank: Card rank (1-5).
    """
    suit_index: int
    rank: int

    def short(self, variant: Variant) -> str:
        """Short notation such as ``"r2"``."""
        return f"{variant.abbreviations[self.suit_index]}{self.rank}"


def parse_identity(token: str, variant: Variant) -> Identity | None:
    """Parse short card notation.

    Args:
        token: Two characters: a suit abbreviation and a rank, e.g.
            ``"r2"``. ``"xx"`` denotes an unknown card.
        variant: The variant whose suit abbreviations apply.

    Returns:
        The parsed Identity, or None for an unknown card.

    Raises:
        ValueError: If the token is malformed or names a suit that is not
            in the variant.
    """
    token = token.strip().lower()
    if token == "xx":
        return None
    if len(token) != 2 or not token[1].isdigit():
        raise ValueError(f"Invalid card notation: {token!r}")
    abbreviations = variant.abbreviations
    if token[0] not in abbreviations:
        raise ValueError(
            f"Unknown suit {token[0]!r} in {token!r} for {variant.name}. "
            f"Valid suits: {', '.join(abbreviations)}"
        )
    rank = int(token[1])
    if not 1 <= rank <= MAX_RANK:
        raise ValueError(f"Rank must be 1-{MAX_RANK}, got {token!r}")
    return Identity(abbreviations.index(token[0]), rank)


@dataclasses.dataclass(frozen=True)
class IdentitySet:
    """Immutable set of card identities, stored as a bitmask.

    Bit ``suit_index * 5 + rank - 1`` is set when the identity is in the
    set, so iteration is suit-major then rank. Every operation returns a
    new set; instances can be shared freely between belief snapshots.

    Binary operations accept another IdentitySet, a single Identity, or
    any iterable of identities.

    Attributes:
        num_suits: Number of suits in the variant.
        value: The bitmask.
    """
    num_suits: int
    value: int = 0

    @staticmethod
    def _bit(identity: Identity) -> int:
        return 1 << (identity.suit_index * MAX_RANK + identity.rank - 1)

    @classmethod
    def from_identities(cls, num_suits: int, identities) -> IdentitySet:
        value = 0
        for identity in identities:
            value |= cls._bit(identity)
        return cls(num_suits, value)

    @classmethod
    def empty(cls, num_suits: int) -> IdentitySet:
        return cls(num_suits, 0)

    @classmethod
    def full(cls, num_suits: int) -> IdentitySet:
        return cls(num_suits, (1 << (num_suits * MAX_RANK)) - 1)

    def _mask(self, other) -> int:
        if isinstance(other, IdentitySet):
            return other.value
        if isinstance(other, Identity):
            return self._bit(other)
        return IdentitySet.from_identities(self.num_suits, other).value

    def union(self, other) -> IdentitySet:
        return IdentitySet(self.num_suits, self.value | self._mask(other))

    def intersect(self, other) -> IdentitySet:
        return IdentitySet(self.num_suits, self.value & self._mask(other))

    def subtract(self, other) -> IdentitySet:
        return IdentitySet(self.num_suits, self.value & ~self._mask(other))

    def has(self, identity: Identity) -> bool:
        return bool(self.value & self._bit(identity))

    def filter(self, predicate) -> IdentitySet:
        return IdentitySet.from_identities(
            self.num_suits, [i for i in self if predicate(i)]
        )

    def issubset(self, other) -> bool:
        return self.value & ~self._mask(other) == 0

    @property
    def array(self) -> list[Identity]:
        return list(self)

    def describe(self, variant: Variant) -> str:
        return ",".join(i.short(variant) for i in self) or "-"

    def __contains__(self, item: object) -> bool:
        return isinstance(item, Identity) and self.has(item)

    def __iter__(self):
        value = self.value
        index = 0
        while value:
            if value & 1:
                yield Identity(index // MAX_RANK, index % MAX_RANK + 1)
            value >>= 1
            index += 1

    def __len__(self) -> int:
        return bin(self.value).count("1")


# =============================================================================
# Physical Cards
# =============================================================================

@dataclasses.dataclass
class Card:
    """A physical card, identified by its stable order.

    The identity is None for cards the observing agent cannot see (its
    own hand), unless a rewind has since identified them.

    Attributes:
        order: Stable card order assigned at deal/draw.
        suit_index: Suit of the card, or None if unknown.
        rank: Rank of the card, or None if unknown.
        clued: Whether any clue has touched the card.
        newly_clued: Whether the current clue is the first to touch it.
        clues: Every clue that has touched the card, oldest first.
        drawn_index: Index of the draw action in the game's history
            (-1 for cards dealt at setup).
    """
    order: int
    suit_index: int | None = None
    rank: int | None = None
    clued: bool = False
    newly_clued: bool = False
    clues: list[Clue] = dataclasses.field(default_factory=list)
    drawn_index: int = -1

    def identity(self) -> Identity | None:
        if self.suit_index is None or self.rank is None:
            return None
        return Identity(self.suit_index, self.rank)

    def matches(self, identity: Identity) -> bool:
        """Whether the card is known to be the given identity."""
        return self.identity() == identity


# =============================================================================
# Action Records
# =============================================================================

@dataclasses.dataclass(frozen=True)
class ClueAction:
    """Record of a clue.

    Attributes:
        giver: Index of the player giving the clue.
        target: Index of the player receiving the clue.
        touched: Orders of the touched cards.
        clue: The colour or rank clue given.
        mistake: The clue is known upstream to be a mistake.
        hypothetical: The clue is being evaluated, not actually given.
        no_recurse: Skip nested evaluation of the clue's consequences.
    """
    giver: int
    target: int
    touched: tuple[int, ...]
    clue: Clue
    mistake: bool = False
    hypothetical: bool = False
    no_recurse: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "touched", tuple(self.touched))


@dataclasses.dataclass(frozen=True)
class PlayAction:
    """Record of a play (successful or not, see ``DiscardAction.failed``).

    Attributes:
        player_index: Index of the player who played.
        order: Order of the played card.
        suit_index: Revealed suit.
        rank: Revealed rank.
    """
    player_index: int
    order: int
    suit_index: int
    rank: int


@dataclasses.dataclass(frozen=True)
class DiscardAction:
    """Record of a discard.

    Attributes:
        player_index: Index of the player who discarded.
        order: Order of the discarded card.
        suit_index: Revealed suit.
        rank: Revealed rank.
        failed: True when the discard is the result of a misplay.
    """
    player_index: int
    order: int
    suit_index: int
    rank: int
    failed: bool = False


@dataclasses.dataclass(frozen=True)
class DrawAction:
    """Record of a draw. The identity is None for our own draws.

    Attributes:
        player_index: Index of the player who drew.
        order: Order of the new card.
        suit_index: Suit, if visible.
        rank: Rank, if visible.
    """
    player_index: int
    order: int
    suit_index: int | None = None
    rank: int | None = None


ActionRecord = ClueAction | PlayAction | DiscardAction | DrawAction


@dataclasses.dataclass(frozen=True)
class IdentifyCorrection:
    """Rewind correction: the card is asserted to have this identity.

    Attributes:
        order: Order of the identified card.
        player_index: Holder of the card.
        identity: The asserted identity.
    """
    order: int
    player_index: int
    identity: Identity


@dataclasses.dataclass(frozen=True)
class IgnoreCorrection:
    """Rewind correction: do not use this card to connect to a focus.

    Attributes:
        order: Order of the card to skip during connection search.
        inference: Only skip it when connecting to this focus identity.
            None skips it for every identity.
    """
    order: int
    inference: Identity | None = None


Correction = IdentifyCorrection | IgnoreCorrection


# =============================================================================
# TurnHistory
# =============================================================================

@dataclasses.dataclass
class TurnHistory:
    """Record of all actions taken during the game.

    The index of an action in ``actions`` is its action index, used by
    waiting connections and rewinds to refer back to it.

    Attributes:
        actions: List of all action records in chronological order.
    """
    actions: list[ActionRecord] = dataclasses.field(default_factory=list)

    def record(self, action: ActionRecord) -> int:
        """Record a new action.

        Args:
            action: The action record to add to history.

        Returns:
            The action index of the recorded action.
        """
        self.actions.append(action)
        return len(self.actions) - 1

    def clues_to(self, player_index: int) -> list[ClueAction]:
        return [
            a for a in self.actions
            if isinstance(a, ClueAction) and a.target == player_index
        ]

    def __len__(self) -> int:
        return len(self.actions)

    def __str__(self) -> str:
        if not self.actions:
            return "No actions taken yet."
        lines = []
        for i, action in enumerate(self.actions):
            lines.append(f"  {i:>3}: {action}")
        return "\n".join(lines)


# =============================================================================
# GameState
# =============================================================================

@dataclasses.dataclass
class GameState:
    """The public game ledger, as seen by the observing agent.

    Hands are stored newest-first: index 0 is slot 1, the most recently
    drawn card. The chop sits at the end of the list.

    Attributes:
        variant: The variant being played.
        player_names: Names of all players.
        deck: Physical cards indexed by order.
        hands: Card orders held by each player, newest first.
        play_stacks: Highest played rank per suit.
        discard_counts: Number of discarded copies per identity.
        our_player_index: Index of the observing agent.
        clue_tokens: Available clue tokens.
        strikes: Strikes so far.
        turn_count: Number of turns taken.
        current_player_index: Player whose turn it is.
        cards_left: Cards remaining in the draw pile.
        early_game: True until the first discard.
    """
    variant: Variant
    player_names: list[str]
    deck: list[Card]
    hands: list[list[int]]
    play_stacks: list[int]
    discard_counts: dict[Identity, int] = dataclasses.field(default_factory=dict)
    our_player_index: int = 0
    clue_tokens: int = MAX_CLUE_TOKENS
    strikes: int = 0
    turn_count: int = 0
    current_player_index: int = 0
    cards_left: int = 0
    early_game: bool = True

    @property
    def num_players(self) -> int:
        return len(self.hands)

    @property
    def num_suits(self) -> int:
        return self.variant.num_suits

    @property
    def our_hand(self) -> list[int]:
        return self.hands[self.our_player_index]

    @property
    def score(self) -> int:
        return sum(self.play_stacks)

    @property
    def max_ranks(self) -> list[int]:
        """Highest rank still reachable in each suit."""
        result = []
        for suit_index in range(self.num_suits):
            max_rank = MAX_RANK
            for rank in range(1, MAX_RANK + 1):
                identity = Identity(suit_index, rank)
                if self.discard_counts.get(identity, 0) >= self.card_count(identity):
                    max_rank = rank - 1
                    break
            result.append(max_rank)
        return result

    @property
    def pace(self) -> int:
        return (
            self.score + self.cards_left + self.num_players
            - self.variant.max_score
        )

    def in_endgame(self) -> bool:
        return self.pace < self.num_players

    def next_player_index(self, player_index: int) -> int:
        return (player_index + 1) % self.num_players

    def holder_of(self, order: int) -> int | None:
        for player_index, hand in enumerate(self.hands):
            if order in hand:
                return player_index
        return None

    # -- Variant predicates --------------------------------------------------

    def all_identities(self) -> IdentitySet:
        return IdentitySet.full(self.num_suits)

    def card_count(self, identity: Identity) -> int:
        return self.variant.card_count(identity.suit_index, identity.rank)

    def card_touched(self, identity: Identity, clue: Clue) -> bool:
        return self.variant.card_touched(identity.suit_index, identity.rank, clue)

    def touched_identities(self, clue: Clue) -> IdentitySet:
        """Every identity a clue would touch."""
        return self.all_identities().filter(lambda i: self.card_touched(i, clue))

    def base_count(self, identity: Identity) -> int:
        """Copies of an identity that are publicly played or discarded."""
        played = 1 if identity.rank <= self.play_stacks[identity.suit_index] else 0
        return self.discard_counts.get(identity, 0) + played

    def is_basic_trash(self, identity: Identity) -> bool:
        return (
            identity.rank <= self.play_stacks[identity.suit_index]
            or identity.rank > self.max_ranks[identity.suit_index]
        )

    def is_critical(self, identity: Identity) -> bool:
        if self.is_basic_trash(identity):
            return False
        discarded = self.discard_counts.get(identity, 0)
        return discarded == self.card_count(identity) - 1

    def is_playable(self, identity: Identity) -> bool:
        return identity.rank == self.play_stacks[identity.suit_index] + 1

    def playable_away(self, identity: Identity) -> int:
        return identity.rank - (self.play_stacks[identity.suit_index] + 1)

    # -- Display -------------------------------------------------------------

    def card_str(self, order: int) -> str:
        card = self.deck[order]
        identity = card.identity()
        label = identity.short(self.variant) if identity else "xx"
        if card.clued:
            return f"{_Colors.YELLOW}{_Colors.BOLD}{label}{_Colors.RESET}"
        return label

    def hand_str(self, player_index: int) -> str:
        cards = " ".join(self.card_str(o) for o in self.hands[player_index])
        return f"{self.player_names[player_index]:<8} {cards}"

    def __str__(self) -> str:
        stacks = " ".join(
            f"{abbr}{rank}"
            for abbr, rank in zip(self.variant.abbreviations, self.play_stacks)
        )
        lines = [
            f"{_Colors.BOLD}Turn {self.turn_count}{_Colors.RESET}"
            f"  clues {self.clue_tokens}/{MAX_CLUE_TOKENS}"
            f"  strikes {self.strikes}/{MAX_STRIKES}"
            f"  deck {self.cards_left}",
            f"Stacks: {stacks}",
        ]
        lines.extend(self.hand_str(p) for p in range(self.num_players))
        return "\n".join(lines)


# =============================================================================
# Belief Records
# =============================================================================

@dataclasses.dataclass(frozen=True)
class Thoughts:
    """One observer's belief about one physical card.

    New versions are produced with ``Observer.update_thoughts``; a record
    is never mutated after creation.

    Attributes:
        order: Order of the card.
        possible: Identities consistent with the physical information.
        inferred: Identities believed through conventions. Always a
            subset of ``possible``.
        info_lock: Inference snapshot that elimination may not erase.
        clued: The card has been touched by a clue.
        newly_clued: The current clue is the first to touch the card.
        finessed: The card is expected to be blind-played.
        chop_moved: The card has been chop moved.
        trash: The card is believed to be trash.
        focused: The card was the focus of a clue.
        reset: The card's inference was reset to its possibilities.
        hidden: The card is a hidden link of a layered finesse.
        rewinded: A rewind has identified this card.
        certain_finessed: The card is certainly finessed.
        trash_pushed: The card was pushed to play by a trash push.
        chop_when_first_clued: The card was on chop when first clued.
        was_cm: The card was chop moved before being clued.
        finesse_index: Action index of the clue that finessed the card.
        reasoning: Action indices of the clues that changed the card's
            inference.
    """
    order: int
    possible: IdentitySet
    inferred: IdentitySet
    info_lock: IdentitySet | None = None
    clued: bool = False
    newly_clued: bool = False
    finessed: bool = False
    chop_moved: bool = False
    trash: bool = False
    focused: bool = False
    reset: bool = False
    hidden: bool = False
    rewinded: bool = False
    certain_finessed: bool = False
    trash_pushed: bool = False
    chop_when_first_clued: bool = False
    was_cm: bool = False
    finesse_index: int = -1
    reasoning: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not self.inferred.issubset(self.possible):
            raise ValueError(
                f"Card {self.order}: inferred identities must be a subset "
                f"of possible identities"
            )

    @property
    def touched(self) -> bool:
        return self.clued or self.finessed

    @property
    def saved(self) -> bool:
        return self.touched or self.chop_moved

    @property
    def possibilities(self) -> IdentitySet:
        """Inferred identities, or possible ones when nothing is inferred."""
        return self.inferred if self.inferred else self.possible

    def identity(self, infer: bool = False) -> Identity | None:
        if len(self.possible) == 1:
            return next(iter(self.possible))
        if infer and len(self.inferred) == 1:
            return next(iter(self.inferred))
        return None


# =============================================================================
# Connections and Hypotheses
# =============================================================================

@dataclasses.dataclass(frozen=True)
class Connection:
    """One link in a chain of plays that justifies a clue.

    Attributes:
        type: How the link is resolved.
        reacting: Player expected to play the card.
        order: Order of the connecting card.
        identities: Identities the card is expected to have.
        hidden: The card is a layered-finesse card whose holder cannot
            tell it apart from the real connecting card.
        bluff: The blind play is a bluff, not a real connection.
        self_link: The card is in the observer's own (unseen) hand.
        asymmetric: The link is only valid from one perspective.
    """
    type: ConnectionType
    reacting: int
    order: int
    identities: IdentitySet
    hidden: bool = False
    bluff: bool = False
    self_link: bool = False
    asymmetric: bool = False

    def describe(self, variant: Variant) -> str:
        flags = "".join(
            f" ({name})" for name, on in (
                ("hidden", self.hidden), ("bluff", self.bluff),
                ("self", self.self_link),
            ) if on
        )
        return (
            f"{self.order} {self.identities.describe(variant)} "
            f"{self.type.name.lower()}{flags}"
        )


@dataclasses.dataclass(frozen=True)
class ConnectionResult:
    """Result of a connection search: a chain, or a rejection reason.

    Attributes:
        connections: The links found, in play order.
        rejection: Why no consistent chain exists, or None on success.
    """
    connections: tuple[Connection, ...] = ()
    rejection: str | None = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def reject(cls, reason: str) -> ConnectionResult:
        return cls((), reason)


@dataclasses.dataclass(frozen=True)
class FocusPossibility:
    """A candidate meaning of a clue: the focus identity and its chain.

    Attributes:
        identity: Candidate identity of the focused card.
        connections: Chain of plays that must happen first.
        save: The candidate is a save rather than a play.
        illegal: The candidate is ruled out by a side constraint.
        interp: Interpretation tag the candidate would produce.
    """
    identity: Identity
    connections: tuple[Connection, ...] = ()
    save: bool = False
    illegal: bool = False
    interp: Interp = Interp.PLAY


@dataclasses.dataclass
class WaitingConnection:
    """An unresolved hypothesis tracked across turns.

    Attributes:
        connections: The chain of links still to be played.
        conn_index: Index of the next unresolved link.
        focus: Order of the focused card the chain resolves.
        inference: Identity the focus has if the chain is real.
        giver: Player who gave the clue.
        target: Player who received the clue.
        turn: Turn on which the chain was created.
        action_index: Index of the clue action that created the chain.
        symmetric: Only entertained for another player's perspective;
            the observer knows the focus is something else.
        status: Lifecycle state.
    """
    connections: list[Connection]
    conn_index: int
    focus: int
    inference: Identity
    giver: int
    target: int
    turn: int
    action_index: int
    symmetric: bool = False
    status: WaitingStatus = WaitingStatus.PENDING

    @property
    def remaining(self) -> list[Connection]:
        return self.connections[self.conn_index:]

    def copy(self) -> WaitingConnection:
        return dataclasses.replace(self, connections=list(self.connections))

    def describe(self, variant: Variant) -> str:
        links = " -> ".join(c.describe(variant) for c in self.connections)
        return f"[{links}] => {self.inference.short(variant)} ({self.focus})"


# =============================================================================
# Observer
# =============================================================================

@dataclasses.dataclass
class Observer:
    """A belief store: one observer's thoughts about every card.

    ``player_index`` is -1 for the common-knowledge store. A store with a
    real player index additionally sees every card identity known to the
    game ledger, so it layers private eliminations on top of common
    knowledge.

    Attributes:
        player_index: Observing player, or -1 for common knowledge.
        thoughts: Belief record per card, indexed by order.
        waiting_connections: Unresolved hypotheses, in creation order.
        hypo_stacks: Play stacks after every expected play resolves.
        unknown_plays: Orders expected to play whose identity is unknown.
    """
    player_index: int
    thoughts: list[Thoughts] = dataclasses.field(default_factory=list)
    waiting_connections: list[WaitingConnection] = dataclasses.field(default_factory=list)
    hypo_stacks: list[int] = dataclasses.field(default_factory=list)
    unknown_plays: set[int] = dataclasses.field(default_factory=set)

    def clone(self) -> Observer:
        return Observer(
            player_index=self.player_index,
            thoughts=list(self.thoughts),
            waiting_connections=[wc.copy() for wc in self.waiting_connections],
            hypo_stacks=list(self.hypo_stacks),
            unknown_plays=set(self.unknown_plays),
        )

    def add_card(self, state: GameState, order: int) -> None:
        """Create the belief record for a newly dealt or drawn card."""
        full = state.all_identities()
        record = Thoughts(order=order, possible=full, inferred=full)
        while len(self.thoughts) <= order:
            self.thoughts.append(record)
        self.thoughts[order] = record

    def update_thoughts(self, order: int, **changes) -> Thoughts:
        """Replace a card's belief record with an updated version.

        ``inferred`` and ``info_lock`` are intersected with the (new)
        ``possible`` set so that the subset invariant always holds.

        Args:
            order: Order of the card.
            **changes: Thoughts fields to change.

        Returns:
            The new record.
        """
        current = self.thoughts[order]
        possible = changes.get("possible", current.possible)
        changes["inferred"] = changes.get("inferred", current.inferred).intersect(possible)
        info_lock = changes.get("info_lock", current.info_lock)
        if info_lock is not None:
            changes["info_lock"] = info_lock.intersect(possible)
        record = dataclasses.replace(current, **changes)
        self.thoughts[order] = record
        return record

    def add_reasoning(self, order: int, action_index: int) -> None:
        reasoning = self.thoughts[order].reasoning
        if action_index not in reasoning:
            self.update_thoughts(order, reasoning=reasoning + (action_index,))

    # -- Queries -------------------------------------------------------------

    def visible_identity(self, state: GameState, order: int) -> Identity | None:
        """The card's identity as known to the ledger, if this observer sees it."""
        if self.player_index < 0:
            return None
        return state.deck[order].identity()

    def certain_identity(self, state: GameState, order: int) -> Identity | None:
        return self.visible_identity(state, order) or self.thoughts[order].identity()

    def chop(self, hand: list[int]) -> int | None:
        """The oldest card that is not clued, finessed or chop moved."""
        for order in reversed(hand):
            if not self.thoughts[order].saved:
                return order
        return None

    def thinks_playables(self, state: GameState, player_index: int) -> list[int]:
        playables = []
        for order in state.hands[player_index]:
            record = self.thoughts[order]
            if not record.touched or record.trash or not record.inferred:
                continue
            if all(state.is_playable(i) for i in record.inferred):
                playables.append(order)
        return playables

    def thinks_trash(self, state: GameState, player_index: int) -> list[int]:
        trash = []
        for order in state.hands[player_index]:
            record = self.thoughts[order]
            if record.trash or all(state.is_basic_trash(i) for i in record.possible):
                trash.append(order)
            elif record.clued and record.inferred and all(
                state.is_basic_trash(i) for i in record.inferred
            ):
                trash.append(order)
        return trash

    def thinks_loaded(self, state: GameState, player_index: int) -> bool:
        return bool(
            self.thinks_playables(state, player_index)
            or self.thinks_trash(state, player_index)
        )

    def thinks_locked(self, state: GameState, player_index: int) -> bool:
        return (
            self.chop(state.hands[player_index]) is None
            and not self.thinks_loaded(state, player_index)
        )

    def dependent_connections(self, order: int) -> list[WaitingConnection]:
        """Waiting connections that still need the given card to play."""
        return [
            wc for wc in self.waiting_connections
            if any(conn.order == order for conn in wc.remaining)
        ]

    def locked_discard(self, state: GameState, hand: list[int]) -> int:
        """Pick the card to sacrifice from a locked hand.

        Cards least likely to be critical are preferred. Among those, the
        card farthest from being playable is discarded. Equal distances go
        to the higher rank, and remaining ties go to the leftmost card.

        Args:
            state: The game ledger.
            hand: Orders of the hand, newest first.

        Returns:
            Order of the card to discard.
        """
        def crit_percent(order: int) -> float:
            ids = self.thoughts[order].possibilities
            return sum(state.is_critical(i) for i in ids) / max(len(ids), 1)

        def distance(order: int) -> tuple[float, float]:
            ids = self.thoughts[order].possibilities
            count = max(len(ids), 1)
            return (sum(state.playable_away(i) for i in ids) / count,
                    sum(i.rank for i in ids) / count)

        least = min(crit_percent(o) for o in hand)
        candidates = [o for o in hand if crit_percent(o) == least]
        return max(candidates, key=distance)

    # -- Elimination ---------------------------------------------------------

    def card_elim(self, state: GameState) -> None:
        """Remove identities whose every copy is accounted for elsewhere."""
        orders = [o for hand in state.hands for o in hand]
        changed = True
        while changed:
            changed = False
            certain = {o: self.certain_identity(state, o) for o in orders}
            for identity in state.all_identities():
                holders = {o for o, i in certain.items() if i == identity}
                if state.base_count(identity) + len(holders) < state.card_count(identity):
                    continue
                for order in orders:
                    record = self.thoughts[order]
                    if order in holders or not record.possible.has(identity):
                        continue
                    if len(record.possible) == 1:
                        continue
                    self.update_thoughts(order, possible=record.possible.subtract(identity))
                    changed = True
            for order in orders:
                visible = self.visible_identity(state, order)
                record = self.thoughts[order]
                if visible is not None and len(record.possible) > 1 and record.possible.has(visible):
                    self.update_thoughts(order, possible=IdentitySet.from_identities(
                        state.num_suits, [visible]))
                    changed = True

    def good_touch_elim(self, state: GameState) -> None:
        """Touched cards are not trash and not duplicates of known touched cards.

        Elimination never empties a card's inference: when it would, the
        card's ``info_lock`` (if any) is restored instead.
        """
        orders = [o for hand in state.hands for o in hand]
        for _ in range(len(orders) + 1):
            changed = False
            known: dict[int, Identity] = {}
            for order in orders:
                record = self.thoughts[order]
                if not record.touched or record.trash:
                    continue
                # A finesse is only a hypothesis until the card is clued or seen.
                identity = self.certain_identity(state, order)
                if identity is None and record.clued:
                    identity = record.identity(infer=True)
                if identity is not None:
                    known[order] = identity

            for order in orders:
                record = self.thoughts[order]
                if not record.touched or record.trash or order in known:
                    continue
                duplicates = [i for o, i in known.items() if o != order]
                new_inferred = record.inferred.subtract(duplicates)
                new_inferred = new_inferred.filter(lambda i: not state.is_basic_trash(i))
                if not new_inferred:
                    if record.info_lock is None:
                        continue
                    new_inferred = record.info_lock.intersect(record.possible)
                if new_inferred != record.inferred:
                    self.update_thoughts(order, inferred=new_inferred)
                    changed = True
            if not changed:
                break

    def update_hypo_stacks(self, state: GameState) -> None:
        """Advance the stacks through every card expected to play."""
        stacks = list(state.play_stacks)
        counted: set[int] = set()
        self.unknown_plays = set()
        orders = [o for hand in state.hands for o in hand]
        progress = True
        while progress:
            progress = False
            for order in orders:
                record = self.thoughts[order]
                if order in counted or not record.touched or record.trash:
                    continue
                identity = self.certain_identity(state, order) or record.identity(infer=True)
                if identity is not None:
                    if identity.rank == stacks[identity.suit_index] + 1:
                        stacks[identity.suit_index] += 1
                        counted.add(order)
                        progress = True
                elif record.inferred and all(
                    i.rank == stacks[i.suit_index] + 1 for i in record.inferred
                ):
                    counted.add(order)
                    self.unknown_plays.add(order)
        self.hypo_stacks = stacks
