"""Hanabi reasoner: the game object that drives clue interpretation.

``Game`` bundles the ledger (``GameState``), the common-knowledge belief
store, our own private belief store and the history of actions. Actions
are fed in one at a time with ``handle_action``; clues are interpreted,
plays and discards resolve waiting connections, and beliefs are
re-derived after every action. Because everything is rebuilt from the
starting setup plus the action history, the game can rewind: replay the
whole history with a correction injected at an earlier action, and hand
back the rebuilt game.
"""

from __future__ import annotations

import dataclasses
import logging

import tqdm

import waiting_connections
from clue_interpretation import interpret_clue
from hanabi_game import (
    ActionRecord,
    Card,
    ClueAction,
    Correction,
    DEFAULT_PLAYER_NAMES,
    DiscardAction,
    DrawAction,
    GameState,
    HAND_SIZES,
    Identity,
    IdentifyCorrection,
    IdentitySet,
    IgnoreCorrection,
    Interp,
    Level,
    MAX_CLUE_TOKENS,
    MAX_STRIKES,
    Observer,
    PlayAction,
    TurnHistory,
    _Colors,
    parse_identity,
)
from variants import MAX_RANK, Variant, get_variant

logger = logging.getLogger(__name__)

# Rewinds triggered while replaying a rewind may nest this deep.
MAX_REWIND_DEPTH = 4


# =============================================================================
# Setup
# =============================================================================

@dataclasses.dataclass(frozen=True)
class GameSetup:
    """Everything needed to rebuild a game before its first action.

    Attributes:
        variant: The variant being played.
        hands: Card notation per player, newest card first.
        our_player_index: Index of the observing agent.
        play_stacks: Starting play stacks.
        discarded: Card notation of the starting discard pile.
        clue_tokens: Starting clue tokens.
        strikes: Starting strikes.
        starting: Index of the player who acts first.
        level: Convention level.
        player_names: Names of all players.
    """
    variant: Variant
    hands: tuple[tuple[str, ...], ...]
    our_player_index: int
    play_stacks: tuple[int, ...]
    discarded: tuple[str, ...]
    clue_tokens: int
    strikes: int
    starting: int
    level: Level
    player_names: tuple[str, ...]


# =============================================================================
# Game
# =============================================================================

@dataclasses.dataclass
class Game:
    """A game of Hanabi as seen by one player.

    Attributes:
        state: The game ledger.
        common: Common-knowledge belief store.
        me: Our private belief store.
        setup: The starting position, used to rebuild the game.
        level: Convention level.
        history: Every action handled so far.
        interpretations: Interpretation tag per clue action index.
        corrections: Rewind corrections to inject before an action index.
        next_ignore: Ignore corrections for the clue being interpreted.
        visited_rewinds: Rewinds already performed, to keep them
            idempotent.
        rewind_depth: Nesting depth of the rewind being replayed.
        current_action_index: Index of the action being handled.
        stalled_5: A 5 stall happened in the early game.
        important_actions: Indices of clues that only their giver could
            have given in time (urgent saves and important finesses).
    """
    state: GameState
    common: Observer
    me: Observer
    setup: GameSetup
    level: Level = Level.BASIC
    history: TurnHistory = dataclasses.field(default_factory=TurnHistory)
    interpretations: dict[int, Interp] = dataclasses.field(default_factory=dict)
    corrections: dict[int, tuple[Correction, ...]] = dataclasses.field(default_factory=dict)
    next_ignore: list[IgnoreCorrection] = dataclasses.field(default_factory=list)
    visited_rewinds: frozenset = frozenset()
    rewind_depth: int = 0
    current_action_index: int = -1
    stalled_5: bool = False
    important_actions: set[int] = dataclasses.field(default_factory=set)

    @property
    def actions(self) -> list[ActionRecord]:
        return self.history.actions

    @property
    def last_move(self) -> Interp | None:
        """Interpretation of the most recent interpreted clue."""
        if not self.interpretations:
            return None
        return self.interpretations[max(self.interpretations)]

    # -- Construction --------------------------------------------------------

    @classmethod
    def from_partial_state(
        cls,
        hands: list[list[str]],
        variant: str | Variant = "No Variant",
        our_player_index: int = 0,
        play_stacks: list[int] | None = None,
        discarded: list[str] | None = None,
        clue_tokens: int = MAX_CLUE_TOKENS,
        strikes: int = 0,
        starting: int = 0,
        level: Level = Level.BASIC,
        player_names: list[str] | None = None,
    ) -> Game:
        """Create a game from a mid-game position.

        Use this to set up a position with known hands and stacks and
        then feed it actions, without replaying a whole game.

        Args:
            hands: Card notation per player, newest card first, e.g.
                ``["xx", "xx", "xx", "xx", "xx"]`` for our own hand and
                ``["r1", "g4", "b3", "y4", "p2"]`` for a teammate.
            variant: Variant name or Variant. Defaults to "No Variant".
            our_player_index: Index of the observing agent.
            play_stacks: Highest played rank per suit. Defaults to all 0.
            discarded: Card notation of cards in the discard pile.
            clue_tokens: Available clue tokens (0-8).
            strikes: Strikes so far.
            starting: Index of the player who acts first.
            level: Convention level.
            player_names: Names of all players. Defaults to Alice, Bob, ...

        Returns:
            A Game with beliefs derived from the position.

        Raises:
            ValueError: If the position is inconsistent (player count,
                hand sizes, stacks, card notation, tokens or deck size).
        """
        if isinstance(variant, str):
            variant = get_variant(variant)
        num_players = len(hands)
        if num_players not in HAND_SIZES:
            raise ValueError(
                f"Player count must be {min(HAND_SIZES)}-{max(HAND_SIZES)}, "
                f"got {num_players}"
            )
        hand_size = HAND_SIZES[num_players]
        for player_index, hand in enumerate(hands):
            if len(hand) != hand_size:
                raise ValueError(
                    f"Player {player_index} has {len(hand)} cards but "
                    f"{num_players}-player games use {hand_size}"
                )
        if not 0 <= our_player_index < num_players:
            raise ValueError(f"Our player index must be 0-{num_players - 1}, "
                             f"got {our_player_index}")
        if not 0 <= starting < num_players:
            raise ValueError(f"Starting player must be 0-{num_players - 1}, got {starting}")

        stacks = list(play_stacks) if play_stacks is not None else [0] * variant.num_suits
        if len(stacks) != variant.num_suits or any(not 0 <= s <= MAX_RANK for s in stacks):
            raise ValueError(
                f"Play stacks must be {variant.num_suits} values in 0-{MAX_RANK}, got {stacks}")
        if not 0 <= clue_tokens <= MAX_CLUE_TOKENS:
            raise ValueError(f"Clue tokens must be 0-{MAX_CLUE_TOKENS}, got {clue_tokens}")
        if not 0 <= strikes < MAX_STRIKES:
            raise ValueError(f"Strikes must be 0-{MAX_STRIKES - 1}, got {strikes}")

        names = list(player_names) if player_names else list(DEFAULT_PLAYER_NAMES[:num_players])
        if len(names) != num_players:
            raise ValueError(f"Expected {num_players} player names, got {len(names)}")

        setup = GameSetup(
            variant=variant,
            hands=tuple(tuple(hand) for hand in hands),
            our_player_index=our_player_index,
            play_stacks=tuple(stacks),
            discarded=tuple(discarded or ()),
            clue_tokens=clue_tokens,
            strikes=strikes,
            starting=starting,
            level=Level(level),
            player_names=tuple(names),
        )
        return cls._from_setup(setup)

    @classmethod
    def _from_setup(
        cls,
        setup: GameSetup,
        corrections: dict[int, tuple[Correction, ...]] | None = None,
        visited: frozenset = frozenset(),
        depth: int = 0,
    ) -> Game:
        variant = setup.variant
        num_players = len(setup.hands)
        hand_size = HAND_SIZES[num_players]

        deck = [Card(order) for order in range(num_players * hand_size)]
        hands: list[list[int]] = []
        for player_index, tokens in enumerate(setup.hands):
            orders = []
            for slot, token in enumerate(tokens):
                order = player_index * hand_size + (hand_size - 1 - slot)
                identity = parse_identity(token, variant)
                if identity is not None:
                    deck[order].suit_index = identity.suit_index
                    deck[order].rank = identity.rank
                orders.append(order)
            hands.append(orders)

        discard_counts: dict[Identity, int] = {}
        for token in setup.discarded:
            identity = parse_identity(token, variant)
            if identity is None:
                raise ValueError("Discarded cards must be known, got 'xx'")
            discard_counts[identity] = discard_counts.get(identity, 0) + 1

        cards_left = (
            variant.deck_size - len(deck) - sum(setup.play_stacks)
            - len(setup.discarded)
        )
        if cards_left < 0:
            raise ValueError(f"Position uses more cards than the deck holds ({variant.deck_size})")

        state = GameState(
            variant=variant,
            player_names=list(setup.player_names),
            deck=deck,
            hands=hands,
            play_stacks=list(setup.play_stacks),
            discard_counts=discard_counts,
            our_player_index=setup.our_player_index,
            clue_tokens=setup.clue_tokens,
            strikes=setup.strikes,
            current_player_index=setup.starting,
            cards_left=cards_left,
            early_game=not setup.discarded,
        )
        common = Observer(player_index=-1)
        for order in range(len(deck)):
            common.add_card(state, order)

        game = cls(
            state=state,
            common=common,
            me=Observer(player_index=setup.our_player_index),
            setup=setup,
            level=setup.level,
            corrections=dict(corrections or {}),
            visited_rewinds=visited,
            rewind_depth=depth,
        )
        game._apply_corrections(0)
        game.update_beliefs()
        return game

    # -- Beliefs -------------------------------------------------------------

    def team_elim(self) -> None:
        """Re-derive our private store from common knowledge."""
        self.me.thoughts = list(self.common.thoughts)
        self.me.waiting_connections = [wc.copy() for wc in self.common.waiting_connections]
        self.me.card_elim(self.state)
        self.me.good_touch_elim(self.state)
        self.me.update_hypo_stacks(self.state)

    def update_beliefs(self) -> None:
        self.common.card_elim(self.state)
        self.common.good_touch_elim(self.state)
        self.common.update_hypo_stacks(self.state)
        self.team_elim()

    def record_interpretation(self, interp: Interp) -> None:
        self.interpretations[self.current_action_index] = interp
        logger.info("Action %d interpreted as %s", self.current_action_index, interp.name)

    def mark_important(self, reason: str) -> None:
        self.important_actions.add(self.current_action_index)
        logger.info("Action %d is important: %s", self.current_action_index, reason)

    # -- Actions -------------------------------------------------------------

    def handle_action(self, action: ActionRecord) -> Game:
        """Record an action and update every belief it affects.

        Args:
            action: The action record.

        Returns:
            This game, or the rebuilt game if handling the action
            triggered a rewind. Callers must continue with the returned
            game.

        Raises:
            ValueError: If the action is inconsistent with the game.
        """
        index = self.history.record(action)
        self.current_action_index = index
        if index > 0:
            self._apply_corrections(index)

        if isinstance(action, ClueAction):
            return self._handle_clue(action)
        if isinstance(action, PlayAction):
            return self._handle_play(action)
        if isinstance(action, DiscardAction):
            return self._handle_discard(action)
        if isinstance(action, DrawAction):
            return self._handle_draw(action)
        raise ValueError(f"Unknown action: {action!r}")

    def _apply_corrections(self, index: int) -> None:
        identified = False
        for correction in self.corrections.get(index, ()):
            if isinstance(correction, IdentifyCorrection):
                card = self.state.deck[correction.order]
                card.suit_index = correction.identity.suit_index
                card.rank = correction.identity.rank
                self.common.update_thoughts(correction.order, rewinded=True)
                identified = True
                logger.info("Card %d identified as %s", correction.order,
                            correction.identity.short(self.state.variant))
            else:
                self.next_ignore.append(correction)
        if identified:
            self.update_beliefs()

    def _end_turn(self) -> None:
        self.state.turn_count += 1
        self.state.current_player_index = self.state.next_player_index(
            self.state.current_player_index)

    def _check_player(self, player_index: int) -> None:
        if not 0 <= player_index < self.state.num_players:
            raise ValueError(f"Player index must be 0-{self.state.num_players - 1}, "
                             f"got {player_index}")

    def _handle_clue(self, action: ClueAction) -> Game:
        state = self.state
        self._check_player(action.giver)
        self._check_player(action.target)
        if action.giver == action.target:
            raise ValueError("A player cannot clue themselves")
        hand = state.hands[action.target]
        missing = [o for o in action.touched if o not in hand]
        if missing:
            raise ValueError(f"Cards {missing} are not in "
                             f"{state.player_names[action.target]}'s hand")
        if not state.variant.is_cluable(action.clue):
            raise ValueError(f"Clue {action.clue} cannot be given in {state.variant.name}")
        if state.clue_tokens <= 0:
            raise ValueError("No clue tokens left")

        state.clue_tokens -= 1
        for order in action.touched:
            card = state.deck[order]
            card.newly_clued = not card.clued
            card.clued = True
            card.clues.append(action.clue)

        game = interpret_clue(self, action)
        if game is not self:
            return game

        self.next_ignore = []
        for order in action.touched:
            state.deck[order].newly_clued = False
            if self.common.thoughts[order].newly_clued:
                self.common.update_thoughts(order, newly_clued=False)
        self.update_beliefs()
        self._end_turn()
        return self

    def _take_from_hand(self, player_index: int, order: int, identity: Identity) -> None:
        self._check_player(player_index)
        hand = self.state.hands[player_index]
        if order not in hand:
            raise ValueError(f"Card {order} is not in "
                             f"{self.state.player_names[player_index]}'s hand")
        card = self.state.deck[order]
        card.suit_index = identity.suit_index
        card.rank = identity.rank
        hand.remove(order)
        revealed = IdentitySet.from_identities(self.state.num_suits, [identity])
        self.common.update_thoughts(order, possible=revealed, inferred=revealed)

    def _discard_identity(self, identity: Identity) -> None:
        counts = self.state.discard_counts
        counts[identity] = counts.get(identity, 0) + 1

    def _handle_play(self, action: PlayAction) -> Game:
        state = self.state
        identity = Identity(action.suit_index, action.rank)
        self._take_from_hand(action.player_index, action.order, identity)

        if state.is_playable(identity):
            state.play_stacks[identity.suit_index] = identity.rank
            if identity.rank == MAX_RANK and state.clue_tokens < MAX_CLUE_TOKENS:
                state.clue_tokens += 1
            logger.debug("%s played %s", state.player_names[action.player_index],
                         identity.short(state.variant))
        else:
            state.strikes += 1
            self._discard_identity(identity)
            logger.info("%s misplayed %s", state.player_names[action.player_index],
                        identity.short(state.variant))

        waiting_connections.update_on_play(self, action)
        self.update_beliefs()
        self._end_turn()
        return self

    def _handle_discard(self, action: DiscardAction) -> Game:
        state = self.state
        identity = Identity(action.suit_index, action.rank)
        self._take_from_hand(action.player_index, action.order, identity)
        self._discard_identity(identity)
        if action.failed:
            state.strikes += 1
        else:
            state.clue_tokens = min(state.clue_tokens + 1, MAX_CLUE_TOKENS)
            state.early_game = False

        waiting_connections.update_on_discard(self, action)
        self.update_beliefs()
        self._end_turn()
        return self

    def _handle_draw(self, action: DrawAction) -> Game:
        state = self.state
        self._check_player(action.player_index)
        if action.order != len(state.deck):
            raise ValueError(f"Expected card order {len(state.deck)}, got {action.order}")
        if state.cards_left <= 0:
            raise ValueError("The deck is empty")

        state.deck.append(Card(
            action.order, action.suit_index, action.rank,
            drawn_index=self.current_action_index,
        ))
        state.hands[action.player_index].insert(0, action.order)
        state.cards_left -= 1
        self.common.add_card(state, action.order)
        self.update_beliefs()
        return self

    # -- Rewinds -------------------------------------------------------------

    def rewind(self, action_index: int, corrections: list[Correction]) -> Game | None:
        """Rebuild the game with corrections injected before an action.

        The rebuilt game replays the whole history. A rewind that was
        already performed, that would add no new correction, or that
        would nest deeper than ``MAX_REWIND_DEPTH`` is refused.

        Args:
            action_index: Index of the action the corrections precede.
            corrections: Identify or ignore corrections.

        Returns:
            The rebuilt game, or None if the rewind was refused.

        Raises:
            IndexError: If ``action_index`` is outside the history.
        """
        if not 0 <= action_index <= len(self.actions):
            raise IndexError(f"Cannot rewind to action {action_index} of {len(self.actions)}")
        corrections = tuple(corrections)
        key = (action_index, corrections)
        if key in self.visited_rewinds:
            logger.warning("Already rewound to action %d with %s", action_index, corrections)
            return None
        existing = self.corrections.get(action_index, ())
        if all(c in existing for c in corrections):
            logger.warning("Corrections %s already applied at action %d", corrections, action_index)
            return None
        if self.rewind_depth >= MAX_REWIND_DEPTH:
            logger.warning("Rewind depth %d reached, not rewinding", self.rewind_depth)
            return None

        logger.info("Rewinding to action %d with %s", action_index, corrections)
        merged = dict(self.corrections)
        merged[action_index] = existing + tuple(c for c in corrections if c not in existing)
        rebuilt = Game._from_setup(
            self.setup, merged, self.visited_rewinds | {key}, self.rewind_depth + 1)
        rebuilt = rebuilt._replay(self.actions)
        rebuilt.rewind_depth = self.rewind_depth
        return rebuilt

    def _replay(self, actions: list[ActionRecord], show_progress: bool = False) -> Game:
        game = self
        for action in tqdm.tqdm(actions, desc="Replaying", unit="action",
                                disable=not show_progress):
            game = game.handle_action(action)
        return game

    def replay(self, show_progress: bool = False) -> Game:
        """Rebuild the game from its setup by replaying every action.

        Args:
            show_progress: Show a progress bar while replaying.

        Returns:
            The rebuilt game.
        """
        fresh = Game._from_setup(
            self.setup, self.corrections, self.visited_rewinds, self.rewind_depth)
        return fresh._replay(list(self.actions), show_progress)

    # -- Queries -------------------------------------------------------------

    def locked_discard(self, player_index: int | None = None) -> int:
        """The card a locked player should sacrifice, by common knowledge."""
        if player_index is None:
            player_index = self.state.our_player_index
        return self.common.locked_discard(self.state, self.state.hands[player_index])

    def thoughts_str(self, player_index: int) -> str:
        """One line per card: order, visible identity and inferred identities."""
        variant = self.state.variant
        lines = [f"{_Colors.BOLD}{self.state.player_names[player_index]}{_Colors.RESET}"]
        for slot, order in enumerate(self.state.hands[player_index], start=1):
            record = self.common.thoughts[order]
            flags = [name for name, on in (
                ("clued", record.clued), ("finessed", record.finessed),
                ("chop moved", record.chop_moved), ("trash", record.trash),
            ) if on]
            flag_text = f" {_Colors.DIM}[{', '.join(flags)}]{_Colors.RESET}" if flags else ""
            lines.append(
                f"  slot {slot} ({order:>2}) {self.state.card_str(order)}: "
                f"{record.inferred.describe(variant)}{flag_text}"
            )
        return "\n".join(lines)

    def __str__(self) -> str:
        lines = [str(self.state)]
        if self.common.waiting_connections:
            lines.append("Waiting on:")
            lines.extend(
                f"  {wc.describe(self.state.variant)}"
                for wc in self.common.waiting_connections
            )
        return "\n".join(lines)
