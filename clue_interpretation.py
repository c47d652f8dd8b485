"""Clue interpretation engine for Hanabi under H-group conventions.

Turns one clue action into belief updates on the common-knowledge store
of a ``reasoner.Game``: touched and untouched cards are narrowed, the
focus card is located, every identity the focus could have is explained
by a chain of expected plays (known cards, prompts and finesses), the
simplest explanations win (Occam's razor) and the survivors are
committed as inferences and waiting connections.

Architecture:
    determine_focus() and the override detectors are pure functions of
    the game before inference. interpret_clue() runs the pipeline:
    clue basics, fix detection, the waiting-connection tracker, the
    detectors, the play/save search and the post-inference rules, then
    records one ``Interp`` tag for every clue that touches a card.
    Anything that discovers an earlier misreading asks the game to
    rewind and returns the rebuilt game instead of the one it was given.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

import waiting_connections
from hanabi_game import (
    ClueAction,
    Connection,
    ConnectionResult,
    ConnectionType,
    FocusPossibility,
    Identity,
    IdentifyCorrection,
    IdentitySet,
    IgnoreCorrection,
    Interp,
    Level,
    MAX_CLUE_TOKENS,
    Observer,
    WaitingConnection,
)
from variants import ClueType, MAX_RANK, is_pinkish

if TYPE_CHECKING:
    from hanabi_game import GameState
    from reasoner import Game

logger = logging.getLogger(__name__)

_BLIND = (ConnectionType.PROMPT, ConnectionType.FINESSE)


# =============================================================================
# Focus
# =============================================================================

@dataclasses.dataclass(frozen=True)
class FocusResult:
    """Which touched card a clue is about.

    Attributes:
        focus: Order of the focused card.
        chop: The focus was on chop before the clue.
        positional: The clue touched no new card and added no new
            information to any touched card.
        chop_order: The target's chop before the clue, if any.
    """
    focus: int
    chop: bool
    positional: bool = False
    chop_order: int | None = None


def determine_focus(
    state: GameState,
    observer: Observer,
    action: ClueAction,
) -> FocusResult:
    """Locate the focus of a clue from the thoughts before the clue.

    The chop is the focus when it is newly clued. Otherwise the newly
    clued card closest to chop is, and a clue touching no new card is
    focused on its newest touched card.

    Args:
        state: The game ledger, with ``newly_clued`` already set.
        observer: Belief store holding the thoughts before the clue.
        action: The clue.

    Returns:
        The FocusResult. Deterministic for the same inputs.
    """
    hand = state.hands[action.target]
    touched = [o for o in hand if o in action.touched]
    chop_order = observer.chop(hand)
    newly = [o for o in touched if state.deck[o].newly_clued]

    if chop_order is not None and chop_order in newly:
        return FocusResult(chop_order, True, False, chop_order)
    if newly:
        return FocusResult(newly[-1], False, False, chop_order)

    clue_ids = state.touched_identities(action.clue)
    positional = all(
        observer.thoughts[o].possible.issubset(clue_ids) for o in touched
    )
    return FocusResult(touched[0], False, positional, chop_order)


# =============================================================================
# Clue Basics and Fixes
# =============================================================================

def _apply_clue_basics(game: Game, action: ClueAction, focus: int | None) -> None:
    state, common = game.state, game.common
    touched_ids = state.touched_identities(action.clue)

    for order in state.hands[action.target]:
        record = common.thoughts[order]
        if order not in action.touched:
            common.update_thoughts(
                order,
                possible=record.possible.subtract(touched_ids),
                inferred=record.inferred.subtract(touched_ids),
            )
            continue

        newly = not record.clued
        possible = record.possible.intersect(touched_ids)
        inferred = record.inferred.intersect(touched_ids)
        if newly:
            inferred = inferred.filter(lambda i: not state.is_basic_trash(i))
            if not inferred and order != focus:
                inferred = possible
        common.update_thoughts(
            order, possible=possible, inferred=inferred,
            clued=True, newly_clued=newly,
        )
        common.add_reasoning(order, game.current_action_index)

    common.card_elim(state)


def check_fix(game: Game, action: ClueAction, old_common: Observer) -> bool:
    """Detect whether a clue fixes a previously clued card.

    A clued card whose inference the clue contradicts is reset to its
    possibilities. A clued card that becomes known to duplicate another
    touched card also counts as fixed.

    Returns:
        True if the clue is a fix clue.
    """
    state, common = game.state, game.common
    fixed = False
    for order in action.touched:
        old = old_common.thoughts[order]
        record = common.thoughts[order]
        if not old.clued:
            continue

        if not record.inferred:
            common.update_thoughts(order, inferred=record.possible, reset=True)
            logger.info("Clued card %d had its inference reset", order)
            fixed = True
            continue

        identity = record.identity()
        if identity is None or old.identity() is not None:
            continue
        duplicate = any(
            other != order
            and common.thoughts[other].clued
            and common.thoughts[other].identity(infer=True) == identity
            for hand in state.hands for other in hand
        )
        if duplicate:
            logger.info("Clued card %d revealed as a duplicate", order)
            fixed = True
    return fixed


def apply_good_touch(
    game: Game,
    action: ClueAction,
    old_common: Observer,
    focus: int,
) -> tuple[bool, Game | None]:
    """Apply the direct information of a clue and detect fixes.

    Returns:
        ``(fix, rewound)``. ``rewound`` is the rebuilt game when a
        layered finesse in our own hand was revealed, else None.
    """
    state = game.state
    _apply_clue_basics(game, action, focus)
    common = game.common

    if action.target == state.our_player_index:
        for order in state.hands[action.target]:
            record = common.thoughts[order]
            old = old_common.thoughts[order]
            if record.finessed and old.inferred and not record.inferred:
                logger.warning("Layered finesse revealed on card %d", order)
                rewound = game.rewind(record.finesse_index, [IgnoreCorrection(order)])
                if rewound is not None:
                    return False, rewound
            if record.trash and all(state.is_critical(i) for i in record.possible):
                common.update_thoughts(order, trash=False)

    return check_fix(game, action, old_common), None


# =============================================================================
# Connection Search
# =============================================================================

@dataclasses.dataclass(frozen=True)
class SearchContext:
    """Everything a connection search needs, passed down explicitly.

    Attributes:
        game: The game being interpreted.
        action: The clue being explained.
        focus: Order of the focused card.
        viewer: Player whose perspective the search takes.
        looks_direct: From the target's view the clue could be a direct
            play or save, so the target may not be asked to self-finesse.
        own_finesses: The viewer may connect through their own hand.
        ignored: Orders that may not be used for any identity.
    """
    game: Game
    action: ClueAction
    focus: int
    viewer: int
    looks_direct: bool = False
    own_finesses: bool = False
    ignored: frozenset[int] = frozenset()


def _make_context(game: Game, action: ClueAction, focus: int, viewer: int,
                  looks_direct: bool, own_finesses: bool) -> SearchContext:
    ignored = frozenset(c.order for c in game.next_ignore if c.inference is None)
    return SearchContext(game, action, focus, viewer, looks_direct, own_finesses, ignored)


def _seen_identity(ctx: SearchContext, order: int) -> Identity | None:
    """The card's identity if the searching viewer can see it."""
    state = ctx.game.state
    identity = state.deck[order].identity()
    if identity is None:
        return None
    holder = state.holder_of(order)
    if holder == ctx.viewer and ctx.viewer != state.our_player_index:
        return None
    return identity


def _hand_visible(ctx: SearchContext, player_index: int) -> bool:
    state = ctx.game.state
    return all(
        _seen_identity(ctx, o) is not None or ctx.game.common.thoughts[o].clued
        for o in state.hands[player_index]
    )


def _ignored_for(game: Game, identity: Identity) -> set[int]:
    return {c.order for c in game.next_ignore if c.inference == identity}


def find_connecting(
    ctx: SearchContext,
    identity: Identity,
    connected: tuple[int, ...],
    stacks: list[int],
    allow_bluff: bool = False,
) -> ConnectionResult:
    """Find the card that will be played as ``identity`` before the focus.

    Cards already known or provably playable are preferred. After that,
    players are examined in turn order starting after the giver: a prompt
    on their leftmost matching clued card, else a finesse on their
    leftmost unclued card. A player whose prompt or finesse card would be
    something else cannot be used.

    Args:
        ctx: The search context.
        identity: The identity to connect.
        connected: Orders already used by earlier links of the chain.
        stacks: Hypothetical play stacks at this point of the chain.
        allow_bluff: The link may be a bluff on the next player.

    Returns:
        A ConnectionResult with the links for this identity (layered
        finesses contribute hidden links first), or a rejection.
    """
    game, action = ctx.game, ctx.action
    state, common = game.state, game.common
    ids = IdentitySet.from_identities(state.num_suits, [identity])

    def usable(order: int) -> bool:
        return (
            order not in connected and order != ctx.focus
            and order not in ctx.ignored
        )

    for player_index, hand in enumerate(state.hands):
        for order in hand:
            if not usable(order):
                continue
            record = common.thoughts[order]
            actual = _seen_identity(ctx, order)
            if actual is not None and actual != identity:
                continue
            if (record.touched or len(record.possible) == 1) and \
                    record.identity(infer=True) == identity:
                return ConnectionResult((Connection(
                    ConnectionType.KNOWN, player_index, order, ids),))
            if record.touched and actual == identity and record.inferred and all(
                i.rank == stacks[i.suit_index] + 1 for i in record.inferred
            ):
                return ConnectionResult((Connection(
                    ConnectionType.PLAYABLE, player_index, order, ids),))

    player_index = state.next_player_index(action.giver)
    for _ in range(state.num_players - 1):
        result = _connect_in_hand(ctx, player_index, identity, connected, stacks, allow_bluff)
        if result is not None:
            return result
        player_index = state.next_player_index(player_index)

    return ConnectionResult.reject(
        f"no card connects to {identity.short(state.variant)}"
    )


def _connect_in_hand(
    ctx: SearchContext,
    player_index: int,
    identity: Identity,
    connected: tuple[int, ...],
    stacks: list[int],
    allow_bluff: bool,
) -> ConnectionResult | None:
    """Prompt or finesse lookup in one hand. None means the hand is unusable."""
    game, action = ctx.game, ctx.action
    state, common = game.state, game.common
    ids = IdentitySet.from_identities(state.num_suits, [identity])
    own = player_index == ctx.viewer

    if own and not ctx.own_finesses:
        return None
    if not own and not _hand_visible(ctx, player_index):
        return None

    hand = state.hands[player_index]

    # Prompt
    for order in hand:
        record = common.thoughts[order]
        if not record.clued or record.trash or order in connected or order in ctx.ignored:
            continue
        if order == ctx.focus and record.newly_clued:
            continue
        known = record.identity(infer=True)
        if known is not None and known != identity:
            continue
        if not record.possible.has(identity) or \
                (record.inferred and not record.inferred.has(identity)):
            continue

        if order == ctx.focus:
            return ConnectionResult.reject("self-referential prompt on the focused card")
        if own:
            return ConnectionResult((Connection(
                ConnectionType.PROMPT, player_index, order, ids, self_link=True),))
        if _seen_identity(ctx, order) == identity:
            return ConnectionResult((Connection(
                ConnectionType.PROMPT, player_index, order, ids),))
        logger.debug("Wrong prompt on card %d, %s cannot connect",
                     order, state.player_names[player_index])
        return None

    # Finesse
    hidden: list[Connection] = []
    stacks = list(stacks)
    for order in hand:
        record = common.thoughts[order]
        if record.saved or order in connected or order in ctx.ignored or order == ctx.focus:
            continue

        if own:
            if player_index == action.target and ctx.looks_direct:
                return None
            if not record.possible.has(identity):
                return None
            return ConnectionResult(tuple(hidden) + (Connection(
                ConnectionType.FINESSE, player_index, order, ids, self_link=True),))

        if player_index == action.target and ctx.looks_direct:
            return None

        actual = state.deck[order].identity()
        if actual == identity:
            return ConnectionResult(tuple(hidden) + (Connection(
                ConnectionType.FINESSE, player_index, order, ids),))

        playable = actual.rank == stacks[actual.suit_index] + 1
        if (allow_bluff and not hidden and game.level >= Level.BLUFFS and playable
                and player_index == state.next_player_index(action.giver)
                and identity.rank == stacks[identity.suit_index] + 1):
            bluff_ids = IdentitySet.from_identities(state.num_suits, [actual])
            return ConnectionResult((Connection(
                ConnectionType.FINESSE, player_index, order, bluff_ids, bluff=True),))

        if playable and game.level >= Level.INTERMEDIATE_FINESSES:
            hidden.append(Connection(
                ConnectionType.FINESSE, player_index, order,
                IdentitySet.from_identities(state.num_suits, [actual]), hidden=True))
            stacks[actual.suit_index] += 1
            continue
        return None

    return None


def _blind_plays(connections) -> int:
    return sum(c.type == ConnectionType.FINESSE for c in connections)


def _cushion(state: GameState) -> int:
    return state.cards_left + state.num_players


def find_own_finesses(
    game: Game,
    action: ClueAction,
    focus: int,
    identity: Identity,
    looks_direct: bool,
    viewer: int,
) -> ConnectionResult:
    """Connect every rank below ``identity``, allowing the viewer's own hand.

    Args:
        game: The game being interpreted.
        action: The clue.
        focus: Order of the focused card.
        identity: Candidate focus identity.
        looks_direct: See ``SearchContext.looks_direct``.
        viewer: Player whose perspective the search takes.

    Returns:
        The chain, or a rejection naming the first link that failed.
    """
    state = game.state
    stacks = list(game.common.hypo_stacks)
    if state.is_basic_trash(identity) or identity.rank <= stacks[identity.suit_index]:
        return ConnectionResult.reject(f"{identity.short(state.variant)} is already played")

    ctx = _make_context(game, action, focus, viewer, looks_direct, own_finesses=True)
    skip = _ignored_for(game, identity)
    connections: list[Connection] = []
    connected: tuple[int, ...] = ()
    for rank in range(stacks[identity.suit_index] + 1, identity.rank):
        link = Identity(identity.suit_index, rank)
        result = find_connecting(ctx, link, connected, stacks)
        if not result.ok:
            return ConnectionResult.reject(
                f"{link.short(state.variant)}: {result.rejection}")
        if any(c.order in skip for c in result.connections):
            return ConnectionResult.reject(f"{link.short(state.variant)}: ignored card")
        connections.extend(result.connections)
        connected += tuple(c.order for c in result.connections)
        stacks[identity.suit_index] = rank

    if _blind_plays(connections) > _cushion(state):
        return ConnectionResult.reject("too many blind plays for the cards left")
    return ConnectionResult(tuple(connections))


# =============================================================================
# Focus Possibilities
# =============================================================================

def _rank_looks_playable(game: Game, rank: int, focus: int) -> bool:
    possible = game.common.thoughts[focus].possible
    return any(
        game.common.hypo_stacks[s] + 1 == rank and possible.has(Identity(s, rank))
        for s in range(game.state.num_suits)
    )


def _looks_direct_basic(game: Game, action: ClueAction, focus: int) -> bool:
    if game.common.thoughts[focus].identity(infer=True) is not None:
        return False
    if action.clue.type == ClueType.COLOUR:
        return True
    return _rank_looks_playable(game, action.clue.value, focus)


def looks_direct(
    game: Game,
    action: ClueAction,
    focus: int,
    focus_possible: list[FocusPossibility],
) -> bool:
    """Whether the target could read the clue as a direct play or save."""
    common = game.common
    if _looks_direct_basic(game, action, focus):
        return True
    if common.thoughts[focus].identity(infer=True) is not None:
        return False
    inferred = common.thoughts[focus].inferred
    us = game.state.our_player_index
    return any(
        not fp.illegal and inferred.has(fp.identity) and all(
            c.type == ConnectionType.KNOWN
            or (c.type == ConnectionType.PLAYABLE and c.reacting != us)
            for c in fp.connections
        )
        for fp in focus_possible
    )


def _two_save_eligible(game: Game, action: ClueAction, identity: Identity) -> bool:
    """A 2 may be saved unless another player already holds a copy."""
    state = game.state
    for player_index, hand in enumerate(state.hands):
        if player_index in (action.giver, action.target):
            continue
        if any(state.deck[o].identity() == identity for o in hand):
            return False
    return True


def _visibly_touched(game: Game, action: ClueAction, identity: Identity, exclude: int) -> bool:
    """Whether the clue target already knows of another touched copy.

    Cards newly touched by this clue do not count. Cards in the target's
    own hand count only when their identity is common knowledge.
    """
    state, common = game.state, game.common
    for player_index, hand in enumerate(state.hands):
        for order in hand:
            if order == exclude:
                continue
            if order in action.touched and state.deck[order].newly_clued:
                continue
            record = common.thoughts[order]
            if not record.touched:
                continue
            if player_index == action.target:
                seen = record.identity(infer=True)
            else:
                seen = state.deck[order].identity() or record.identity(infer=True)
            if seen == identity:
                return True
    return False


def _play_possibility(
    ctx: SearchContext,
    suit_index: int,
    target_rank: int | None,
) -> FocusPossibility | None:
    """Walk the connecting ranks of one suit up to the focus.

    With ``target_rank`` the walk must connect every rank below it.
    Without it (colour clues) the walk is greedy and the focus is the
    first rank nothing connects to, falling back to the highest rank
    the focus can actually be.
    """
    game = ctx.game
    state, common = game.state, game.common
    possible = common.thoughts[ctx.focus].possible
    stacks = list(common.hypo_stacks)
    rank = stacks[suit_index] + 1
    connections: list[Connection] = []
    connected: tuple[int, ...] = ()
    prefixes: dict[int, int] = {rank: 0}

    while rank <= MAX_RANK and (target_rank is None or rank < target_rank):
        identity = Identity(suit_index, rank)
        result = find_connecting(ctx, identity, connected, stacks, allow_bluff=not connections)
        if not result.ok:
            if target_rank is not None:
                return None
            break
        connections.extend(result.connections)
        if any(c.bluff for c in result.connections):
            rank += 1
            prefixes[rank] = len(connections)
            break
        connected += tuple(c.order for c in result.connections)
        stacks[suit_index] = rank
        rank += 1
        prefixes[rank] = len(connections)

    if target_rank is not None:
        if rank != target_rank:
            return None
        candidates = [rank] if possible.has(Identity(suit_index, rank)) else []
    else:
        candidates = [r for r in prefixes if r <= MAX_RANK and possible.has(Identity(suit_index, r))]
    if not candidates:
        return None
    rank = max(candidates)
    connections = connections[:prefixes[rank]]

    if _blind_plays(connections) > _cushion(state):
        logger.warning("Too many blind plays to reach %s",
                       Identity(suit_index, rank).short(state.variant))
        return None
    identity = Identity(suit_index, rank)
    if any(c.order in _ignored_for(game, identity) for c in connections):
        return None
    return FocusPossibility(
        identity, tuple(connections),
        illegal=_visibly_touched(game, ctx.action, identity, ctx.focus),
    )


def find_focus_possible(
    game: Game,
    action: ClueAction,
    focus_result: FocusResult,
) -> list[FocusPossibility]:
    """Every identity the focus could be, from our own perspective.

    Play possibilities come from walking each suit's connecting cards.
    When the focus is on chop, the critical cards and eligible 2s the
    clue could be saving are added as save possibilities. Trash is never
    a possibility. Possibilities that would duplicate a touched card are
    kept but marked illegal.
    """
    state, common = game.state, game.common
    focus = focus_result.focus
    clue = action.clue
    possible = common.thoughts[focus].possible
    ctx = _make_context(
        game, action, focus, state.our_player_index,
        _looks_direct_basic(game, action, focus), own_finesses=False,
    )

    result: list[FocusPossibility] = []
    for suit_index in range(state.num_suits):
        if not any(i.suit_index == suit_index for i in possible):
            continue
        target_rank = clue.value if clue.type == ClueType.RANK else None
        fp = _play_possibility(ctx, suit_index, target_rank)
        if fp is not None and not state.is_basic_trash(fp.identity):
            result.append(fp)

    if focus_result.chop:
        plays = {fp.identity for fp in result}
        for identity in possible:
            if identity in plays or state.is_basic_trash(identity):
                continue
            if clue.type == ClueType.RANK and clue.value == MAX_RANK and identity.rank == MAX_RANK:
                save = True
            elif identity.rank == 2:
                save = state.is_critical(identity) or _two_save_eligible(game, action, identity)
            else:
                save = state.is_critical(identity)
            if save:
                result.append(FocusPossibility(
                    identity, (), save=True, interp=Interp.SAVE,
                    illegal=_visibly_touched(game, action, identity, focus),
                ))

    logger.debug(
        "Focus possibilities for card %d: %s", focus,
        ", ".join(fp.identity.short(state.variant) for fp in result) or "none",
    )
    return result


# =============================================================================
# Ranking
# =============================================================================

def connection_score(fp: FocusPossibility, player_index: int) -> tuple[int, ...]:
    """Cost of a hypothesis from one player's perspective.

    Only links from the player's first own prompt or finesse onwards are
    counted. Fewer finesses, then fewer self finesses, then fewer prompts
    win; a chain that starts with a bluff loses ties.
    """
    conns = fp.connections
    start = next(
        (i for i, c in enumerate(conns) if c.reacting == player_index and c.type in _BLIND),
        len(conns),
    )
    links = conns[start:]
    first_finesse = next((c for c in links if c.type == ConnectionType.FINESSE), None)
    return (
        sum(c.type == ConnectionType.FINESSE for c in links),
        sum(c.type == ConnectionType.FINESSE and c.reacting == player_index for c in links),
        sum(c.type == ConnectionType.PROMPT for c in links),
        int(first_finesse is not None and first_finesse.bluff),
        len(links),
    )


def hypothesis_key(fp: FocusPossibility, player_index: int) -> tuple[int, ...]:
    """Strict total order on hypotheses: cost, then suit, then rank."""
    return connection_score(fp, player_index) + (fp.identity.suit_index, fp.identity.rank)


def occams_razor(
    fps: list[FocusPossibility],
    player_index: int,
) -> list[FocusPossibility]:
    """Keep every hypothesis tied for the lowest cost, in key order."""
    if not fps:
        return []
    ranked = sorted(fps, key=lambda fp: hypothesis_key(fp, player_index))
    best = connection_score(ranked[0], player_index)
    return [fp for fp in ranked if connection_score(fp, player_index) == best]


def finalize_connections(fps: list[FocusPossibility]) -> list[FocusPossibility]:
    """Drop self finesses that would follow a possible bluff play.

    If a card might be blind-played as a bluff, a real finesse through
    the same card cannot promise a further card in our own hand.
    """
    bluff_orders = {
        fp.connections[0].order for fp in fps
        if fp.connections and fp.connections[0].bluff
    }
    if not bluff_orders:
        return fps

    result = []
    for fp in fps:
        conns = fp.connections
        if (len(conns) >= 2 and conns[0].type == ConnectionType.FINESSE
                and not conns[0].bluff and conns[0].order in bluff_orders
                and conns[1].self_link):
            logger.info("Dropping self finesse for %s behind a possible bluff",
                        fp.identity)
            continue
        result.append(fp)
    return result


# =============================================================================
# Committing an Interpretation
# =============================================================================

def _pink_promise(game: Game, action: ClueAction, identity: Identity) -> bool:
    """Rank clues on pink cards promise the clued rank."""
    if action.clue.type != ClueType.RANK:
        return True
    suit = game.state.variant.suits[identity.suit_index]
    return not is_pinkish(suit) or identity.rank == action.clue.value


def find_symmetric_connections(
    game: Game,
    action: ClueAction,
    focus: int,
    simplest: list[FocusPossibility],
    old_inferred: IdentitySet,
) -> list[FocusPossibility]:
    """Hypotheses the target would consider but which we know are false."""
    state = game.state
    existing = {fp.identity for fp in simplest}
    direct = looks_direct(game, action, focus, simplest)
    result = []
    for identity in old_inferred:
        if identity in existing or state.is_basic_trash(identity):
            continue
        if not _pink_promise(game, action, identity):
            continue
        found = find_own_finesses(game, action, focus, identity, direct, action.target)
        if found.ok:
            result.append(FocusPossibility(identity, found.connections))
        else:
            logger.debug("Symmetric %s rejected: %s",
                         identity.short(state.variant), found.rejection)
    return result


def _assign_connections(
    game: Game,
    fps: list[FocusPossibility],
    focus: int,
) -> None:
    """Mark every prompted and finessed card of the chosen hypotheses."""
    state, common = game.state, game.common
    actual = state.deck[focus].identity()
    chosen = [fp for fp in fps if fp.identity == actual] or fps

    merged: dict[int, IdentitySet] = {}
    links: dict[int, Connection] = {}
    for fp in chosen:
        for conn in fp.connections:
            if conn.type not in _BLIND:
                continue
            ids = conn.identities
            if conn.bluff:
                ids = common.thoughts[conn.order].possible.filter(state.is_playable)
            merged[conn.order] = merged.get(conn.order, IdentitySet.empty(state.num_suits)).union(ids)
            links[conn.order] = conn

    for order, ids in merged.items():
        record = common.thoughts[order]
        conn = links[order]
        if conn.type == ConnectionType.FINESSE:
            common.update_thoughts(
                order, finessed=True, inferred=ids,
                hidden=conn.hidden, finesse_index=game.current_action_index,
            )
        else:
            narrowed = record.inferred.intersect(ids)
            common.update_thoughts(order, inferred=narrowed or ids)
        common.add_reasoning(order, game.current_action_index)


def _register_waiting(
    game: Game,
    action: ClueAction,
    fp: FocusPossibility,
    focus: int,
    symmetric: bool,
) -> None:
    if not any(c.type in _BLIND for c in fp.connections):
        return
    wc = WaitingConnection(
        connections=list(fp.connections),
        conn_index=0,
        focus=focus,
        inference=fp.identity,
        giver=action.giver,
        target=action.target,
        turn=game.state.turn_count,
        action_index=game.current_action_index,
        symmetric=symmetric,
    )
    game.common.waiting_connections.append(wc)
    logger.info("Waiting on %s", wc.describe(game.state.variant))


def important_finesse(state: GameState, action: ClueAction, fps: list[FocusPossibility]) -> bool:
    """Whether only the giver could have given a finesse before it lapsed.

    A finesse has to be given before its first finessed player acts.
    Any player in between who sees every card of the chain could have
    given it instead.
    """
    for fp in fps:
        conns = fp.connections
        if not any(c.type == ConnectionType.FINESSE for c in conns):
            continue
        player_index = state.next_player_index(action.giver)
        while player_index != action.giver:
            if any(c.type == ConnectionType.FINESSE and c.reacting == player_index for c in conns):
                return True
            if player_index != action.target and not any(
                    c.reacting == player_index and c.type != ConnectionType.KNOWN for c in conns):
                logger.debug("%s could give the finesse on %s",
                             state.player_names[player_index], fp.identity.short(state.variant))
                break
            player_index = state.next_player_index(player_index)
    return False


def urgent_save(game: Game, action: ClueAction, focus: int, old_common: Observer) -> bool:
    """Whether a chop save could not have waited for a later player.

    It is urgent when the target has nothing to do and every player from
    the giver up to the target is busy with a finessed play.
    """
    state, common = game.state, game.common
    if old_common.thoughts[focus].saved or not common.thoughts[focus].saved:
        return False
    if common.thinks_loaded(state, action.target):
        return False

    stacks = list(state.play_stacks)
    played: set[Identity] = set()

    def ready(order: int, include_hidden: bool) -> bool:
        record = common.thoughts[order]
        return (
            record.finessed and (include_hidden or not record.hidden)
            and all(i in played or stacks[i.suit_index] + 1 == i.rank for i in record.inferred)
        )

    def finessed_play(player_index: int, include_hidden: bool) -> int | None:
        plays = [o for o in state.hands[player_index] if ready(o, include_hidden)]
        return min(plays, key=lambda o: common.thoughts[o].finesse_index, default=None)

    player_index = action.giver
    while player_index != action.target:
        if finessed_play(player_index, False) is None:
            return False
        identity = common.thoughts[finessed_play(player_index, True)].identity(infer=True)
        if identity is not None:
            played.add(identity)
            stacks[identity.suit_index] += 1
        player_index = state.next_player_index(player_index)
    return True


def resolve_clue(
    game: Game,
    action: ClueAction,
    focus: int,
    simplest: list[FocusPossibility],
    old_inferred: IdentitySet,
) -> Interp:
    """Commit the surviving hypotheses to the common store.

    When another player is the target, the hypotheses they would find
    from their own perspective are evaluated first. If the real identity
    is not among their simplest readings the clue is a convention
    violation: our own clues commit nothing, other clues are committed
    but tagged NONE.

    Returns:
        SAVE, PLAY or NONE.
    """
    state, common = game.state, game.common
    us = state.our_player_index
    if important_finesse(state, action, simplest):
        game.mark_important("finesse only the giver could give")
    actual = state.deck[focus].identity()
    correct = next((fp for fp in simplest if fp.identity == actual), None)

    violation = False
    simplest_symmetric: list[FocusPossibility] = []
    if action.target != us and not (correct is not None and correct.save):
        symmetric = find_symmetric_connections(game, action, focus, simplest, old_inferred)
        simplest_symmetric = occams_razor(symmetric + simplest, action.target)
        if actual is not None and not any(fp.identity == actual for fp in simplest_symmetric):
            logger.warning(
                "%s would not read card %d as %s",
                state.player_names[action.target], focus, actual.short(state.variant),
            )
            if action.giver == us:
                return Interp.NONE
            violation = True

    ids = [fp.identity for fp in simplest]
    common.update_thoughts(focus, inferred=common.thoughts[focus].inferred.intersect(ids))
    _assign_connections(game, simplest, focus)

    for fp in simplest:
        symmetric_wc = actual is not None and actual != fp.identity
        _register_waiting(game, action, fp, focus, symmetric_wc)
    for fp in simplest_symmetric:
        if fp.identity not in ids:
            _register_waiting(game, action, fp, focus, symmetric=True)

    record = common.thoughts[focus]
    widened = record.inferred.union(
        old_inferred.intersect([fp.identity for fp in simplest_symmetric]))
    record = common.update_thoughts(focus, inferred=widened)
    common.update_thoughts(focus, info_lock=record.inferred)

    if violation:
        return Interp.NONE
    if any(fp.save for fp in simplest):
        return Interp.SAVE
    return Interp.PLAY


# =============================================================================
# Play and Save Inference
# =============================================================================

def interpret_play_or_save(
    game: Game,
    action: ClueAction,
    focus_result: FocusResult,
) -> Interp:
    """Base inference: explain the focus as a play or a save."""
    state, common = game.state, game.common
    us = state.our_player_index
    focus = focus_result.focus
    record = common.thoughts[focus]
    old_inferred = record.inferred
    actual = state.deck[focus].identity()

    focus_possible = find_focus_possible(game, action, focus_result)
    legal = [fp for fp in focus_possible if not fp.illegal]
    matched = [fp for fp in legal if record.inferred.has(fp.identity)]

    if actual is not None and any(fp.identity == actual for fp in matched):
        if action.giver == us:
            simplest = occams_razor(legal, action.target)
            common.update_thoughts(focus, inferred=record.inferred.intersect(
                [fp.identity for fp in simplest]))
            if not any(fp.identity == actual for fp in simplest):
                logger.warning("Our clue does not lead to card %d", focus)
                return Interp.NONE
            matched = [fp for fp in matched if fp.identity in {s.identity for s in simplest}]
        else:
            common.update_thoughts(focus, inferred=record.inferred.intersect(
                [fp.identity for fp in legal]))
        return resolve_clue(game, action, focus, matched, old_inferred)

    if action.hypothetical:
        return Interp.NONE

    direct = looks_direct(game, action, focus, focus_possible)
    all_fps: list[FocusPossibility] = []
    if action.target == us:
        all_fps = [fp for fp in legal if record.inferred.has(fp.identity)]
        known = {fp.identity for fp in all_fps}
        for identity in record.inferred:
            if identity in known or state.is_basic_trash(identity):
                continue
            if not _pink_promise(game, action, identity):
                continue
            found = find_own_finesses(game, action, focus, identity, direct, us)
            if not found.ok:
                logger.debug("%s rejected: %s", identity.short(state.variant), found.rejection)
                continue
            all_fps.append(FocusPossibility(identity, found.connections))
        simplest = occams_razor(all_fps, us)
    elif actual is not None and not state.is_basic_trash(actual):
        found = find_own_finesses(game, action, focus, actual, direct, us)
        if found.ok:
            stack = common.hypo_stacks[actual.suit_index]
            played = 0
            for i, conn in enumerate(found.connections):
                prefix = Identity(actual.suit_index, stack + 1 + played)
                if conn.type == ConnectionType.FINESSE and not conn.hidden and \
                        record.possible.has(prefix) and prefix != actual:
                    all_fps.append(FocusPossibility(prefix, found.connections[:i]))
                if not conn.hidden:
                    played += 1
            all_fps.append(FocusPossibility(actual, found.connections))
        else:
            logger.warning("Card %d cannot be %s: %s", focus,
                           actual.short(state.variant), found.rejection)
        simplest = all_fps
    else:
        simplest = []

    simplest = finalize_connections(simplest)
    if not simplest:
        common.update_thoughts(focus, reset=True)
        logger.info("No inference on card %d", focus)
        return Interp.NONE
    return resolve_clue(game, action, focus, simplest, old_inferred)


# =============================================================================
# Special Conventions
# =============================================================================

@dataclasses.dataclass(frozen=True)
class Override:
    """A special-convention reading that replaces base inference.

    Attributes:
        tag: Interpretation tag of the clue.
        updates: Belief changes per card order.
        chop_moves: Orders to chop move.
        stalled_5: The clue is a 5 stall in the early game.
    """
    tag: Interp
    updates: dict[int, dict] = dataclasses.field(default_factory=dict)
    chop_moves: tuple[int, ...] = ()
    stalled_5: bool = False


def _newly_clued(game: Game, action: ClueAction) -> list[int]:
    return [o for o in game.state.hands[action.target]
            if o in action.touched and game.state.deck[o].newly_clued]


def _stall_severity(game: Game, giver: int) -> int:
    state = game.state
    if game.common.thinks_locked(state, giver):
        return 3
    if state.clue_tokens + 1 >= MAX_CLUE_TOKENS:
        return 2
    if state.early_game:
        return 1
    return 0


def _in_5cm_position(game: Game, action: ClueAction, focus_result: FocusResult) -> bool:
    chop = focus_result.chop_order
    if chop is None or chop in action.touched:
        return False
    hand = game.state.hands[action.target]
    return hand.index(focus_result.focus) == hand.index(chop) - 1


def _sees_better_clue(game: Game, viewer: int, action: ClueAction) -> bool:
    """Whether a player sees a play or save clue the giver could have given."""
    state, common = game.state, game.common
    for player_index, hand in enumerate(state.hands):
        if player_index in (viewer, action.giver):
            continue
        for order in hand:
            card = state.deck[order]
            identity = card.identity()
            if identity is None or common.thoughts[order].finessed:
                continue
            if card.clued and not card.newly_clued:
                continue
            if identity.rank == common.hypo_stacks[identity.suit_index] + 1 and \
                    not _visibly_touched(game, action, identity, order):
                return True
        chop = common.chop(hand)
        if chop is not None:
            identity = state.deck[chop].identity()
            if identity is not None and state.is_critical(identity):
                return True
    return False


def stalling_situation(
    game: Game,
    action: ClueAction,
    focus_result: FocusResult,
) -> tuple[Interp | None, frozenset[int]]:
    """Classify a clue as a stall and list who would agree it is one.

    Returns:
        ``(stall, thinks_stall)``: the stall tag (or None) and the
        players who see no better clue for the giver.
    """
    state = game.state
    clue = action.clue
    focus = focus_result.focus
    severity = _stall_severity(game, action.giver)
    newly = _newly_clued(game, action)

    stall = None
    if (severity >= 1 and clue.type == ClueType.RANK and clue.value == MAX_RANK
            and focus in newly and not focus_result.chop
            and not (game.level >= Level.BASIC_CM
                     and _in_5cm_position(game, action, focus_result))):
        stall = Interp.STALL_5
    elif severity >= 2 and not newly and not focus_result.positional:
        stall = Interp.STALL_TEMPO
    elif severity >= 2 and not newly:
        stall = Interp.STALL_BURN

    if stall is None:
        return None, frozenset()
    thinks = frozenset(
        p for p in range(state.num_players) if not _sees_better_clue(game, p, action)
    )
    return stall, thinks


def distribution_clue(game: Game, action: ClueAction, focus_result: FocusResult) -> Override | None:
    """Endgame rank clue on a card every useful copy of which is already clued."""
    state, common = game.state, game.common
    focus = focus_result.focus
    if not state.in_endgame() or action.clue.type != ClueType.RANK:
        return None
    if any(not state.deck[o].newly_clued for o in action.touched):
        return None

    useful = common.thoughts[focus].inferred.filter(lambda i: not state.is_basic_trash(i))
    if not useful:
        return None
    for identity in useful:
        dupe = any(
            player_index != action.target and o != focus
            and common.thoughts[o].touched
            and (state.deck[o].identity() or common.thoughts[o].identity(infer=True)) == identity
            for player_index, hand in enumerate(state.hands) for o in hand
        )
        if not dupe:
            return None
    logger.info("Distribution clue on card %d", focus)
    return Override(Interp.DISTRIBUTION, {
        focus: {"inferred": useful, "certain_finessed": True, "reset": False}})


def interpret_tcm(game: Game, action: ClueAction, focus_result: FocusResult) -> Override | None:
    """Trash chop move: trash clued in front of an untouched chop."""
    state, common = game.state, game.common
    chop = focus_result.chop_order
    if game.level < Level.BASIC_CM or state.in_endgame() or focus_result.chop:
        return None
    if chop is None or chop in action.touched:
        return None
    newly = _newly_clued(game, action)
    if focus_result.focus not in newly:
        return None
    if not all(
        all(state.is_basic_trash(i) for i in common.thoughts[o].possible) for o in newly
    ):
        return None

    updates = {}
    for order in newly:
        trash = common.thoughts[order].possible.filter(state.is_basic_trash)
        updates[order] = {"inferred": trash, "info_lock": trash, "trash": True}
    logger.info("Trash chop move on card %d", chop)
    return Override(Interp.CHOP_MOVE_TRASH, updates, (chop,))


def interpret_5cm(game: Game, action: ClueAction, focus_result: FocusResult) -> Override | None:
    """5's chop move: a 5 clued one slot in front of chop."""
    clue = action.clue
    if game.level < Level.BASIC_CM or game.state.in_endgame():
        return None
    if clue.type != ClueType.RANK or clue.value != MAX_RANK:
        return None
    if focus_result.focus not in _newly_clued(game, action):
        return None
    if not _in_5cm_position(game, action, focus_result):
        return None
    logger.info("5's chop move on card %d", focus_result.chop_order)
    return Override(Interp.CHOP_MOVE_5, {}, (focus_result.chop_order,))


def _finesse_position(game: Game, player_index: int) -> int | None:
    state = game.state
    return next((o for o in state.hands[player_index] if not state.deck[o].clued), None)


def interpret_trash_finesse(game: Game, action: ClueAction, focus_result: FocusResult) -> Override | None:
    """Trash clued while a matching card waits on someone's finesse position.

    The clue reveals the focus as trash or playable and every newly clued
    card is trash. The last player between the giver and the target whose
    finesse-position card the clue would touch blind-plays it (we do when
    nobody else can), and the unclued cards to the right of the oldest
    trash are chop moved.
    """
    state, common = game.state, game.common
    clue = action.clue
    if game.level < Level.TRASH_PUSH:
        return None
    newly = _newly_clued(game, action)
    if focus_result.focus not in newly:
        return None

    possible = common.thoughts[focus_result.focus].possible
    if clue.type == ClueType.RANK:
        promised = possible.filter(lambda i: i.rank == clue.value)
        if any(not state.is_basic_trash(i) and not state.is_playable(i) for i in promised):
            return None
    elif not all(state.is_basic_trash(i) for i in possible):
        return None
    for order in newly:
        identity = state.deck[order].identity()
        ids = [identity] if identity is not None else common.thoughts[order].possible
        if not all(state.is_basic_trash(i) for i in ids):
            return None

    hand = state.hands[action.target]
    oldest = max(hand.index(o) for o in newly)
    cm_orders = tuple(
        o for o in hand[oldest + 1:]
        if not state.deck[o].clued and not common.thoughts[o].chop_moved
    )
    if not cm_orders:
        return None

    us = state.our_player_index
    between = []
    player_index = state.next_player_index(action.giver)
    while player_index != action.target:
        between.append(player_index)
        player_index = state.next_player_index(player_index)

    finessed = None
    for player_index in between:
        if player_index == us:
            continue
        order = _finesse_position(game, player_index)
        identity = state.deck[order].identity() if order is not None else None
        if identity is not None and state.variant.card_touched(identity.suit_index, identity.rank, clue):
            finessed = order
    if finessed is None:
        if action.giver == us:
            logger.warning("Our trash finesse has nobody to play into it")
            return Override(Interp.MISTAKE)
        if us not in between:
            return None
        finessed = _finesse_position(game, us)
        if finessed is None:
            return None

    updates: dict[int, dict] = {}
    for order in newly:
        trash = common.thoughts[order].possible.filter(state.is_basic_trash)
        updates[order] = {"inferred": trash, "info_lock": trash, "trash": True}
    blind = common.thoughts[finessed].possible.filter(state.is_playable)
    updates[finessed] = {
        "inferred": blind, "info_lock": blind, "finessed": True,
        "finesse_index": game.current_action_index,
    }
    logger.info("Trash finesse onto card %d, chop moving %s", finessed, list(cm_orders))
    return Override(Interp.CHOP_MOVE_TRASH, updates, cm_orders)


def interpret_trash_push(game: Game, action: ClueAction, focus_result: FocusResult) -> Override | None:
    """Trash clued to the right of unclued cards pushes the next one to play."""
    state, common = game.state, game.common
    if game.level < Level.TRASH_PUSH:
        return None
    newly = _newly_clued(game, action)
    if not newly or focus_result.focus not in newly:
        return None
    if not all(
        all(state.is_basic_trash(i) for i in common.thoughts[o].possible) for o in newly
    ):
        return None

    hand = state.hands[action.target]
    oldest = max(hand.index(o) for o in newly)
    for order in hand[oldest + 1:]:
        if not common.thoughts[order].saved:
            return None
    pushed = next(
        (hand[i] for i in range(oldest - 1, -1, -1) if not common.thoughts[hand[i]].clued),
        None,
    )
    if pushed is None:
        return None

    updates: dict[int, dict] = {}
    for order in newly:
        trash = common.thoughts[order].possible.filter(state.is_basic_trash)
        updates[order] = {"inferred": trash, "info_lock": trash, "trash": True}

    additional: list[Identity] = []
    player_index = state.next_player_index(action.giver)
    while player_index != action.target:
        for order in state.hands[player_index]:
            identity = state.deck[order].identity()
            if identity is None:
                break
            if common.thoughts[order].clued and not state.is_playable(identity):
                continue
            if state.is_playable(identity) and identity.rank < MAX_RANK:
                additional.append(Identity(identity.suit_index, identity.rank + 1))
            break
        player_index = state.next_player_index(player_index)

    record = common.thoughts[pushed]
    inferred = record.possible.filter(lambda i: state.is_playable(i) or i in additional)
    actual = state.deck[pushed].identity()
    if actual is not None and actual not in inferred:
        logger.warning("Trash push onto card %d, which is not playable", pushed)
        return Override(Interp.MISTAKE)
    updates[pushed] = {"inferred": inferred, "info_lock": inferred, "trash_pushed": True}
    logger.info("Trash push onto card %d", pushed)
    return Override(Interp.TRASH_PUSH, updates)


def pink_trash_fix(game: Game, action: ClueAction, focus_result: FocusResult) -> Override | None:
    """Re-cluing known pink cards with a trash rank fixes them as trash."""
    state, common = game.state, game.common
    clue = action.clue
    if not state.variant.pinkish or clue.type != ClueType.RANK:
        return None
    if _newly_clued(game, action):
        return None
    pink_suits = [s for s, suit in enumerate(state.variant.suits) if is_pinkish(suit)]
    for order in action.touched:
        if not all(i.suit_index in pink_suits for i in common.thoughts[order].possible):
            return None
    if not all(state.is_basic_trash(Identity(s, clue.value)) for s in pink_suits):
        return None
    focus = focus_result.focus
    promised = common.thoughts[focus].possible.filter(lambda i: i.rank == clue.value)
    logger.info("Pink trash fix on card %d", focus)
    return Override(Interp.FIX, {focus: {"inferred": promised, "trash": True}})


_DETECTORS = (
    distribution_clue,
    interpret_tcm,
    interpret_5cm,
    interpret_trash_finesse,
    interpret_trash_push,
    pink_trash_fix,
)


def detect_override(
    game: Game,
    action: ClueAction,
    focus_result: FocusResult,
    stall: Interp | None,
    thinks_stall: frozenset[int],
) -> Override | None:
    """Evaluate the special conventions in priority order, first match wins."""
    state, common = game.state, game.common
    if stall is not None and len(thinks_stall) == state.num_players:
        focus = focus_result.focus
        updates = {}
        if state.variant.pinkish and action.clue.type == ClueType.RANK:
            value = action.clue.value
            updates[focus] = {"inferred": common.thoughts[focus].inferred.filter(
                lambda i: i.rank == value)}
        logger.info("%s stall from %s", stall.name, state.player_names[action.giver])
        return Override(stall, updates,
                        stalled_5=stall == Interp.STALL_5 and state.early_game)
    if stall is not None and thinks_stall and action.giver == state.our_player_index:
        logger.warning("Our stall would not be read as a stall by everyone")
        return Override(Interp.NONE)

    for detector in _DETECTORS:
        override = detector(game, action, focus_result)
        if override is not None:
            return override
    return None


def apply_override(game: Game, override: Override) -> Interp:
    common = game.common
    for order, changes in override.updates.items():
        common.update_thoughts(order, **changes)
    for order in override.chop_moves:
        common.update_thoughts(order, chop_moved=True)
    if override.stalled_5:
        game.stalled_5 = True
    return override.tag


# =============================================================================
# Post-Inference Rules
# =============================================================================

def _order_1s(game: Game, orders: list[int]) -> list[int]:
    """Play order of clued 1s: oldest first, a 1 first clued on chop last."""
    ones = list(reversed(orders))
    ones.sort(key=lambda o: game.common.thoughts[o].chop_when_first_clued)
    return ones


def _pink_fix_promise(game: Game, action: ClueAction, focus_result: FocusResult) -> None:
    """A rank fix on pink 1s promises the new rank on the first of them."""
    state, common = game.state, game.common
    clue = action.clue
    if not state.variant.pinkish or clue.type != ClueType.RANK or clue.value == 1:
        return

    def old_1(order: int) -> bool:
        clues = state.deck[order].clues
        return len(clues) > 1 and all(
            c.type == ClueType.RANK and c.value == 1 for c in clues[:-1])

    ones = _order_1s(game, [o for o in state.hands[action.target]
                            if o in action.touched and old_1(o)])
    if not ones:
        return
    order = ones[0]
    record = common.thoughts[order]
    if focus_result.chop and clue.value in (2, MAX_RANK):
        inferred = record.possible.subtract(record.inferred.filter(state.is_playable))
        logger.info("Pink fix on card %d", order)
    else:
        inferred = record.inferred.filter(
            lambda i: i.rank == clue.value and not state.is_playable(i))
        logger.info("Pink fix promise on card %d", order)
    if inferred:
        common.update_thoughts(order, inferred=inferred)


def _assume_pink_1s(game: Game, action: ClueAction) -> None:
    """Unknown clued 1s in pink variants are spread over the missing 1s."""
    state, common = game.state, game.common
    if not state.variant.pinkish or action.clue.type != ClueType.RANK or action.clue.value != 1:
        return

    def unknown_1(order: int) -> bool:
        card = state.deck[order]
        return (
            card.clued and len(common.thoughts[order].possible) > 1
            and all(c.type == ClueType.RANK and c.value == 1 for c in card.clues)
        )

    ones = _order_1s(game, [o for o in state.hands[action.target] if unknown_1(o)])
    missing = [
        Identity(s, 1) for s in range(state.num_suits)
        if not state.is_basic_trash(Identity(s, 1))
        and not any(
            state.deck[o].identity() == Identity(s, 1)
            for p, hand in enumerate(state.hands) if p != action.target for o in hand
        )
    ]
    for order in ones[:len(missing)]:
        narrowed = common.thoughts[order].inferred.intersect(missing)
        if narrowed:
            common.update_thoughts(order, inferred=narrowed)


def _tempo_clue_chop_move(
    game: Game,
    action: ClueAction,
    focus_result: FocusResult,
    old_common: Observer,
    stall: Interp | None,
) -> Interp | None:
    """A tempo clue on a card already known to be playable chop moves."""
    state, common = game.state, game.common
    if game.level < Level.TEMPO_CLUES or state.num_players <= 2:
        return None
    if _newly_clued(game, action) or focus_result.positional:
        return None

    def thinks_playable(observer: Observer, order: int) -> bool:
        inferred = observer.thoughts[order].inferred
        return bool(inferred) and all(state.is_playable(i) for i in inferred)

    now_playable = [o for o in action.touched if thinks_playable(common, o)]
    if not now_playable:
        return None
    if any(not thinks_playable(old_common, o) for o in now_playable):
        return None

    if stall is not None:
        return Interp.STALL_TEMPO
    chop = common.chop(state.hands[action.target])
    if chop is None:
        logger.warning("Tempo clue chop move with no chop")
        return Interp.NONE
    common.update_thoughts(chop, chop_moved=True)
    logger.info("Tempo clue chop move on card %d", chop)
    return Interp.CHOP_MOVE_TEMPO


def _speed_up(game: Game, focus: int) -> None:
    """Links the clue skipped past are no longer waited on."""
    for wc in game.common.waiting_connections:
        index = next((i for i, c in enumerate(wc.remaining) if c.order == focus), None)
        if index is None or index == 0:
            continue
        if all(c.hidden for c in wc.remaining[:index]):
            del wc.connections[wc.conn_index:wc.conn_index + index]


def _remove_chop_moves(game: Game, action: ClueAction) -> None:
    common = game.common
    for order in action.touched:
        if common.thoughts[order].chop_moved:
            common.update_thoughts(order, chop_moved=False, was_cm=True)


# =============================================================================
# Entry Point
# =============================================================================

def _finish(game: Game, action: ClueAction, interp: Interp | None) -> Game:
    state = game.state
    game.common.good_touch_elim(state)
    game.common.update_hypo_stacks(state)
    _remove_chop_moves(game, action)
    game.team_elim()
    if interp is not None:
        game.record_interpretation(interp)
    return game


def interpret_clue(game: Game, action: ClueAction) -> Game:
    """Interpret one clue and update the game's belief stores.

    Args:
        game: The game, with the clue recorded and its cards marked clued.
        action: The clue.

    Returns:
        The game itself, or a rebuilt game if the clue triggered a
        rewind.
    """
    state = game.state
    old_common = game.common.clone()

    if not action.touched:
        _apply_clue_basics(game, action, None)
        rewound = waiting_connections.update_on_clue(game, action, None)
        if rewound is not None:
            return rewound
        logger.info("Empty clue from %s", state.player_names[action.giver])
        return _finish(game, action, None)

    focus_result = determine_focus(state, game.common, action)
    focus = focus_result.focus
    game.common.update_thoughts(focus, focused=True)

    fix, rewound = apply_good_touch(game, action, old_common, focus)
    if rewound is not None:
        return rewound
    common = game.common

    if focus_result.chop and not action.no_recurse:
        common.update_thoughts(focus, chop_when_first_clued=True)
        if urgent_save(game, action, focus, old_common):
            game.mark_important("urgent save")

    if not common.thoughts[focus].inferred:
        record = common.update_thoughts(
            focus, inferred=common.thoughts[focus].possible, reset=True)
        identity = record.identity()
        if identity is not None and focus in state.our_hand and \
                common.dependent_connections(focus):
            rewound = game.rewind(
                state.deck[focus].drawn_index + 1,
                [IdentifyCorrection(focus, action.target, identity)],
            )
            if rewound is not None:
                return rewound

    rewound = waiting_connections.update_on_clue(game, action, focus)
    if rewound is not None:
        return rewound
    game.team_elim()

    if (game.level >= Level.FIX and fix) or action.mistake:
        interp = Interp.MISTAKE if action.mistake else Interp.FIX
        logger.info("Clue on card %d read as %s", focus, interp.name)
        if fix:
            _pink_fix_promise(game, action, focus_result)
        return _finish(game, action, interp)

    stall, thinks_stall = stalling_situation(game, action, focus_result)
    override = detect_override(game, action, focus_result, stall, thinks_stall)
    if override is not None:
        interp = apply_override(game, override)
        return _finish(game, action, interp)

    interp = interpret_play_or_save(game, action, focus_result)
    _assume_pink_1s(game, action)
    common.good_touch_elim(state)
    common.update_hypo_stacks(state)

    if focus_result.positional:
        interp = Interp.POSITIONAL
    else:
        tempo = _tempo_clue_chop_move(game, action, focus_result, old_common, stall)
        if tempo is not None:
            interp = tempo

    _speed_up(game, focus)
    return _finish(game, action, interp)
