"""Waiting-connection tracker.

A waiting connection is a hypothesis committed by an earlier clue whose
blind plays and prompts have not all happened yet. Each later action is
checked against every pending chain: plays advance or invalidate them,
discards invalidate them, and clues can show that a chain was never
real. A chain proven false on our own hand asks the game to rewind to
the point where the misreading began.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hanabi_game import (
    ClueAction,
    Connection,
    ConnectionType,
    Correction,
    DiscardAction,
    Identity,
    IdentifyCorrection,
    IgnoreCorrection,
    PlayAction,
    WaitingConnection,
    WaitingStatus,
)

if TYPE_CHECKING:
    from reasoner import Game

logger = logging.getLogger(__name__)


def find_impossible_conn(game: Game, connections: list[Connection]) -> Connection | None:
    """The first link whose card can no longer be what the chain needs."""
    state, common = game.state, game.common
    for conn in connections:
        if state.holder_of(conn.order) is None or conn.bluff:
            continue
        record = common.thoughts[conn.order]
        if not record.possible.intersect(conn.identities):
            return conn
        actual = state.deck[conn.order].identity()
        if actual is not None and actual not in conn.identities:
            return conn
    return None


def _stomped_index(wc: WaitingConnection, identity: Identity, focus: int, giver: int) -> int | None:
    """Index of a remaining link the new clue touches a copy of directly."""
    for index, conn in enumerate(wc.remaining):
        if conn.order == focus:
            continue
        if conn.hidden and conn.reacting == giver:
            continue
        if len(conn.identities) == 1 and conn.identities.has(identity):
            return wc.conn_index + index
    return None


def _drop(game: Game, wc: WaitingConnection) -> None:
    game.common.waiting_connections = [
        w for w in game.common.waiting_connections if w is not wc
    ]


def remove_finesse(game: Game, wc: WaitingConnection) -> None:
    """Undo the beliefs a discarded waiting connection introduced.

    Finessed cards that no other chain still needs lose their finesse and
    fall back to their locked or possible identities. The chain's
    inference is removed from the focus if other readings remain.
    """
    state, common = game.state, game.common
    others = [w for w in common.waiting_connections if w is not wc]

    for conn in wc.remaining:
        if conn.type != ConnectionType.FINESSE or state.holder_of(conn.order) is None:
            continue
        if any(c.order == conn.order for w in others for c in w.remaining):
            continue
        record = common.thoughts[conn.order]
        if not record.finessed:
            continue
        inferred = record.info_lock if record.info_lock is not None else record.possible
        common.update_thoughts(conn.order, finessed=False, hidden=False, inferred=inferred)
        logger.info("Card %d is no longer finessed", conn.order)

    if state.holder_of(wc.focus) is None:
        return
    if any(w.focus == wc.focus and w.inference == wc.inference for w in others):
        return
    focus = common.thoughts[wc.focus]
    if len(focus.inferred) > 1 and focus.inferred.has(wc.inference):
        common.update_thoughts(wc.focus, inferred=focus.inferred.subtract(wc.inference))


def _invalidate(game: Game, wc: WaitingConnection) -> None:
    wc.status = WaitingStatus.INVALIDATED
    remove_finesse(game, wc)
    _drop(game, wc)


def update_on_clue(game: Game, action: ClueAction, focus: int | None) -> Game | None:
    """Re-check every pending chain after a clue.

    Chains are skipped when the clue was given by their target or
    created by this very clue. A chain whose link the clue touches a
    copy of (a stomp) is dropped if symmetric and rewound with an ignore
    correction if real. A chain with an impossible link, or whose focus
    can no longer be the inference, is dropped; if the contradiction
    identifies a card in our own hand, the game is rewound to when that
    card was drawn. Removals are applied before rewinds.

    Returns:
        The rebuilt game if a rewind succeeded, else None.
    """
    state, common = game.state, game.common
    us = state.our_player_index
    focus_id = state.deck[focus].identity() if focus is not None else None

    to_remove: list[WaitingConnection] = []
    to_rewind: list[tuple[WaitingConnection, int, list[Correction]]] = []
    for wc in common.waiting_connections:
        if wc.target == action.giver or wc.action_index == game.current_action_index:
            continue

        if focus_id is not None:
            stomped = _stomped_index(wc, focus_id, focus, action.giver)
            if stomped is not None:
                logger.warning(
                    "Clue on card %d stomps on %s", focus, wc.describe(state.variant))
                if wc.symmetric:
                    to_remove.append(wc)
                else:
                    wc.status = WaitingStatus.REWIND_TRIGGERED
                    to_rewind.append((wc, wc.action_index, [
                        IgnoreCorrection(wc.connections[stomped].order, wc.inference)]))
                continue

        impossible = find_impossible_conn(game, wc.remaining)
        if impossible is not None:
            logger.warning("Card %d can no longer connect in %s",
                           impossible.order, wc.describe(state.variant))
        elif not common.thoughts[wc.focus].possible.has(wc.inference):
            logger.warning("Focus %d can no longer be %s",
                           wc.focus, wc.inference.short(state.variant))
        else:
            continue

        order = impossible.order if impossible is not None else wc.focus
        record = common.thoughts[order]
        identity = record.identity()
        if identity is not None and not record.rewinded and wc.target == us \
                and order in state.our_hand:
            wc.status = WaitingStatus.REWIND_TRIGGERED
            to_rewind.append((wc, state.deck[order].drawn_index + 1, [
                IdentifyCorrection(order, us, identity)]))
        else:
            to_remove.append(wc)

    for wc in to_remove:
        _invalidate(game, wc)
    for wc, action_index, corrections in to_rewind:
        rewound = game.rewind(action_index, corrections)
        if rewound is not None:
            return rewound
        logger.warning("Rewind failed, dropping %s", wc.describe(state.variant))
        _invalidate(game, wc)
    return None


def _complete(game: Game, wc: WaitingConnection) -> None:
    common = game.common
    _drop(game, wc)
    if wc.symmetric or game.state.holder_of(wc.focus) is None:
        return
    pending = {
        w.inference for w in common.waiting_connections if w.focus == wc.focus
    }
    record = common.thoughts[wc.focus]
    narrowed = record.inferred.intersect(pending | {wc.inference})
    if narrowed:
        common.update_thoughts(wc.focus, inferred=narrowed)
    logger.info("Chain to %s resolved on card %d",
                wc.inference.short(game.state.variant), wc.focus)


def update_on_play(game: Game, action: PlayAction) -> None:
    """Advance, shorten or invalidate chains after a play."""
    identity = Identity(action.suit_index, action.rank)
    for wc in list(game.common.waiting_connections):
        if action.order == wc.focus:
            _drop(game, wc)
            continue
        index = next(
            (i for i, c in enumerate(wc.remaining) if c.order == action.order), None)
        if index is None:
            continue

        conn = wc.remaining[index]
        if conn.bluff or conn.identities.has(identity):
            if conn.bluff:
                logger.info("Bluff on card %d resolved", conn.order)
            if index == 0:
                wc.conn_index += 1
            else:
                del wc.connections[wc.conn_index + index]
            wc.status = WaitingStatus.ADVANCED
            if not wc.remaining:
                _complete(game, wc)
        else:
            logger.warning("Card %d played as %s, chain %s is broken", action.order,
                           identity.short(game.state.variant), wc.describe(game.state.variant))
            _invalidate(game, wc)


def update_on_discard(game: Game, action: DiscardAction) -> None:
    """A discarded link card or focus ends the chain."""
    for wc in list(game.common.waiting_connections):
        if action.order == wc.focus:
            _drop(game, wc)
        elif any(c.order == action.order for c in wc.remaining):
            logger.warning("Card %d discarded, chain %s is broken",
                           action.order, wc.describe(game.state.variant))
            _invalidate(game, wc)
