"""Unit tests for the waiting-connection tracker."""

import unittest

import reasoner
import waiting_connections
from hanabi_game import (
    ClueAction,
    Connection,
    ConnectionType,
    DiscardAction,
    Identity,
    IdentitySet,
    PlayAction,
    WaitingConnection,
    WaitingStatus,
)
from variants import Clue, ClueType

RED, YELLOW, GREEN, BLUE, PURPLE = range(5)


def _ids(*identities: Identity) -> IdentitySet:
    return IdentitySet.from_identities(5, identities)


def _finessed_game() -> reasoner.Game:
    """Alice has clued red to Cathy's r2, finessing Bob's r1."""
    game = reasoner.Game.from_partial_state(
        hands=[
            ["xx", "xx", "xx", "xx", "xx"],
            ["r1", "g4", "b3", "y4", "p2"],
            ["r2", "b4", "y3", "p4", "g3"],
        ],
    )
    return game.handle_action(ClueAction(0, 2, (14,), Clue(ClueType.COLOUR, RED)))


def _manual_wc(links: list[Connection], focus: int = 14) -> WaitingConnection:
    return WaitingConnection(
        connections=links, conn_index=0, focus=focus,
        inference=Identity(RED, 2), giver=0, target=2, turn=0, action_index=0,
    )


class TestFindImpossibleConn(unittest.TestCase):
    """Test detection of links that can no longer connect."""

    def test_visible_mismatch(self) -> None:
        game = _finessed_game()
        wrong = Connection(ConnectionType.FINESSE, 1, 8, _ids(Identity(RED, 1)))
        self.assertEqual(waiting_connections.find_impossible_conn(game, [wrong]), wrong)

    def test_consistent_link(self) -> None:
        game = _finessed_game()
        link = game.common.waiting_connections[0].connections[0]
        self.assertIsNone(waiting_connections.find_impossible_conn(game, [link]))

    def test_bluff_links_are_skipped(self) -> None:
        game = _finessed_game()
        bluff = Connection(ConnectionType.FINESSE, 1, 8, _ids(Identity(RED, 1)), bluff=True)
        self.assertIsNone(waiting_connections.find_impossible_conn(game, [bluff]))


class TestUpdateOnPlay(unittest.TestCase):
    """Test chains advancing on plays."""

    def test_blind_play_resolves_chain(self) -> None:
        game = _finessed_game()
        wc = game.common.waiting_connections[0]
        game = game.handle_action(PlayAction(1, 9, RED, 1))
        self.assertEqual(game.common.waiting_connections, [])
        self.assertEqual(wc.status, WaitingStatus.ADVANCED)
        self.assertEqual(game.common.thoughts[14].inferred, _ids(Identity(RED, 2)))

    def test_unrelated_play_keeps_chain(self) -> None:
        game = _finessed_game()
        game = game.handle_action(PlayAction(1, 5, PURPLE, 2))
        self.assertEqual(len(game.common.waiting_connections), 1)

    def test_wrong_identity_breaks_chain(self) -> None:
        game = _finessed_game()
        wc = game.common.waiting_connections[0]
        waiting_connections.update_on_play(game, PlayAction(1, 9, YELLOW, 1))
        self.assertEqual(wc.status, WaitingStatus.INVALIDATED)
        self.assertEqual(game.common.waiting_connections, [])

    def test_later_link_played_early(self) -> None:
        game = _finessed_game()
        first = Connection(ConnectionType.FINESSE, 1, 9, _ids(Identity(RED, 1)))
        second = Connection(ConnectionType.FINESSE, 1, 8, _ids(Identity(RED, 2)))
        wc = _manual_wc([first, second])
        wc.inference = Identity(RED, 3)
        game.common.waiting_connections = [wc]
        waiting_connections.update_on_play(game, PlayAction(1, 8, RED, 2))
        self.assertEqual(wc.connections, [first])
        self.assertEqual(wc.conn_index, 0)


class TestUpdateOnDiscard(unittest.TestCase):
    """Test chains broken by discards."""

    def test_discarded_link_breaks_chain(self) -> None:
        game = _finessed_game()
        wc = game.common.waiting_connections[0]
        game = game.handle_action(DiscardAction(1, 9, RED, 1))
        self.assertEqual(wc.status, WaitingStatus.INVALIDATED)
        self.assertEqual(game.common.waiting_connections, [])
        self.assertEqual(game.common.thoughts[14].inferred, _ids(Identity(RED, 1)))


class TestRemoveFinesse(unittest.TestCase):
    """Test undoing a discarded chain's beliefs."""

    def test_unfinesses_card(self) -> None:
        game = _finessed_game()
        wc = game.common.waiting_connections[0]
        waiting_connections.remove_finesse(game, wc)
        record = game.common.thoughts[9]
        self.assertFalse(record.finessed)
        self.assertEqual(record.inferred, record.possible)

    def test_shared_link_stays_finessed(self) -> None:
        game = _finessed_game()
        wc = game.common.waiting_connections[0]
        other = wc.copy()
        other.inference = Identity(RED, 3)
        game.common.waiting_connections.append(other)
        waiting_connections.remove_finesse(game, wc)
        self.assertTrue(game.common.thoughts[9].finessed)


class TestUpdateOnClue(unittest.TestCase):
    """Test chains re-checked after clues."""

    def test_chain_created_by_clue_is_skipped(self) -> None:
        game = _finessed_game()
        game.current_action_index = 0
        action = ClueAction(0, 2, (14,), Clue(ClueType.COLOUR, RED))
        self.assertIsNone(waiting_connections.update_on_clue(game, action, 14))
        self.assertEqual(len(game.common.waiting_connections), 1)

    def test_stomp_drops_symmetric_chain(self) -> None:
        game = reasoner.Game.from_partial_state(
            hands=[
                ["xx", "xx", "xx", "xx", "xx"],
                ["r1", "g4", "b3", "y4", "p2"],
                ["r2", "b4", "y3", "p4", "b3"],
            ],
        )
        link = Connection(ConnectionType.FINESSE, 1, 7, _ids(Identity(BLUE, 3)))
        wc = _manual_wc([link], focus=13)
        wc.inference = Identity(BLUE, 4)
        wc.symmetric = True
        game.common.waiting_connections = [wc]
        game.current_action_index = 1
        # Cathy's b3 is clued directly, so Bob's b3 no longer needs to play.
        action = ClueAction(0, 2, (10,), Clue(ClueType.COLOUR, BLUE))
        self.assertIsNone(waiting_connections.update_on_clue(game, action, 10))
        self.assertEqual(wc.status, WaitingStatus.INVALIDATED)
        self.assertEqual(game.common.waiting_connections, [])

    def test_focus_contradiction_drops_chain(self) -> None:
        game = _finessed_game()
        wc = game.common.waiting_connections[0]
        game.current_action_index = 1
        game.common.update_thoughts(
            14, possible=game.common.thoughts[14].possible.subtract(Identity(RED, 2)))
        action = ClueAction(1, 0, (4,), Clue(ClueType.RANK, 3))
        self.assertIsNone(waiting_connections.update_on_clue(game, action, 4))
        self.assertEqual(wc.status, WaitingStatus.INVALIDATED)
        self.assertEqual(game.common.waiting_connections, [])

    def _wrong_link_game(self) -> tuple[reasoner.Game, WaitingConnection]:
        game = reasoner.Game.from_partial_state(
            hands=[
                ["xx", "xx", "xx", "xx", "xx"],
                ["r1", "g4", "b3", "y4", "p2"],
                ["r2", "b4", "y3", "p4", "g3"],
            ],
        )
        # Bob's g4 can never be the r1 this chain waits on.
        wc = _manual_wc([Connection(ConnectionType.FINESSE, 1, 8, _ids(Identity(RED, 1)))])
        wc.action_index = -1
        game.common.waiting_connections = [wc]
        return game, wc

    def test_target_giving_a_clue_keeps_own_chain(self) -> None:
        game, wc = self._wrong_link_game()
        game = game.handle_action(ClueAction(2, 1, (9,), Clue(ClueType.COLOUR, RED)))
        self.assertIn(wc, game.common.waiting_connections)
        self.assertEqual(wc.status, WaitingStatus.PENDING)

    def test_other_giver_checks_chain(self) -> None:
        game, wc = self._wrong_link_game()
        game = game.handle_action(ClueAction(1, 0, (4,), Clue(ClueType.RANK, 1)))
        self.assertNotIn(wc, game.common.waiting_connections)
        self.assertEqual(wc.status, WaitingStatus.INVALIDATED)


if __name__ == "__main__":
    unittest.main()
