"""Unit tests for the reasoner game object."""

import unittest

import reasoner
from hanabi_game import (
    ClueAction,
    DiscardAction,
    DrawAction,
    IdentifyCorrection,
    Identity,
    IdentitySet,
    IgnoreCorrection,
    Interp,
    PlayAction,
)
from variants import Clue, ClueType

RED, YELLOW, GREEN, BLUE, PURPLE = range(5)

ALICE = ["xx", "xx", "xx", "xx", "xx"]
BOB = ["r1", "g4", "b3", "y4", "p2"]
CATHY = ["r2", "b4", "y3", "p4", "g3"]


def _ids(*identities: Identity) -> IdentitySet:
    return IdentitySet.from_identities(5, identities)


def _three_player(**kwargs) -> reasoner.Game:
    return reasoner.Game.from_partial_state(hands=[ALICE, BOB, CATHY], **kwargs)


class TestFromPartialState(unittest.TestCase):
    """Test creating a game from a mid-game position."""

    def test_orders_newest_first(self) -> None:
        game = _three_player()
        self.assertEqual(game.state.hands[0], [4, 3, 2, 1, 0])
        self.assertEqual(game.state.hands[1], [9, 8, 7, 6, 5])
        self.assertEqual(game.state.hands[2], [14, 13, 12, 11, 10])

    def test_visible_cards(self) -> None:
        game = _three_player()
        self.assertEqual(game.state.deck[9].identity(), Identity(RED, 1))
        self.assertIsNone(game.state.deck[4].identity())

    def test_cards_left(self) -> None:
        game = _three_player()
        self.assertEqual(game.state.cards_left, 35)

    def test_cards_left_with_stacks_and_discards(self) -> None:
        game = _three_player(play_stacks=[2, 0, 0, 1, 0], discarded=["y1", "p1"])
        self.assertEqual(game.state.cards_left, 30)
        self.assertFalse(game.state.early_game)
        self.assertEqual(game.state.discard_counts[Identity(YELLOW, 1)], 1)

    def test_defaults(self) -> None:
        game = _three_player()
        self.assertEqual(game.state.clue_tokens, 8)
        self.assertEqual(game.state.player_names, ["Alice", "Bob", "Cathy"])
        self.assertTrue(game.state.early_game)
        self.assertEqual(game.actions, [])
        self.assertIsNone(game.last_move)

    def test_visible_card_eliminated_privately(self) -> None:
        game = reasoner.Game.from_partial_state(
            hands=[ALICE, ["r5", "g4", "b3", "y4", "p2"], CATHY])
        self.assertIn(Identity(RED, 5), game.common.thoughts[4].possible)
        self.assertNotIn(Identity(RED, 5), game.me.thoughts[4].possible)
        self.assertIn(Identity(PURPLE, 2), game.me.thoughts[4].possible)

    def test_too_few_players(self) -> None:
        with self.assertRaises(ValueError):
            reasoner.Game.from_partial_state(hands=[ALICE])

    def test_wrong_hand_size(self) -> None:
        with self.assertRaises(ValueError):
            reasoner.Game.from_partial_state(hands=[ALICE, BOB[:4], CATHY])

    def test_bad_card_notation(self) -> None:
        with self.assertRaises(ValueError):
            reasoner.Game.from_partial_state(hands=[ALICE, ["z1"] + BOB[1:], CATHY])

    def test_bad_rank(self) -> None:
        with self.assertRaises(ValueError):
            reasoner.Game.from_partial_state(hands=[ALICE, ["r7"] + BOB[1:], CATHY])

    def test_bad_play_stacks(self) -> None:
        with self.assertRaises(ValueError):
            _three_player(play_stacks=[0, 0, 0])
        with self.assertRaises(ValueError):
            _three_player(play_stacks=[6, 0, 0, 0, 0])

    def test_unknown_discard(self) -> None:
        with self.assertRaises(ValueError):
            _three_player(discarded=["xx"])

    def test_bad_tokens(self) -> None:
        with self.assertRaises(ValueError):
            _three_player(clue_tokens=9)
        with self.assertRaises(ValueError):
            _three_player(strikes=3)

    def test_bad_our_index(self) -> None:
        with self.assertRaises(ValueError):
            _three_player(our_player_index=3)

    def test_unknown_variant(self) -> None:
        with self.assertRaises(ValueError):
            _three_player(variant="Nonexistent")

    def test_variant_suits(self) -> None:
        game = reasoner.Game.from_partial_state(
            hands=[ALICE, ["k1", "g4", "b3", "y4", "p2"], CATHY],
            variant="Black (6 Suits)",
        )
        self.assertEqual(game.state.num_suits, 6)
        self.assertEqual(game.state.deck[9].identity(), Identity(5, 1))


class TestClues(unittest.TestCase):
    """Test clue bookkeeping."""

    def test_clue_spends_token_and_ends_turn(self) -> None:
        game = _three_player()
        game = game.handle_action(ClueAction(0, 1, (9,), Clue(ClueType.RANK, 1)))
        self.assertEqual(game.state.clue_tokens, 7)
        self.assertEqual(game.state.turn_count, 1)
        self.assertEqual(game.state.current_player_index, 1)
        self.assertTrue(game.state.deck[9].clued)
        self.assertFalse(game.state.deck[9].newly_clued)
        self.assertIn(0, game.interpretations)

    def test_cannot_clue_self(self) -> None:
        game = _three_player()
        with self.assertRaises(ValueError):
            game.handle_action(ClueAction(1, 1, (5,), Clue(ClueType.RANK, 2)))

    def test_touched_card_must_be_in_hand(self) -> None:
        game = _three_player()
        with self.assertRaises(ValueError):
            game.handle_action(ClueAction(0, 1, (14,), Clue(ClueType.COLOUR, RED)))

    def test_no_clue_tokens(self) -> None:
        game = _three_player(clue_tokens=0)
        with self.assertRaises(ValueError):
            game.handle_action(ClueAction(0, 1, (5,), Clue(ClueType.RANK, 2)))

    def test_invalid_player(self) -> None:
        game = _three_player()
        with self.assertRaises(ValueError):
            game.handle_action(ClueAction(0, 4, (5,), Clue(ClueType.RANK, 2)))


class TestPlaysAndDiscards(unittest.TestCase):
    """Test plays, misplays, discards and draws."""

    def test_play_advances_stack(self) -> None:
        game = _three_player()
        game = game.handle_action(PlayAction(1, 9, RED, 1))
        self.assertEqual(game.state.play_stacks[RED], 1)
        self.assertNotIn(9, game.state.hands[1])
        self.assertEqual(game.common.thoughts[9].inferred, _ids(Identity(RED, 1)))

    def test_five_returns_token(self) -> None:
        game = reasoner.Game.from_partial_state(
            hands=[ALICE, ["r5", "g4", "b3", "y4", "p2"], CATHY],
            play_stacks=[4, 0, 0, 0, 0],
            clue_tokens=5,
            starting=1,
        )
        game = game.handle_action(PlayAction(1, 9, RED, 5))
        self.assertEqual(game.state.play_stacks[RED], 5)
        self.assertEqual(game.state.clue_tokens, 6)

    def test_misplay_strikes(self) -> None:
        game = _three_player(starting=1)
        game = game.handle_action(PlayAction(1, 5, PURPLE, 2))
        self.assertEqual(game.state.strikes, 1)
        self.assertEqual(game.state.play_stacks[PURPLE], 0)
        self.assertEqual(game.state.discard_counts[Identity(PURPLE, 2)], 1)

    def test_play_must_come_from_hand(self) -> None:
        game = _three_player(starting=1)
        with self.assertRaises(ValueError):
            game.handle_action(PlayAction(1, 14, RED, 2))

    def test_discard_regains_token(self) -> None:
        game = _three_player(clue_tokens=6, starting=1)
        game = game.handle_action(DiscardAction(1, 5, PURPLE, 2))
        self.assertEqual(game.state.clue_tokens, 7)
        self.assertFalse(game.state.early_game)

    def test_failed_discard_strikes(self) -> None:
        game = _three_player(clue_tokens=6, starting=1)
        game = game.handle_action(DiscardAction(1, 5, PURPLE, 2, failed=True))
        self.assertEqual(game.state.clue_tokens, 6)
        self.assertEqual(game.state.strikes, 1)

    def test_draw(self) -> None:
        game = _three_player(starting=1)
        game = game.handle_action(PlayAction(1, 9, RED, 1))
        game = game.handle_action(DrawAction(1, 15, BLUE, 2))
        self.assertEqual(game.state.hands[1][0], 15)
        self.assertEqual(game.state.cards_left, 34)
        self.assertEqual(game.state.deck[15].drawn_index, 1)
        self.assertEqual(len(game.common.thoughts), 16)

    def test_draw_order_checked(self) -> None:
        game = _three_player(starting=1)
        game = game.handle_action(PlayAction(1, 9, RED, 1))
        with self.assertRaises(ValueError):
            game.handle_action(DrawAction(1, 17, BLUE, 2))


class TestFinesseFlow(unittest.TestCase):
    """Test a finesse committed and then resolved by a blind play."""

    def setUp(self) -> None:
        game = _three_player()
        self.game = game.handle_action(ClueAction(0, 2, (14,), Clue(ClueType.COLOUR, RED)))

    def test_finesse_committed(self) -> None:
        self.assertEqual(self.game.last_move, Interp.PLAY)
        self.assertTrue(self.game.common.thoughts[9].finessed)
        self.assertEqual(len(self.game.common.waiting_connections), 1)

    def test_blind_play_resolves(self) -> None:
        game = self.game.handle_action(PlayAction(1, 9, RED, 1))
        game = game.handle_action(DrawAction(1, 15, BLUE, 2))
        self.assertEqual(game.common.thoughts[14].inferred, _ids(Identity(RED, 2)))
        self.assertEqual(game.common.waiting_connections, [])

    def test_replay_reproduces_game(self) -> None:
        game = self.game.handle_action(PlayAction(1, 9, RED, 1))
        game = game.handle_action(DrawAction(1, 15, BLUE, 2))
        replayed = game.replay()
        self.assertIsNot(replayed, game)
        self.assertEqual(replayed.interpretations, game.interpretations)
        self.assertEqual(replayed.state.play_stacks, game.state.play_stacks)
        self.assertEqual(len(replayed.actions), 3)
        self.assertEqual(replayed.common.thoughts[14].inferred,
                         game.common.thoughts[14].inferred)

    def test_str_lists_waiting_connections(self) -> None:
        self.assertIn("Waiting on:", str(self.game))
        self.assertIn("Bob", self.game.thoughts_str(1))


class TestRewind(unittest.TestCase):
    """Test rebuilding the game when a finesse on us proves false."""

    def setUp(self) -> None:
        # Cathy clues red to Alice. From common knowledge this could be a
        # finesse on Bob's r1 onto r2, or a direct r1.
        game = _three_player(starting=2)
        self.before = game.handle_action(ClueAction(2, 0, (4,), Clue(ClueType.COLOUR, RED)))
        self.assertEqual(len(self.before.common.waiting_connections), 1)
        self.assertTrue(self.before.common.thoughts[9].finessed)
        # Bob then clues 1, so Alice's red card was r1 all along.
        self.after = self.before.handle_action(
            ClueAction(1, 0, (4,), Clue(ClueType.RANK, 1)))

    def test_rebuilt_game_returned(self) -> None:
        self.assertIsNot(self.after, self.before)
        self.assertEqual(len(self.after.actions), 2)
        self.assertEqual(set(self.after.interpretations), {0, 1})

    def test_finesse_undone(self) -> None:
        self.assertEqual(self.after.common.waiting_connections, [])
        self.assertFalse(self.after.common.thoughts[9].finessed)

    def test_card_identified(self) -> None:
        record = self.after.common.thoughts[4]
        self.assertEqual(record.inferred, _ids(Identity(RED, 1)))
        self.assertTrue(record.rewinded)

    def test_same_rewind_refused(self) -> None:
        correction = IdentifyCorrection(4, 0, Identity(RED, 1))
        self.assertIsNone(self.after.rewind(0, [correction]))

    def test_rewind_depth_limited(self) -> None:
        game = _three_player()
        game.rewind_depth = reasoner.MAX_REWIND_DEPTH
        self.assertIsNone(game.rewind(0, [IgnoreCorrection(9)]))

    def test_rewind_out_of_range(self) -> None:
        game = _three_player()
        with self.assertRaises(IndexError):
            game.rewind(3, [IgnoreCorrection(9)])


class TestLockedDiscard(unittest.TestCase):
    """Test the locked discard query on the game object."""

    def test_defaults_to_our_hand(self) -> None:
        game = _three_player()
        self.assertIn(game.locked_discard(), game.state.hands[0])

    def test_other_player(self) -> None:
        game = _three_player()
        self.assertIn(game.locked_discard(1), game.state.hands[1])


if __name__ == "__main__":
    unittest.main()
