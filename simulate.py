"""Simulation script for the Hanabi clue reasoner.

Demonstrates using ``Game.from_partial_state()`` to enter a mid-game
position, feeding it a short scripted sequence of actions and printing
how each clue is interpreted from Alice's perspective: a finesse on Bob,
the chain resolving when Bob blind-plays, and a 2 save on Cathy's chop.
Finishes by replaying the whole history from the setup.
"""

import logging

import hanabi_game
import reasoner
from variants import Clue, ClueType

_C = hanabi_game._Colors

RED, YELLOW, GREEN, BLUE, PURPLE = range(5)


def _print_clue(game: reasoner.Game, action: hanabi_game.ClueAction) -> None:
    state = game.state
    print(
        f"{_C.BOLD}{state.player_names[action.giver]} clues "
        f"{action.clue.describe(state.variant)} to "
        f"{state.player_names[action.target]}{_C.RESET}"
        f"  -> {game.last_move.name if game.last_move else '?'}"
    )


def main() -> None:
    """Three-player finesse from Alice's perspective.

    Alice (Player 0) cannot see her own cards. Bob holds r1 on his
    finesse position and Cathy holds r2 on slot 1:

        Alice  xx xx xx xx xx
        Bob    r1 g4 b3 y4 p2
        Cathy  r2 b4 y3 p4 g3

    Alice clues red to Cathy. The only way Cathy's red card can be
    playable is for Bob to blind-play r1 first, so Bob's finesse
    position is marked as finessed and a waiting connection is
    recorded. When Bob plays r1, the chain resolves and Cathy's card is
    known to be r2. Cathy then saves Bob's chop with a 2 clue.
    """
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Finesse walkthrough (Alice's perspective)")
    print("=" * 60)
    print()

    game = reasoner.Game.from_partial_state(
        hands=[
            ["xx", "xx", "xx", "xx", "xx"],
            ["r1", "g4", "b3", "y4", "p2"],
            ["r2", "b4", "y3", "p4", "g3"],
        ],
        starting=0,
    )
    print(game)
    print()

    # ── Alice: red to Cathy ─────────────────────────────────
    clue = hanabi_game.ClueAction(
        giver=0, target=2, touched=(14,), clue=Clue(ClueType.COLOUR, RED))
    game = game.handle_action(clue)
    _print_clue(game, clue)
    print(game.thoughts_str(1))
    print(game.thoughts_str(2))
    print()

    # ── Bob: blind-plays r1, draws b2 ───────────────────────
    game = game.handle_action(hanabi_game.PlayAction(1, 9, RED, 1))
    game = game.handle_action(hanabi_game.DrawAction(1, 15, BLUE, 2))
    print(f"{_C.BOLD}Bob plays r1{_C.RESET}")
    print(game.thoughts_str(2))
    print()

    # ── Cathy: 2 to Bob, saving his chop ────────────────────
    clue = hanabi_game.ClueAction(
        giver=2, target=1, touched=(15, 5), clue=Clue(ClueType.RANK, 2))
    game = game.handle_action(clue)
    _print_clue(game, clue)
    print(game.thoughts_str(1))
    print()

    print("=" * 60)
    print("Replaying history")
    print("=" * 60)
    replayed = game.replay(show_progress=True)
    print(replayed)
    print()
    for index, interp in sorted(replayed.interpretations.items()):
        print(f"  action {index:>2}: {interp.name}")


if __name__ == "__main__":
    main()
