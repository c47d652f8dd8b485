"""Hanabi variant definitions.

Defines the ``Variant`` dataclass describing which suits are in play and
how each suit reacts to colour and rank clues, plus a catalog of the
variants the engine understands. Variants are static game data: the
engine only ever asks them questions (is this card touched by that
clue, how many copies of this card exist, which colours can be clued)
and never mutates them.

Suit behaviour follows the hanabi.live rules:

- Rainbow-like suits are touched by every colour clue.
- White-like suits are touched by no colour clue.
- Pink-like suits are touched by every rank clue.
- Brown-like suits are touched by no rank clue.
- Omni suits are touched by everything, Null suits by nothing.
- Dark suits (Black, Gray, Dark Rainbow, ...) have one copy of each card.
"""

from __future__ import annotations

import dataclasses
import enum


# =============================================================================
# Enums
# =============================================================================

class ClueType(enum.Enum):
    """What kind of information a clue carries."""
    COLOUR = enum.auto()
    RANK = enum.auto()


@dataclasses.dataclass(frozen=True)
class Clue:
    """A colour or rank clue, without its target.

    Attributes:
        type: Whether this is a colour or a rank clue.
        value: Suit index for colour clues, rank (1-5) for rank clues.
    """
    type: ClueType
    value: int

    def describe(self, variant: Variant) -> str:
        """Human-readable description, e.g. ``"red"`` or ``"2"``."""
        if self.type == ClueType.COLOUR:
            return variant.suits[self.value].lower()
        return str(self.value)


# =============================================================================
# Suit Behaviour
# =============================================================================

MAX_RANK = 5

# Copies of each rank in a normal suit (ranks 1-5).
RANK_COUNTS = (3, 2, 2, 2, 1)

_DARK_SUITS = frozenset({
    "Black", "Gray", "Dark Rainbow", "Dark Pink", "Gray Pink",
    "Dark Brown", "Dark Omni", "Dark Null", "Cocoa Rainbow",
})
_ALL_COLOUR_SUITS = frozenset({
    "Rainbow", "Dark Rainbow", "Muddy Rainbow", "Cocoa Rainbow",
})
_NO_COLOUR_SUITS = frozenset({
    "White", "Gray", "Light Pink", "Gray Pink",
})
_ALL_RANK_SUITS = frozenset({
    "Pink", "Dark Pink", "Light Pink", "Gray Pink",
})
_NO_RANK_SUITS = frozenset({
    "Brown", "Dark Brown", "Muddy Rainbow", "Cocoa Rainbow",
})
_OMNI_SUITS = frozenset({"Omni", "Dark Omni"})
_NULL_SUITS = frozenset({"Null", "Dark Null"})

# Preferred one-letter abbreviations. Suits missing here (or colliding
# with an earlier suit of the same variant) fall back to the first
# unused letter of their name.
SUIT_ABBREVIATIONS: dict[str, str] = {
    "Red": "r",
    "Yellow": "y",
    "Green": "g",
    "Blue": "b",
    "Purple": "p",
    "Teal": "t",
    "Black": "k",
    "Rainbow": "m",
    "White": "w",
    "Pink": "i",
    "Brown": "n",
    "Omni": "o",
    "Null": "u",
    "Light Pink": "l",
    "Gray": "a",
    "Dark Rainbow": "d",
    "Muddy Rainbow": "m",
}


def is_pinkish(suit: str) -> bool:
    """Whether a suit is touched by every rank clue."""
    return suit in _ALL_RANK_SUITS


def is_dark(suit: str) -> bool:
    """Whether a suit has only one copy of each card."""
    return suit in _DARK_SUITS


def short_forms(suits: tuple[str, ...] | list[str]) -> list[str]:
    """Compute distinct one-letter abbreviations for a list of suits.

    Args:
        suits: Suit names in variant order.

    Returns:
        One lowercase abbreviation per suit, all distinct.
    """
    abbreviations: list[str] = []
    for suit in suits:
        preferred = SUIT_ABBREVIATIONS.get(suit, suit[0].lower())
        if preferred not in abbreviations:
            abbreviations.append(preferred)
            continue
        for char in suit.lower():
            if char.isalpha() and char not in abbreviations:
                abbreviations.append(char)
                break
        else:
            raise ValueError(f"Cannot abbreviate suit {suit!r} in {suits}")
    return abbreviations


# =============================================================================
# Variant
# =============================================================================

@dataclasses.dataclass(frozen=True)
class Variant:
    """Static definition of a Hanabi variant.

    Attributes:
        name: Display name, e.g. ``"No Variant"`` or ``"Pink (5 Suits)"``.
        suits: Suit names in suit-index order.
        critical_rank: If set, every card of this rank has a single copy
            (e.g. the "Critical Fours" variants).
    """
    name: str
    suits: tuple[str, ...]
    critical_rank: int | None = None

    @property
    def num_suits(self) -> int:
        return len(self.suits)

    @property
    def abbreviations(self) -> list[str]:
        return short_forms(self.suits)

    @property
    def pinkish(self) -> bool:
        """Whether any suit in this variant is touched by all rank clues."""
        return any(is_pinkish(s) for s in self.suits)

    def card_touched(self, suit_index: int, rank: int, clue: Clue) -> bool:
        """Whether a card of the given identity would be touched by a clue.

        Args:
            suit_index: Suit of the card.
            rank: Rank of the card (1-5).
            clue: The clue being given.

        Returns:
            True if the clue touches the card.
        """
        suit = self.suits[suit_index]
        if suit in _NULL_SUITS:
            return False
        if suit in _OMNI_SUITS:
            return True

        if clue.type == ClueType.COLOUR:
            if suit in _NO_COLOUR_SUITS:
                return False
            if suit in _ALL_COLOUR_SUITS:
                return True
            return suit_index == clue.value

        if suit in _NO_RANK_SUITS:
            return False
        if suit in _ALL_RANK_SUITS:
            return True
        return rank == clue.value

    def is_cluable(self, clue: Clue) -> bool:
        """Whether a clue can legally be given (e.g. white cannot be clued).

        Args:
            clue: The clue to check.

        Returns:
            False for colour clues naming a suit with no clue colour of
            its own, True otherwise.
        """
        if clue.type == ClueType.COLOUR:
            if not 0 <= clue.value < self.num_suits:
                return False
            suit = self.suits[clue.value]
            return not (
                suit in _NULL_SUITS or suit in _OMNI_SUITS
                or suit in _NO_COLOUR_SUITS or suit in _ALL_COLOUR_SUITS
            )
        return 1 <= clue.value <= MAX_RANK

    def card_count(self, suit_index: int, rank: int) -> int:
        """Total number of copies of a card identity in the deck."""
        if is_dark(self.suits[suit_index]):
            return 1
        if self.critical_rank == rank:
            return 1
        return RANK_COUNTS[rank - 1]

    @property
    def deck_size(self) -> int:
        return sum(
            self.card_count(s, r)
            for s in range(self.num_suits)
            for r in range(1, MAX_RANK + 1)
        )

    @property
    def max_score(self) -> int:
        return self.num_suits * MAX_RANK


# =============================================================================
# Variant Registry
# =============================================================================

_BASE_SUITS = ("Red", "Yellow", "Green", "Blue", "Purple")

VARIANTS: dict[str, Variant] = {}


def _register(variant: Variant) -> None:
    VARIANTS[variant.name] = variant


_register(Variant("No Variant", _BASE_SUITS))
_register(Variant("6 Suits", _BASE_SUITS + ("Teal",)))
_register(Variant("Black (6 Suits)", _BASE_SUITS + ("Black",)))
_register(Variant("Rainbow (5 Suits)", _BASE_SUITS[:4] + ("Rainbow",)))
_register(Variant("Rainbow (6 Suits)", _BASE_SUITS + ("Rainbow",)))
_register(Variant("White (5 Suits)", _BASE_SUITS[:4] + ("White",)))
_register(Variant("Pink (5 Suits)", _BASE_SUITS[:4] + ("Pink",)))
_register(Variant("Pink (6 Suits)", _BASE_SUITS + ("Pink",)))
_register(Variant("Brown (5 Suits)", _BASE_SUITS[:4] + ("Brown",)))
_register(Variant("Omni (5 Suits)", _BASE_SUITS[:4] + ("Omni",)))
_register(Variant("Null (5 Suits)", _BASE_SUITS[:4] + ("Null",)))
_register(Variant("Light Pink (5 Suits)", _BASE_SUITS[:4] + ("Light Pink",)))
_register(Variant("Muddy Rainbow (5 Suits)", _BASE_SUITS[:4] + ("Muddy Rainbow",)))
_register(Variant("Dark Rainbow (6 Suits)", _BASE_SUITS + ("Dark Rainbow",)))
_register(Variant("Gray (6 Suits)", _BASE_SUITS + ("Gray",)))
_register(Variant("Critical Fours (5 Suits)", _BASE_SUITS, critical_rank=4))


def get_variant(name: str) -> Variant:
    """Look up a variant by its name.

    Args:
        name: The variant name, e.g. ``"No Variant"``.

    Returns:
        The corresponding Variant.

    Raises:
        ValueError: If the name is not in the catalog.
    """
    variant = VARIANTS.get(name)
    if variant is None:
        raise ValueError(
            f"Unknown variant: {name!r}. "
            f"Known variants: {', '.join(sorted(VARIANTS))}"
        )
    return variant


def all_variants() -> list[Variant]:
    """Return all catalogued variants sorted by name."""
    return [VARIANTS[k] for k in sorted(VARIANTS)]
