from collections import Counter

from partycards.services.rooms.deck import (
    CARD_MULTIPLICITY, CARD_TYPES, card_type, deck_length, generate_deck,
    progress_percent, seeded_random,
)


def test_same_seed_gives_identical_deck():
    assert generate_deck(1234) == generate_deck(1234)
    assert generate_deck(1_700_000_000_123) == generate_deck(1_700_000_000_123)


def test_different_seeds_give_different_orders():
    seeds = [1, 2, 3, 42, 1_700_000_000_000, 1_700_000_000_001]
    decks = {tuple(generate_deck(s)) for s in seeds}
    assert len(decks) == len(seeds)


def test_deck_composition_is_fixed_for_any_seed():
    ids = [c['id'] for c in CARD_TYPES]
    for seed in range(0, 500, 7):
        deck = generate_deck(seed)
        assert len(deck) == CARD_MULTIPLICITY * len(CARD_TYPES) == 25
        counts = Counter(deck)
        assert set(counts) == set(ids)
        assert all(n == CARD_MULTIPLICITY for n in counts.values())


def test_generator_is_self_contained_lcg():
    rng = seeded_random(0)
    first = rng()
    assert first == 1013904223 / 2 ** 32
    second = rng()
    assert second == ((1664525 * 1013904223 + 1013904223) % 2 ** 32) / 2 ** 32


def test_generator_stays_in_unit_interval():
    rng = seeded_random(987654321)
    values = [rng() for _ in range(1000)]
    assert all(0.0 <= v < 1.0 for v in values)


def test_negative_and_huge_seeds_are_reduced_not_rejected():
    assert len(generate_deck(-5)) == 25
    assert generate_deck(2 ** 40 + 9) == generate_deck(9)


def test_empty_catalogue_or_multiplicity_yields_empty_deck():
    assert generate_deck(7, multiplicity=0) == []
    assert generate_deck(7, catalogue=[]) == []
    assert deck_length(multiplicity=0) == 0


def test_progress_percent_treats_empty_deck_as_complete():
    assert progress_percent(0, 0) == 100.0
    assert progress_percent(5, 25) == 20.0
    assert progress_percent(25, 25) == 100.0


def test_card_type_lookup():
    assert card_type('kick-it')['name'] == 'Kick It'
    assert card_type('nope') is None
