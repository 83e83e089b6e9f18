from fletchling.models import PokemonKey
from fletchling.sorter import PokemonCountAndTotal, sort_pokemon_counts


def _entry(rank, pokemon_id, form_id, count):
    return PokemonCountAndTotal(rank, PokemonKey(pokemon_id, form_id), count, 100)


def test_sorted_by_count_descending():
    entries = [_entry(1, 1, 0, 3), _entry(2, 2, 0, 9), _entry(3, 3, 0, 5)]
    ordered = sort_pokemon_counts(entries)
    assert [e.count for e in ordered] == [9, 5, 3]


def test_ties_broken_by_dex_then_form():
    entries = [_entry(1, 5, 2, 4), _entry(2, 5, 1, 4), _entry(3, 2, 9, 4)]
    ordered = sort_pokemon_counts(entries)
    assert [e.pokemon_key for e in ordered] == [
        PokemonKey(2, 9),
        PokemonKey(5, 1),
        PokemonKey(5, 2),
    ]


def test_ranks_match_positions():
    entries = [_entry(1, 1, 0, 1), _entry(2, 2, 0, 2), _entry(3, 3, 0, 3), _entry(4, 4, 0, 4)]
    ordered = sort_pokemon_counts(entries)
    assert [e.rank for e in ordered] == [1, 2, 3, 4]
    assert ordered[0].pokemon_key == PokemonKey(4, 0)


def test_sort_keeps_all_entries():
    entries = [_entry(i + 1, i, 0, i % 3) for i in range(10)]
    ordered = sort_pokemon_counts(entries)
    assert sorted(e.pokemon_key.pokemon_id for e in ordered) == list(range(10))
    assert all(a.count >= b.count for a, b in zip(ordered, ordered[1:]))


def test_empty():
    assert sort_pokemon_counts([]) == []