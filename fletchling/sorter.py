"""Ranking of pokemon by how often they were seen."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fletchling.models import PokemonKey


@dataclass
class PokemonCountAndTotal:
    """How many of one pokemon were seen, out of a total."""

    rank: int
    pokemon_key: PokemonKey
    count: int = 0
    total: int = 0


def sort_pokemon_counts(entries: Iterable[PokemonCountAndTotal]) -> list[PokemonCountAndTotal]:
    """Sort by count descending, then dex and form ascending; ranks follow the order."""
    ordered = sorted(
        entries,
        key=lambda e: (-e.count, e.pokemon_key.pokemon_id, e.pokemon_key.form_id),
    )
    for rank, entry in enumerate(ordered, start=1):
        entry.rank = rank
    return ordered