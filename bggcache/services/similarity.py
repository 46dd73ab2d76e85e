"""
Game similarity scoring over categories and mechanics.
"""

from bggcache.datasource.bgg.types import GameRecord

CATEGORY_WEIGHT = 0.6
MECHANIC_WEIGHT = 0.4


def jaccard(a: list[str], b: list[str]) -> float:
    """Jaccard index of two tag lists; 0.0 when either is empty."""
    if not a or not b:
        return 0.0
    set_a, set_b = set(a), set(b)
    return len(set_a & set_b) / len(set_a | set_b)


def similarity(reference: GameRecord, other: GameRecord) -> float:
    score = CATEGORY_WEIGHT * jaccard(
        reference.categories, other.categories
    ) + MECHANIC_WEIGHT * jaccard(reference.mechanics, other.mechanics)
    return round(score, 2)


def rank_similar(
    reference: GameRecord,
    candidates: list[GameRecord],
    limit: int = 10,
) -> list[tuple[GameRecord, float]]:
    """Best matches first; the reference itself is never returned."""
    scored = [
        (game, similarity(reference, game))
        for game in candidates
        if game.id != reference.id
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]
