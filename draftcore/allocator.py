from __future__ import annotations

import logging
import random
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from .cards import RARITIES, Card, PoolEntry, expand_cards, shuffle
from .errors import AllocationError
from .models import DraftConfig, DraftMethod, RarityDistribution, ShortfallPolicy

LOGGER = logging.getLogger("draft_allocator")

UNRATED = "unrated"
_BUCKET_ORDER = RARITIES + (UNRATED,)

# Pool indexes are always a contiguous permutation of range(len(pool)).


def allocate_pool(
    cards: Iterable[Card],
    config: DraftConfig,
    rng: Optional[random.Random] = None,
) -> List[PoolEntry]:
    rng = rng or random.Random()
    expanded = expand_cards(cards)
    if config.method == DraftMethod.ASYNCHRONOUS and config.allow_overlap:
        return _allocate_overlapping(expanded, config, rng)
    ordered = order_cards(expanded, config, config.number_of_players, config.pool_size, rng)
    return index_entries(ordered)


def _allocate_overlapping(cards: List[Card], config: DraftConfig, rng: random.Random) -> List[PoolEntry]:
    # Every participant drafts from an independent copy of the whole list.
    slice_size = config.pool_size // config.number_of_players
    region = config.pack_size * config.total_packs
    if slice_size < region:
        LOGGER.warning(
            "Per-player pool of %s cards is smaller than the %s cards its packs span",
            slice_size,
            region,
        )
    pool: List[PoolEntry] = []
    for _ in range(config.number_of_players):
        ordered = order_cards(list(cards), config, 1, slice_size, rng)
        pool.extend(index_entries(ordered, start=len(pool)))
    LOGGER.info(
        "Allocated %s overlapping pools of %s cards",
        config.number_of_players,
        slice_size,
    )
    return pool


def order_cards(
    cards: List[Card],
    config: DraftConfig,
    number_of_players: int,
    pool_size: int,
    rng: random.Random,
) -> List[Card]:
    distribution = config.rarity_distribution
    if distribution and config.method in (DraftMethod.ROCHESTER, DraftMethod.ASYNCHRONOUS):
        ordered = organize_by_rarity(
            cards,
            distribution,
            config.pack_size,
            pool_size,
            rng,
            policy=config.shortfall_policy,
        )
    else:
        ordered = shuffle(cards, rng)

    if len(ordered) < pool_size:
        LOGGER.warning("Pool has %s cards, fewer than the requested %s", len(ordered), pool_size)
    ordered = ordered[:pool_size]

    if config.extra_deck_at_end:
        ordered = extra_deck_last(ordered)
    return ordered


def extra_deck_last(cards: Sequence[Card]) -> List[Card]:
    main = [card for card in cards if not card.is_extra_deck]
    extra = [card for card in cards if card.is_extra_deck]
    LOGGER.debug("Moved %s extra deck cards to the end of the pool", len(extra))
    return main + extra


def index_entries(cards: Sequence[Card], start: int = 0) -> List[PoolEntry]:
    return [PoolEntry(card=card, index=start + position) for position, card in enumerate(cards)]


# Rarity organization ----------------------------------------------


def bucket_by_rarity(cards: Iterable[Card], rng: random.Random) -> Dict[str, Deque[Card]]:
    buckets: Dict[str, List[Card]] = {name: [] for name in _BUCKET_ORDER}
    for card in cards:
        rarity = card.effective_rarity
        buckets[rarity if rarity in buckets else UNRATED].append(card)
    return {name: deque(shuffle(members, rng)) for name, members in buckets.items()}


def organize_by_rarity(
    cards: List[Card],
    distribution: RarityDistribution,
    pack_size: int,
    pool_size: int,
    rng: random.Random,
    policy: ShortfallPolicy = ShortfallPolicy.SUBSTITUTE,
) -> List[Card]:
    """Lay cards out pack by pack so each pack matches the distribution.

    Fixed counts are deterministic for a given rng. Rate mode draws every slot
    independently and is only reproducible when a seeded rng is passed in.
    """
    buckets = bucket_by_rarity(cards, rng)
    number_of_packs = pool_size // pack_size
    if distribution.use_rates:
        ordered = _fill_by_rates(buckets, distribution, pack_size, number_of_packs, rng, policy)
    else:
        ordered = _fill_by_counts(buckets, distribution, pack_size, number_of_packs, policy)

    # Whatever is left tops the pool up to its requested size.
    leftovers = [card for name in _BUCKET_ORDER for card in buckets[name]]
    rng.shuffle(leftovers)
    ordered.extend(leftovers[: max(0, pool_size - len(ordered))])
    return ordered


def _fill_by_counts(
    buckets: Dict[str, Deque[Card]],
    distribution: RarityDistribution,
    pack_size: int,
    number_of_packs: int,
    policy: ShortfallPolicy,
) -> List[Card]:
    for name, per_pack in distribution.per_pack.items():
        needed = per_pack * number_of_packs
        available = len(buckets[name])
        if available < needed:
            if policy == ShortfallPolicy.STRICT:
                raise AllocationError(f"Not enough {name} cards ({available}/{needed})")
            LOGGER.warning("Not enough %s cards (%s/%s); substituting", name, available, needed)

    ordered: List[Card] = []
    filler = max(0, pack_size - distribution.cards_per_pack)
    for _ in range(number_of_packs):
        for name in RARITIES:
            for _ in range(distribution.per_pack.get(name, 0)):
                card = _take(buckets, name)
                if card is None:
                    return ordered
                ordered.append(card)
        for _ in range(filler):
            card = _take(buckets, UNRATED)
            if card is None:
                return ordered
            ordered.append(card)
    return ordered


def _fill_by_rates(
    buckets: Dict[str, Deque[Card]],
    distribution: RarityDistribution,
    pack_size: int,
    number_of_packs: int,
    rng: random.Random,
    policy: ShortfallPolicy,
) -> List[Card]:
    names, weights = _rate_table(distribution)
    ordered: List[Card] = []
    for _ in range(number_of_packs * pack_size):
        wanted = rng.choices(names, weights=weights)[0]
        card = _take(buckets, wanted)
        if card is None:
            if policy == ShortfallPolicy.STRICT:
                raise AllocationError("Ran out of cards while filling packs")
            LOGGER.warning("Ran out of cards after %s of %s pack slots", len(ordered), number_of_packs * pack_size)
            break
        ordered.append(card)
    return ordered


def _rate_table(distribution: RarityDistribution) -> Tuple[List[str], List[float]]:
    names = [name for name in RARITIES if distribution.rates.get(name, 0) > 0]
    return names, [distribution.rates[name] for name in names]


def _take(buckets: Dict[str, Deque[Card]], wanted: str) -> Optional[Card]:
    if buckets[wanted]:
        return buckets[wanted].popleft()
    for name in _BUCKET_ORDER:
        if buckets[name]:
            return buckets[name].popleft()
    return None


# Partitioning ------------------------------------------------------


def build_piles(pool: Sequence[PoolEntry], number_of_piles: int) -> Tuple[List[List[PoolEntry]], Deque[PoolEntry]]:
    deck = deque(pool)
    piles = [[deck.popleft()] if deck else [] for _ in range(number_of_piles)]
    return piles, deck


def build_rounds(
    pool: Sequence[PoolEntry],
    number_of_players: int,
    pack_size: int,
) -> Tuple[List[List[List[PoolEntry]]], List[PoolEntry]]:
    """Full rounds first, then one equal-split partial round if it is non-empty.

    Returns the rounds and the entries that could not be split evenly.
    """
    per_round = number_of_players * pack_size
    full_rounds = len(pool) // per_round
    rounds: List[List[List[PoolEntry]]] = []
    cursor = 0
    for _ in range(full_rounds):
        packs = []
        for _ in range(number_of_players):
            packs.append(list(pool[cursor:cursor + pack_size]))
            cursor += pack_size
        rounds.append(packs)

    remaining = len(pool) - cursor
    cards_per_pack = remaining // number_of_players
    if cards_per_pack > 0:
        packs = []
        for _ in range(number_of_players):
            packs.append(list(pool[cursor:cursor + cards_per_pack]))
            cursor += cards_per_pack
        rounds.append(packs)
    return rounds, list(pool[cursor:])


def build_grid(deck: Deque[PoolEntry], size: int) -> List[List[Optional[PoolEntry]]]:
    return [[deck.popleft() if deck else None for _ in range(size)] for _ in range(size)]


def async_pack_range(player: int, pack_number: int, pack_size: int, total_packs: int) -> range:
    offset = player * pack_size * total_packs
    start = (pack_number - 1) * pack_size + offset
    return range(start, start + pack_size)
