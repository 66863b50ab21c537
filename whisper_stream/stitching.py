"""Merge token sequences decoded from overlapping audio windows."""

import logging
from collections.abc import Sequence

logger = logging.getLogger(__name__)

MAX_N_OFFSETS = 40
MIN_N_OVERLAPS = 3


def find_chunk_overlap(
    prev_tokens: Sequence[int],
    curr_tokens: Sequence[int],
    max_n_offsets: int = MAX_N_OFFSETS,
    min_n_overlaps: int = MIN_N_OVERLAPS,
) -> tuple[int, int] | None:
    """
    Locate where ``curr_tokens`` picks up the tail of ``prev_tokens``.

    For each offset ``d`` the tail of ``prev_tokens`` starting at
    ``len(prev_tokens) - 1 - d`` is compared position by position with the head of
    ``curr_tokens`` and the equal pairs are counted. The first offset with the
    strictly highest count wins.

    Returns:
        ``(prev_index, curr_index)`` where the merge is
        ``prev_tokens[:prev_index] + curr_tokens[curr_index:]``, or None when no
        offset reaches ``min_n_overlaps`` matches
    """
    max_overlap = 0
    max_overlap_indices = (0, 0)
    n_offsets = min(len(prev_tokens), len(curr_tokens), max_n_offsets)

    for offset in range(n_offsets):
        prev_start_index = len(prev_tokens) - 1 - offset
        matches = [
            i
            for i, (old, new) in enumerate(zip(prev_tokens[prev_start_index:], curr_tokens))
            if old == new
        ]

        if len(matches) > max_overlap:
            max_overlap = len(matches)
            curr_overlap_index = matches[0]
            max_overlap_indices = (prev_start_index + curr_overlap_index, curr_overlap_index)

    if max_overlap >= min_n_overlaps:
        return max_overlap_indices
    return None


def merge_tokens(
    prev_tokens: Sequence[int],
    curr_tokens: Sequence[int],
    max_n_offsets: int = MAX_N_OFFSETS,
    min_n_overlaps: int = MIN_N_OVERLAPS,
) -> list[int]:
    """Append ``curr_tokens`` to ``prev_tokens`` without repeating their overlap."""
    overlap = find_chunk_overlap(prev_tokens, curr_tokens, max_n_offsets, min_n_overlaps)
    if overlap is None:
        if prev_tokens:
            logger.debug("No overlap between windows, appending all tokens")
        return [*prev_tokens, *curr_tokens]

    prev_index, curr_index = overlap
    logger.debug(f"Windows overlap at prev[{prev_index}] / curr[{curr_index}]")
    return [*prev_tokens[:prev_index], *curr_tokens[curr_index:]]
