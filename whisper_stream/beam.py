"""Best-first beam search over a batched scoring callback."""

import heapq
import logging
import math
from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from operator import itemgetter
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Hashable)

# Given the active beams, return one {next_token: incremental_log_prob} map per beam.
NextFn = Callable[[Sequence["BeamNode[T]"]], Sequence[Mapping[T, float]]]
IsFinishedFn = Callable[[Sequence[T]], bool]


@dataclass
class BeamNode(Generic[T]):
    """A candidate sequence and its cumulative log-probability."""

    seq: list[T] = field(default_factory=list)
    log_prob: float = 0.0

    def extend(self, token: T, delta: float) -> "BeamNode[T]":
        return BeamNode(seq=[*self.seq, token], log_prob=self.log_prob + delta)


def _top_by_log_prob(beams: list[BeamNode[T]], k: int) -> list[BeamNode[T]]:
    # sorted() is stable, so equal scores keep expansion order
    return sorted(beams, key=lambda beam: beam.log_prob, reverse=True)[:k]


def beam_search_step(
    frontier: Sequence[BeamNode[T]],
    next_fn: NextFn,
    is_finished: IsFinishedFn,
    beam_size: int,
) -> list[BeamNode[T]]:
    """
    Advance the frontier by one token.

    Finished beams are carried over unchanged. All unfinished beams are scored
    with a single ``next_fn`` call. The new frontier is the ``beam_size`` best of
    the carried and newly expanded beams.
    """
    active = [beam for beam in frontier if not is_finished(beam.seq)]
    scores = next_fn(active) if active else []
    if len(scores) != len(active):
        raise ValueError(
            f"next_fn returned {len(scores)} score maps for {len(active)} active beams"
        )

    scores_iter = iter(scores)
    candidates: list[BeamNode[T]] = []
    for beam in frontier:
        if is_finished(beam.seq):
            candidates.append(beam)
            continue

        continuations = [
            (token, delta)
            for token, delta in next(scores_iter).items()
            if not (math.isinf(delta) and delta < 0)
        ]
        # No child outside a beam's own top-k can make the global top-k.
        best = heapq.nlargest(beam_size, continuations, key=itemgetter(1))
        candidates.extend(beam.extend(token, delta) for token, delta in best)

    return _top_by_log_prob(candidates, beam_size)


def beam_search(
    initial_beams: Sequence[BeamNode[T]],
    next_fn: NextFn,
    is_finished: IsFinishedFn,
    beam_size: int,
    max_depth: int,
) -> list[T]:
    """
    Find a high scoring sequence.

    Stops after ``max_depth`` steps or as soon as every beam in the frontier is
    finished. The best sequence of the final frontier is returned whether or not
    it is finished. Any exception raised by ``next_fn`` aborts the search.

    Args:
        initial_beams: Seed frontier, typically one node holding the prompt
        next_fn: Batched scorer, called once per step with every active beam
        is_finished: Predicate on a sequence (e.g. last token is end-of-text)
        beam_size: Frontier width
        max_depth: Maximum number of tokens appended

    Returns:
        The token sequence of the highest scoring beam
    """
    if beam_size < 1:
        raise ValueError(f"beam_size must be positive, got {beam_size}")
    if not initial_beams:
        raise ValueError("beam_search needs at least one initial beam")

    frontier = _top_by_log_prob(list(initial_beams), beam_size)
    for depth in range(max_depth):
        if all(is_finished(beam.seq) for beam in frontier):
            logger.debug(f"All beams finished after {depth} steps")
            break

        expanded = beam_search_step(frontier, next_fn, is_finished, beam_size)
        if not expanded:
            logger.debug(f"No eligible continuations at step {depth}, keeping previous frontier")
            break
        frontier = expanded

    return list(max(frontier, key=lambda beam: beam.log_prob).seq)
