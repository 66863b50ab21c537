"""Suppress control tokens during the first decode steps."""

from collections.abc import Callable

import numpy as np

# Sequence length (prompt included) up to which special tokens are masked.
MASKED_PREFIX_LENGTH = 5


def build_special_token_mask(vocab_size: int, is_special: Callable[[int], bool]) -> np.ndarray:
    """Additive bias: ``-inf`` for every special token, ``0`` elsewhere."""
    mask = np.zeros(vocab_size, dtype=np.float32)
    for token in range(vocab_size):
        if is_special(token):
            mask[token] = -np.inf
    return mask


def should_mask(seq_len: int, masked_prefix_length: int = MASKED_PREFIX_LENGTH) -> bool:
    return seq_len <= masked_prefix_length


def apply_special_token_mask(
    scores,
    mask,
    seq_len: int,
    masked_prefix_length: int = MASKED_PREFIX_LENGTH,
):
    """
    Add ``mask`` to raw scores while the sequence is still short.

    ``scores`` may be a numpy array or a torch tensor whose last dimension is
    the vocabulary; ``mask`` must be of the same kind. Longer sequences get
    their scores back untouched.
    """
    if should_mask(seq_len, masked_prefix_length):
        return scores + mask
    return scores
