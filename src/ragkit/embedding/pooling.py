"""Mean pooling and L2 normalization over transformer hidden states."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def mean_pooling(
    hidden_states: Sequence[float] | np.ndarray,
    attention_masks: Sequence[Sequence[int]],
    batch_size: int,
    seq_len: int,
    dim: int,
) -> list[list[float]]:
    """Mask-weighted mean of token vectors, one vector per batch item.

    Args:
        hidden_states: ``last_hidden_state`` as a flat buffer or an array of
            shape ``[batch_size, seq_len, dim]``.
        attention_masks: One mask row per batch item (1 = real token).
        batch_size: Number of items in the batch.
        seq_len: Padded sequence length.
        dim: Embedding dimensionality.

    Returns:
        ``batch_size`` vectors of length ``dim``. Items whose mask sums to zero
        (or that have no mask row) yield the zero vector.
    """
    states = np.asarray(hidden_states, dtype=np.float32).reshape(batch_size, seq_len, dim)

    mask = np.zeros((batch_size, seq_len), dtype=np.float32)
    for i, row in enumerate(attention_masks[:batch_size]):
        values = np.asarray(row[:seq_len], dtype=np.float32)
        mask[i, : values.shape[0]] = values

    summed = np.einsum("bsd,bs->bd", states, mask)
    counts = mask.sum(axis=1, keepdims=True)
    pooled = np.divide(summed, counts, out=np.zeros_like(summed), where=counts > 0)
    return pooled.tolist()


def l2_normalize(vector: Sequence[float]) -> list[float]:
    """Scale *vector* to unit Euclidean length; a zero vector is returned as-is."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return list(vector)
    return (arr / norm).tolist()
