"""
Vector math for embedding comparison.
"""

from collections.abc import Sequence

import numpy as np

from thoughtlands.utils.errors import ValidationError


def _as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).reshape(-1)


def cosine_similarity(
    embedding1: Sequence[float] | np.ndarray,
    embedding2: Sequence[float] | np.ndarray,
) -> float:
    """Compute cosine similarity between two embeddings.

    Args:
        embedding1: First embedding
        embedding2: Second embedding

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm

    Raises:
        ValidationError: If the vectors differ in dimension
    """
    v1 = _as_vector(embedding1)
    v2 = _as_vector(embedding2)

    if v1.shape != v2.shape:
        raise ValidationError(
            f"Vectors must have the same dimension ({v1.shape[0]} != {v2.shape[0]})",
            context={"dimensions": [int(v1.shape[0]), int(v2.shape[0])]},
        )

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    # Rounding can push parallel vectors a hair past 1.
    return float(np.clip(np.dot(v1, v2) / (norm1 * norm2), -1.0, 1.0))
