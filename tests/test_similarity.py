from __future__ import annotations

import pytest

from concierge.embeddings import cosine
from concierge.errors import DimensionMismatchError


def test_cosine_of_identical_vectors_is_one() -> None:
    assert cosine((0.3, 0.4), (0.3, 0.4)) == pytest.approx(1.0)


def test_cosine_of_opposite_vectors_is_minus_one() -> None:
    assert cosine((1.0, 0.0), (-2.0, 0.0)) == pytest.approx(-1.0)


def test_cosine_of_orthogonal_vectors_is_zero() -> None:
    assert cosine((1.0, 0.0, 0.0), (0.0, 5.0, 0.0)) == 0.0


def test_cosine_rejects_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine((1.0, 0.0), (1.0, 0.0, 0.0))


def test_cosine_rejects_empty_vectors() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine((), ())
