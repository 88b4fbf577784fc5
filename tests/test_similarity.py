"""Tests for the cosine similarity scorer."""

import pytest

from supportflow.core import SimilarityException
from supportflow.knowledge.domain import cosine_similarity


def test_identical_vectors():
    assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)


def test_opposite_vectors():
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_orthogonal_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_scale_invariant():
    assert cosine_similarity([1.0, 1.0], [10.0, 10.0]) == pytest.approx(1.0)


@pytest.mark.parametrize("a,b", [
    ([], [1.0]),
    ([1.0, 2.0], [1.0]),
    ([0.0, 0.0], [1.0, 1.0]),
])
def test_invalid_vectors(a, b):
    with pytest.raises(SimilarityException):
        cosine_similarity(a, b)
