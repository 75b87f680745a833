"""
Tests for the similarity indexes.
"""

import itertools
import json

import numpy as np
import pytest

from resilient_agent.interfaces.driver import LocatorKind
from resilient_agent.memory import BruteForceIndex, FeatureHashEmbedder, LSHIndex, build_index, rank_rows
from resilient_agent.memory.index import auto_bits, index_from_dict
from resilient_agent.models import ActionKind

FIELDS = [
    "email", "password", "submit", "search query", "first name",
    "last name", "country", "quantity", "checkout", "newsletter",
]


def unit_rows(n, dimension=64, seed=0):
    rng = np.random.default_rng(seed)
    matrix = rng.standard_normal((n, dimension))
    matrix /= np.linalg.norm(matrix, axis=1, keepdims=True)
    return matrix.astype(np.float32)


@pytest.fixture(scope="module")
def clustered():
    """Pattern vectors for 40 domains x 4 actions x 6 locator kinds x 3 fields."""
    embedder = FeatureHashEmbedder(256)
    rng = np.random.default_rng(7)
    vectors = []
    for d in range(40):
        domain = f"shop{d}.example.com"
        fields = rng.choice(len(FIELDS), size=3, replace=False)
        for action, kind, f in itertools.product(ActionKind, LocatorKind, fields):
            vectors.append(embedder.embed(domain, kind, action, FIELDS[f].split()))
    matrix = np.vstack(vectors)
    successes = rng.random(len(matrix)) < 0.7
    ids = np.arange(len(matrix), dtype=np.int64)
    return embedder, matrix, successes, ids


class TestRankRows:

    def test_tie_break_success_then_newest(self):
        matrix = np.tile(unit_rows(1), (3, 1))
        successes = np.array([False, True, True])
        ids = np.array([10, 11, 12])

        ranked = rank_rows(matrix, matrix[0], np.arange(3), successes, ids, k=3)

        assert [row for row, _ in ranked] == [2, 1, 0]

    def test_similarity_first(self):
        matrix = unit_rows(20)
        query = matrix[5]
        ranked = rank_rows(matrix, query, np.arange(20), np.zeros(20, dtype=bool), np.arange(20), k=5)

        assert ranked[0][0] == 5
        assert ranked[0][1] == pytest.approx(1.0)
        scores = [score for _, score in ranked]
        assert scores == sorted(scores, reverse=True)

    def test_min_similarity_and_k(self):
        matrix = unit_rows(20)
        ranked = rank_rows(matrix, matrix[0], np.arange(20), np.ones(20, dtype=bool), np.arange(20), k=50,
                           min_similarity=0.99)
        assert ranked == [(0, pytest.approx(1.0))]
        assert rank_rows(matrix, matrix[0], np.arange(0), np.ones(20, dtype=bool), np.arange(20), k=5) == []


class TestAutoBits:

    def test_bounds(self):
        assert auto_bits(0) == 4
        assert auto_bits(16 * 256) == 8
        assert auto_bits(10 ** 12) == 20


class TestLSHIndex:

    def test_vector_is_candidate_of_itself(self):
        matrix = unit_rows(200)
        index = LSHIndex(64, tables=4, bits=6, probe_radius=0, seed=3)
        index.add_many(matrix)

        for row in (0, 57, 199):
            assert row in index.candidates(matrix[row])

    def test_add_matches_add_many(self):
        matrix = unit_rows(50)
        a = LSHIndex(64, tables=4, bits=5, seed=9)
        b = LSHIndex(64, tables=4, bits=5, seed=9)
        a.add_many(matrix)
        for row, vector in enumerate(matrix):
            b.add(row, vector)

        assert a.to_dict() == b.to_dict()

    def test_probe_radius_widens_candidates(self):
        matrix = unit_rows(500)
        narrow = build_index("lsh", matrix, 64, tables=2, bits=8, probe_radius=0)
        wide = build_index("lsh", matrix, 64, tables=2, bits=8, probe_radius=1)
        query = unit_rows(1, seed=99)[0]

        assert set(narrow.candidates(query)) <= set(wide.candidates(query))

    def test_serialization_round_trip(self):
        matrix = unit_rows(100)
        index = build_index("lsh", matrix, 64, tables=3, bits=5, seed=11)

        restored = index_from_dict(json.loads(json.dumps(index.to_dict())))

        query = matrix[42]
        assert restored.candidates(query).tolist() == index.candidates(query).tolist()
        assert restored.count == 100

    def test_digest_mismatch_rejected(self):
        data = build_index("lsh", unit_rows(10), 64, tables=2, bits=4).to_dict()
        data["seed"] = data["seed"] + 1

        with pytest.raises(ValueError):
            LSHIndex.from_dict(data)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            index_from_dict({"kind": "kd-tree"})

    @pytest.mark.parametrize("data", [[], "lsh", 7])
    def test_non_object_rejected(self, data):
        with pytest.raises(ValueError):
            index_from_dict(data)


class TestBruteForce:

    def test_every_row_is_a_candidate(self):
        index = build_index("brute_force", unit_rows(5), 64)
        assert index.candidates(unit_rows(1)[0]) is None
        assert BruteForceIndex.from_dict(index.to_dict()).count == 5


class TestRecall:

    @pytest.mark.slow
    def test_lsh_recall_against_brute_force(self, clustered):
        embedder, matrix, successes, ids = clustered
        k = 10
        index = build_index("lsh", matrix, embedder.dimension, tables=16, probe_radius=1, seed=1729)
        all_rows = np.arange(len(matrix))
        rng = np.random.default_rng(21)

        overlaps = []
        for _ in range(60):
            domain = f"shop{rng.integers(40)}.example.com"
            action = list(ActionKind)[rng.integers(4)]
            field = FIELDS[rng.integers(len(FIELDS))]
            query = embedder.embed_context(domain, action, extra_tokens=field.split())

            exact = rank_rows(matrix, query, all_rows, successes, ids, k)
            approximate = rank_rows(matrix, query, index.candidates(query), successes, ids, k)
            if len(approximate) < k:
                approximate = exact
            overlaps.append(len({r for r, _ in exact} & {r for r, _ in approximate}) / k)

        assert len(matrix) == 40 * 4 * 6 * 3
        assert float(np.mean(overlaps)) >= 0.95

    def test_lsh_ranking_is_exact_for_its_candidates(self, clustered):
        embedder, matrix, successes, ids = clustered
        index = build_index("lsh", matrix, embedder.dimension)
        query = matrix[123]

        candidates = index.candidates(query)
        ranked = rank_rows(matrix, query, candidates, successes, ids, 5)

        assert ranked == rank_rows(matrix, query, np.sort(candidates), successes, ids, 5)
        assert ranked[0][1] == pytest.approx(1.0)
