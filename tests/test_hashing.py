import hashlib

import pytest

from conftest import KNOWS, P, clique, ring
from rdf_canonicalizer import (
    IRI,
    BlankNodeHasher,
    BNode,
    CanonicalizationOptions,
    CanonicalizationState,
    IdentifierIssuer,
    InternalConsistencyError,
    Literal,
    ResourceLimitExceededError,
)


def make_hasher(quads, options=None, labels=None):
    opts = options or CanonicalizationOptions()
    state = CanonicalizationState.build(quads, opts, input_labels=labels)
    return BlankNodeHasher(state, opts), state


def sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def test_first_degree_marks_reference_node(single_literal):
    hasher, _ = make_hasher(single_literal, labels={BNode("a"): "a"})
    assert hasher.hash_first_degree("a") == sha256('_:a <urn:p> "x" .\n')


def test_first_degree_masks_other_blank_nodes():
    a, b = BNode("a"), BNode("b")
    hasher, _ = make_hasher([(a, P, b, None)], labels={a: "a", b: "b"})
    assert hasher.hash_first_degree("a") == sha256("_:a <urn:p> _:z .\n")
    assert hasher.hash_first_degree("b") == sha256("_:z <urn:p> _:a .\n")


def test_first_degree_sorts_lines_and_covers_graph_position():
    a, g = BNode("a"), BNode("g")
    quads = [
        (a, IRI("urn:q"), Literal("2"), g),
        (a, P, Literal("1"), None),
    ]
    hasher, _ = make_hasher(quads, labels={a: "a", g: "g"})
    expected = '_:a <urn:p> "1" .\n_:a <urn:q> "2" _:z .\n'
    assert hasher.hash_first_degree("a") == sha256(expected)


def test_first_degree_counts_self_reference_once():
    """A quad naming the same node twice is listed once for that node."""
    a = BNode("a")
    hasher, state = make_hasher([(a, P, a, None)], labels={a: "a"})
    assert state.blank_node_to_quads["a"] == [(a, P, a, None)]
    assert hasher.hash_first_degree("a") == sha256("_:a <urn:p> _:a .\n")


def test_first_degree_is_cached(single_literal):
    hasher, state = make_hasher(single_literal, labels={BNode("a"): "a"})
    digest = hasher.hash_first_degree("a")
    assert state.first_degree_hashes == {"a": digest}


def test_first_degree_uses_configured_algorithm(single_literal):
    hasher, _ = make_hasher(
        single_literal, CanonicalizationOptions(hash_algorithm="sha384"), {BNode("a"): "a"}
    )
    expected = hashlib.sha384(b'_:a <urn:p> "x" .\n').hexdigest()
    assert hasher.hash_first_degree("a") == expected


def test_related_hash_prefers_issued_identifiers(knows_pair):
    labels = {BNode("a"): "a", BNode("b"): "b"}
    hasher, state = make_hasher(knows_pair, labels=labels)
    quad = knows_pair[0]
    issuer = IdentifierIssuer("b")

    unissued = hasher.hash_related_blank_node("b", quad, issuer, "o")
    assert unissued == sha256("o<urn:knows>" + hasher.hash_first_degree("b"))

    issuer.issue("b")
    assert hasher.hash_related_blank_node("b", quad, issuer, "o") == sha256("o<urn:knows>_:b0")

    state.canonical_issuer.issue("b")
    assert hasher.hash_related_blank_node("b", quad, issuer, "g") == sha256("g_:c14n0")


def test_related_hashes_group_by_position(knows_pair):
    labels = {BNode("a"): "a", BNode("b"): "b"}
    hasher, _ = make_hasher(knows_pair, labels=labels)
    groups = hasher.related_hashes("a", IdentifierIssuer("b"))
    assert sorted(map(len, groups.values())) == [1, 1]
    assert all(nodes == ["b"] for nodes in groups.values())


def test_n_degree_distinguishes_symmetric_pair(knows_pair):
    labels = {BNode("a"): "a", BNode("b"): "b"}
    hasher, state = make_hasher(knows_pair, labels=labels)
    issuer = IdentifierIssuer("b")
    issuer.issue("a")
    digest, result_issuer = hasher.hash_n_degree("a", issuer)
    assert len(digest) == 64
    assert result_issuer.issued_order == ["a", "b"]
    assert issuer.issued_order == ["a"]
    assert state.n_degree_calls >= 1


def test_n_degree_rejects_reentry(knows_pair):
    hasher, _ = make_hasher(knows_pair, labels={BNode("a"): "a", BNode("b"): "b"})
    with pytest.raises(InternalConsistencyError):
        hasher.hash_n_degree("a", IdentifierIssuer("b"), frozenset({"a"}))


def test_permutation_budget_is_checked_before_enumeration():
    """A group with more orderings than the budget fails up front."""
    quads = clique(["a", "b", "c", "d"])
    hasher, state = make_hasher(quads, CanonicalizationOptions(max_permutations=5))
    issuer = IdentifierIssuer("b")
    first = state.blank_node_identifiers[BNode("a")]
    issuer.issue(first)
    with pytest.raises(ResourceLimitExceededError, match="max_permutations=5"):
        hasher.hash_n_degree(first, issuer)
    assert state.permutations_explored == 0


def test_recursion_depth_limit():
    quads = ring([f"r{i}" for i in range(6)], KNOWS)
    hasher, state = make_hasher(quads, CanonicalizationOptions(max_recursion_depth=2))
    issuer = IdentifierIssuer("b")
    first = state.blank_node_identifiers[BNode("r0")]
    issuer.issue(first)
    with pytest.raises(ResourceLimitExceededError, match="max_recursion_depth=2"):
        hasher.hash_n_degree(first, issuer)
