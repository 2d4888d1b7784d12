import pytest

from rdf_canonicalizer import IRI, BNode, Literal

P = IRI("urn:p")
KNOWS = IRI("urn:knows")


def ring(labels: list[str], predicate: IRI = P) -> list[tuple]:
    """Blank nodes linked in a directed cycle, default graph."""
    nodes = [BNode(label) for label in labels]
    return [
        (nodes[i], predicate, nodes[(i + 1) % len(nodes)], None)
        for i in range(len(nodes))
    ]


def clique(labels: list[str], predicate: IRI = P) -> list[tuple]:
    """Every blank node points to every other one."""
    nodes = [BNode(label) for label in labels]
    return [(a, predicate, b, None) for a in nodes for b in nodes if a != b]


@pytest.fixture
def knows_pair():
    a, b = BNode("a"), BNode("b")
    return [(a, KNOWS, b, None), (b, KNOWS, a, None)]


@pytest.fixture
def single_literal():
    return [(BNode("a"), P, Literal("x"), None)]
