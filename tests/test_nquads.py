import pytest

from rdf_canonicalizer import (
    IRI,
    XSD_NS,
    XSD_STRING_IRI,
    BNode,
    Literal,
    ParseError,
    escape_literal_canonical,
    format_term_canonical,
    parse_nquads,
    parse_nquads_dataset,
    parse_ntriples,
    serialize_nquads,
    serialize_quad_canonical,
)


def own_label(node):
    return node.label


def test_parse_nquads_terms_and_graph():
    quads = parse_nquads(
        '<http://ex.org/s> <http://ex.org/p> "hi"@EN-gb <http://ex.org/g> .\n'
        "_:b1 <http://ex.org/p> \"5\"^^<http://www.w3.org/2001/XMLSchema#integer> .\n"
    )
    assert quads == [
        (IRI("http://ex.org/s"), IRI("http://ex.org/p"), Literal("hi", lang="en-gb"), IRI("http://ex.org/g")),
        (BNode("b1"), IRI("http://ex.org/p"), Literal("5", datatype=f"{XSD_NS}integer"), None),
    ]


def test_parse_string_escapes_and_unicode():
    (quad,) = parse_nquads('<urn:s> <urn:p> "a\\tb\\u00e9\\U0001F600\\"" .')
    assert quad[2] == Literal('a\tbé\U0001F600"')


def test_parse_language_direction():
    (quad,) = parse_nquads('<urn:s> <urn:p> "salaam"@ar--rtl .')
    assert quad[2] == Literal("salaam", lang="ar", direction="rtl")


def test_parse_skips_comments_and_version():
    text = '# header\nVERSION "1.2"\n<urn:s> <urn:p> <urn:o> . # trailing\n'
    assert parse_nquads(text) == [(IRI("urn:s"), IRI("urn:p"), IRI("urn:o"), None)]


def test_parse_dataset_keeps_labels():
    """Blank node labels from the document are reported as input identifiers."""
    quads, labels = parse_nquads_dataset("_:x <urn:p> _:y.z _:g .\n")
    assert quads == [(BNode("x"), IRI("urn:p"), BNode("y.z"), BNode("g"))]
    assert labels == {BNode("x"): "x", BNode("y.z"): "y.z", BNode("g"): "g"}


def test_parse_ntriples_rejects_graph_label():
    with pytest.raises(ParseError, match="N-Triples"):
        parse_ntriples("<urn:s> <urn:p> <urn:o> <urn:g> .")


@pytest.mark.parametrize(
    "text, message",
    [
        ("<s> <urn:p> <urn:o> .", "absolute"),
        ("<urn:s> _:p <urn:o> .", "predicate"),
        ('"lit" <urn:p> <urn:o> .', "subject"),
        ("<< <urn:a> <urn:b> <urn:c> >> <urn:p> <urn:o> .", "triple terms"),
        ("<urn:s> <urn:p> <urn:o>", "'.'"),
        ('<urn:s> <urn:p> "x"@en--up .', "direction"),
    ],
)
def test_parse_errors(text, message):
    with pytest.raises(ParseError, match=message):
        parse_nquads(text, source="doc.nq")


def test_parse_error_location():
    with pytest.raises(ParseError) as info:
        parse_nquads("<urn:s> <urn:p> <urn:o> .\n<urn:s> <urn:p> .", source="doc.nq")
    assert info.value.source == "doc.nq"
    assert info.value.line == 2
    assert str(info.value).startswith("doc.nq:2:")


def test_escape_literal_canonical():
    assert escape_literal_canonical('a\x01\x7f"\\\n\t\b\f\r') == r'a\u0001\u007F\"\\\n\t\b\f\r'
    assert escape_literal_canonical("café \U0001F600") == "café \U0001F600"


def test_format_literals():
    assert format_term_canonical(Literal("x", datatype=XSD_STRING_IRI), own_label) == '"x"'
    assert format_term_canonical(Literal("x", lang="EN"), own_label) == '"x"@en'
    assert format_term_canonical(Literal("x", lang="ar", direction="rtl"), own_label) == '"x"@ar--rtl'
    assert (
        format_term_canonical(Literal("1", datatype=f"{XSD_NS}integer"), own_label)
        == f'"1"^^<{XSD_NS}integer>'
    )


def test_serialize_quad_with_label_function():
    quad = (BNode("q"), IRI("urn:p"), BNode("r"), IRI("urn:g"))
    assert serialize_quad_canonical(quad, lambda node: "x") == "_:x <urn:p> _:x <urn:g> ."


def test_serialize_nquads_sorted_and_empty():
    quads = [
        (IRI("urn:b"), IRI("urn:p"), Literal("2"), None),
        (IRI("urn:a"), IRI("urn:p"), Literal("1"), None),
    ]
    assert serialize_nquads(quads, sort=True) == (
        '<urn:a> <urn:p> "1" .\n<urn:b> <urn:p> "2" .\n'
    )
    assert serialize_nquads([]) == ""


def test_serialized_output_parses_back():
    quads = [
        (BNode("n0"), IRI("urn:p"), Literal('tab\there "q"', lang="en"), BNode("g")),
        (IRI("urn:s"), IRI("urn:p"), Literal("ctrl\x02"), None),
    ]
    assert parse_nquads(serialize_nquads(quads)) == quads
