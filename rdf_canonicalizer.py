#!/usr/bin/env python3
"""RDF dataset canonicalization (RDFC-1.0) for N-Triples and N-Quads data.

Blank nodes are relabeled deterministically so that isomorphic datasets
serialize to byte-identical canonical N-Quads. Implementation is
self-contained and does not rely on rdflib.
"""

from __future__ import annotations

import argparse
import hashlib
import itertools
import logging
import math
import sys
import uuid
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Callable, Iterable, Iterator
from urllib.parse import urlsplit

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
XSD_NS = "http://www.w3.org/2001/XMLSchema#"

XSD_STRING_IRI = f"{XSD_NS}string"
RDF_LANG_STRING_IRI = f"{RDF_NS}langString"
RDF_DIR_LANG_STRING_IRI = f"{RDF_NS}dirLangString"

DEFAULT_PREFIX = "c14n"
TEMPORARY_PREFIX = "b"
DEFAULT_MAX_PERMUTATIONS = 250_000
DEFAULT_MAX_RECURSION_DEPTH = 256

HASH_ALGORITHMS = {
    "sha256": "sha256",
    "sha-256": "sha256",
    "sha384": "sha384",
    "sha-384": "sha384",
}

IRI_FORBIDDEN = '<>"{}|^`\\'


class ParseError(ValueError):
    """Raised on deterministic syntax/semantic parse errors."""

    def __init__(self, source: str, line: int, column: int, message: str):
        """Initialize a parse error with source location details."""
        super().__init__(f"{source}:{line}:{column}: {message}")
        self.source = source
        self.line = line
        self.column = column
        self.message = message


class CanonicalizationError(Exception):
    """Base class for failures raised while canonicalizing a dataset."""


class InvalidInputError(CanonicalizationError, ValueError):
    """Raised when a quad violates the RDF term model."""


class UnsupportedHashAlgorithmError(CanonicalizationError, ValueError):
    """Raised when the requested digest algorithm is not available."""


class ResourceLimitExceededError(CanonicalizationError, RuntimeError):
    """Raised when the N-degree search exceeds its configured budget."""


class InternalConsistencyError(CanonicalizationError, RuntimeError):
    """Raised when the algorithm reaches a state that must be impossible."""


@dataclass(frozen=True)
class IRI:
    """Absolute IRI term."""
    value: str


def _fresh_bnode_label() -> str:
    """Return a fresh, process-unique blank node label."""
    return f"b{uuid.uuid4().hex}"


@dataclass(frozen=True)
class BNode:
    """Blank node; the label is its identity inside one dataset.

    ``BNode()`` mints a fresh node that does not collide with any other.
    """
    label: str = field(default_factory=_fresh_bnode_label)


@dataclass(frozen=True)
class Literal:
    """RDF literal value with optional language, direction, or datatype."""
    value: str
    lang: str | None = None
    direction: str | None = None
    datatype: str | None = None

    def __post_init__(self) -> None:
        """Fold equivalent spellings of the same literal onto one value."""
        if self.lang is not None:
            object.__setattr__(self, "lang", self.lang.lower())
            if self.datatype in (RDF_LANG_STRING_IRI, RDF_DIR_LANG_STRING_IRI):
                object.__setattr__(self, "datatype", None)
        if self.datatype == XSD_STRING_IRI:
            object.__setattr__(self, "datatype", None)


Term = IRI | BNode | Literal
GraphLabel = IRI | BNode
Triple = tuple[IRI | BNode, IRI, Term]
Quad = tuple[IRI | BNode, IRI, Term, GraphLabel | None]


# ---------------------------------------------------------------------------
# N-Triples / N-Quads reader
# ---------------------------------------------------------------------------


class Scanner:
    """Stateful character scanner with line and column tracking."""
    def __init__(self, text: str, source: str):
        """Initialize scanner state for `text` from `source`."""
        self.text = text
        self.source = source
        self.i = 0
        self.line = 1
        self.col = 1

    def eof(self) -> bool:
        """Return `True` when the scanner reached the end of input."""
        return self.i >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        """Return the character at the current position plus `offset`, or ''."""
        idx = self.i + offset
        return self.text[idx] if idx < len(self.text) else ""

    def startswith(self, token: str) -> bool:
        """Return `True` if the remaining input starts with `token`."""
        return self.text.startswith(token, self.i)

    def advance(self) -> str:
        """Consume and return one character while updating line/column counters."""
        if self.eof():
            self.error("unexpected end of input")
        ch = self.text[self.i]
        self.i += 1
        if ch == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def consume(self, token: str) -> bool:
        """Consume `token` if present and return whether it matched."""
        if not self.startswith(token):
            return False
        for _ in token:
            self.advance()
        return True

    def expect(self, token: str, message: str | None = None) -> None:
        """Consume `token` or raise a parse error."""
        if not self.consume(token):
            self.error(message or f"expected '{token}'")

    def error(self, message: str) -> None:
        """Raise `ParseError` at the current scanner position."""
        raise ParseError(self.source, self.line, self.col, message)


def is_space(ch: str) -> bool:
    """Return whether a character is RDF whitespace."""
    return ch in " \t\r\n"


def skip_ws_comments(scanner: Scanner) -> None:
    """Skip whitespace and `#` comments."""
    while not scanner.eof():
        ch = scanner.peek()
        if is_space(ch):
            scanner.advance()
        elif ch == "#":
            while not scanner.eof() and scanner.peek() not in "\r\n":
                scanner.advance()
        else:
            return


PN_BASE_RANGES = (
    (0x00C0, 0x00D6),
    (0x00D8, 0x00F6),
    (0x00F8, 0x02FF),
    (0x0370, 0x037D),
    (0x037F, 0x1FFF),
    (0x200C, 0x200D),
    (0x2070, 0x218F),
    (0x2C00, 0x2FEF),
    (0x3001, 0xD7FF),
    (0xF900, 0xFDCF),
    (0xFDF0, 0xFFFD),
    (0x10000, 0xEFFFF),
)


def is_pn_chars_u(ch: str) -> bool:
    """Return whether a character may start a blank node label (besides digits)."""
    if len(ch) != 1:
        return False
    if ch == "_" or "A" <= ch <= "Z" or "a" <= ch <= "z":
        return True
    cp = ord(ch)
    return any(lo <= cp <= hi for lo, hi in PN_BASE_RANGES)


def is_pn_chars(ch: str) -> bool:
    """Return whether a character may continue a blank node label."""
    if len(ch) != 1:
        return False
    if is_pn_chars_u(ch) or ch in "-0123456789":
        return True
    cp = ord(ch)
    return cp == 0x00B7 or 0x0300 <= cp <= 0x036F or 0x203F <= cp <= 0x2040


def is_valid_language_tag(tag: str) -> bool:
    """Return whether `tag` matches the N-Quads `LANGTAG` subtag rules."""
    subtags = tag.split("-")
    for index, subtag in enumerate(subtags):
        if not subtag or len(subtag) > 8 or not subtag.isascii():
            return False
        if not (subtag.isalpha() if index == 0 else subtag.isalnum()):
            return False
    return True


def is_valid_bnode_label(label: str) -> bool:
    """Return whether `label` can be written after `_:` in N-Quads."""
    if not label or label.endswith("."):
        return False
    head, tail = label[0], label[1:]
    if not (is_pn_chars_u(head) or head.isdigit()):
        return False
    return all(is_pn_chars(ch) or ch == "." for ch in tail)


def _read_hex(scanner: Scanner, width: int) -> int:
    """Read exactly `width` hex digits and return their value."""
    digits = []
    for _ in range(width):
        ch = scanner.peek()
        if not ch or ch not in "0123456789abcdefABCDEF":
            scanner.error(f"invalid unicode escape, expected {width} hex digits")
        digits.append(scanner.advance())
    return int("".join(digits), 16)


def decode_uchar(scanner: Scanner) -> str:
    """Decode a `\\uXXXX` (with surrogate pairs) or `\\UXXXXXXXX` escape."""
    if scanner.consume("\\U"):
        codepoint = _read_hex(scanner, 8)
        if codepoint > 0x10FFFF or 0xD800 <= codepoint <= 0xDFFF:
            scanner.error("escaped code point is not a Unicode scalar value")
        return chr(codepoint)
    scanner.expect("\\u", "expected unicode escape")
    codepoint = _read_hex(scanner, 4)
    if 0xDC00 <= codepoint <= 0xDFFF:
        scanner.error("lone low surrogate is not allowed")
    if 0xD800 <= codepoint <= 0xDBFF:
        if not scanner.consume("\\u"):
            scanner.error("high surrogate must be followed by low surrogate")
        low = _read_hex(scanner, 4)
        if not 0xDC00 <= low <= 0xDFFF:
            scanner.error("invalid low surrogate in pair")
        codepoint = 0x10000 + ((codepoint - 0xD800) << 10) + (low - 0xDC00)
    return chr(codepoint)


ECHAR_DECODE = {
    "t": "\t",
    "b": "\b",
    "n": "\n",
    "r": "\r",
    "f": "\f",
    '"': '"',
    "'": "'",
    "\\": "\\",
}


def validate_iri(value: str, require_absolute: bool = True) -> None:
    """Validate an IRI value, raising `ValueError` on the first problem."""
    if not value:
        raise ValueError("IRI must not be empty")
    for ch in value:
        if ord(ch) <= 0x20:
            raise ValueError(f"IRI contains whitespace/control: {value!r}")
        if ch in IRI_FORBIDDEN:
            raise ValueError(f"IRI contains forbidden character {ch!r}: {value!r}")
    if require_absolute and not urlsplit(value).scheme:
        raise ValueError(f"IRI must be absolute: {value!r}")


def parse_iri_ref(scanner: Scanner) -> str:
    """Parse an absolute `<...>` IRI reference."""
    scanner.expect("<")
    chars: list[str] = []
    while True:
        if scanner.eof():
            scanner.error("unterminated IRI")
        ch = scanner.peek()
        if ch == ">":
            scanner.advance()
            break
        if ch == "\\":
            chars.append(decode_uchar(scanner))
        else:
            chars.append(scanner.advance())
    iri = "".join(chars)
    try:
        validate_iri(iri)
    except ValueError as exc:
        scanner.error(str(exc))
    return iri


def parse_string_literal(scanner: Scanner) -> str:
    """Parse a double-quoted N-Triples string and return its decoded value."""
    scanner.expect('"')
    out: list[str] = []
    while True:
        if scanner.eof():
            scanner.error("unterminated string")
        ch = scanner.peek()
        if ch == '"':
            scanner.advance()
            return "".join(out)
        if ch in "\n\r":
            scanner.error("newline in string literal")
        if ch != "\\":
            out.append(scanner.advance())
            continue
        esc = scanner.peek(1)
        if esc in ("u", "U"):
            out.append(decode_uchar(scanner))
            continue
        if esc not in ECHAR_DECODE or esc == "'":
            scanner.error("invalid escape sequence")
        scanner.advance()
        scanner.advance()
        out.append(ECHAR_DECODE[esc])


def parse_lang_dir(scanner: Scanner) -> tuple[str, str | None]:
    """Parse an `@lang` or `@lang--dir` suffix."""
    scanner.expect("@")
    subtags: list[str] = []
    while True:
        segment = []
        while scanner.peek().isascii() and (
            scanner.peek().isalpha() or (subtags and scanner.peek().isdigit())
        ):
            segment.append(scanner.advance())
        if not segment:
            scanner.error("empty language subtag")
        if len(segment) > 8:
            scanner.error("language subtag too long")
        subtags.append("".join(segment).lower())
        if scanner.peek() == "-" and scanner.peek(1) != "-":
            scanner.advance()
            continue
        break
    direction = None
    if scanner.consume("--"):
        letters = []
        while scanner.peek().isalpha():
            letters.append(scanner.advance())
        direction = "".join(letters)
        if direction not in ("ltr", "rtl"):
            scanner.error("text direction must be 'ltr' or 'rtl'")
    return "-".join(subtags), direction


class NQuadsParser:
    """Reader for RDF 1.2 N-Triples and N-Quads documents.

    Blank node labels are kept as written so that they can serve as input
    identifiers for canonicalization.
    """

    def __init__(self, text: str, source: str, allow_graph: bool = True):
        """Initialize a parser over `text`."""
        self.scanner = Scanner(text, source)
        self.allow_graph = allow_graph
        self.quads: list[Quad] = []
        self.labels: dict[BNode, str] = {}

    def parse(self) -> list[Quad]:
        """Parse the whole document and return its statements as quads."""
        while True:
            skip_ws_comments(self.scanner)
            if self.scanner.eof():
                return self.quads
            if self.scanner.startswith("VERSION") and not is_pn_chars(
                self.scanner.peek(len("VERSION"))
            ):
                self.parse_version_directive()
                continue
            self.parse_statement()

    def parse_version_directive(self) -> None:
        """Skip a `VERSION "..."` directive."""
        self.scanner.expect("VERSION")
        skip_ws_comments(self.scanner)
        parse_string_literal(self.scanner)

    def parse_statement(self) -> None:
        """Parse one statement terminated by `.`."""
        subject = self.parse_subject()
        skip_ws_comments(self.scanner)
        predicate = self.parse_predicate()
        skip_ws_comments(self.scanner)
        obj = self.parse_object()
        skip_ws_comments(self.scanner)
        graph: GraphLabel | None = None
        if not self.scanner.eof() and not self.scanner.startswith("."):
            if not self.allow_graph:
                self.scanner.error("expected '.' to end N-Triples statement")
            graph = self.parse_graph_label()
            skip_ws_comments(self.scanner)
        self.scanner.expect(".", "expected '.' to end statement")
        self.quads.append((subject, predicate, obj, graph))

    def parse_subject(self) -> IRI | BNode:
        """Parse the subject position."""
        if self.scanner.peek() == "<":
            self._reject_triple_term()
            return IRI(parse_iri_ref(self.scanner))
        if self.scanner.startswith("_:"):
            return self.parse_blank_node()
        self.scanner.error("subject must be IRI or blank node")

    def parse_predicate(self) -> IRI:
        """Parse the predicate position."""
        if self.scanner.peek() != "<":
            self.scanner.error("predicate must be IRI")
        return IRI(parse_iri_ref(self.scanner))

    def parse_object(self) -> Term:
        """Parse the object position."""
        ch = self.scanner.peek()
        if ch == "<":
            self._reject_triple_term()
            return IRI(parse_iri_ref(self.scanner))
        if self.scanner.startswith("_:"):
            return self.parse_blank_node()
        if ch == '"':
            return self.parse_literal()
        self.scanner.error("object must be IRI, blank node, or literal")

    def parse_graph_label(self) -> GraphLabel:
        """Parse the optional graph label position."""
        if self.scanner.peek() == "<":
            return IRI(parse_iri_ref(self.scanner))
        if self.scanner.startswith("_:"):
            return self.parse_blank_node()
        self.scanner.error("graph label must be IRI or blank node")

    def parse_literal(self) -> Literal:
        """Parse a literal with optional language tag or datatype."""
        value = parse_string_literal(self.scanner)
        if self.scanner.consume("^^"):
            datatype = parse_iri_ref(self.scanner)
            if datatype in (RDF_LANG_STRING_IRI, RDF_DIR_LANG_STRING_IRI):
                self.scanner.error(
                    "rdf:langString and rdf:dirLangString datatypes are not allowed"
                )
            return Literal(value, datatype=datatype)
        if self.scanner.peek() == "@":
            lang, direction = parse_lang_dir(self.scanner)
            return Literal(value, lang=lang, direction=direction)
        return Literal(value)

    def parse_blank_node(self) -> BNode:
        """Parse a `_:label` token."""
        self.scanner.expect("_:")
        first = self.scanner.peek()
        if not (is_pn_chars_u(first) or first.isdigit()):
            self.scanner.error("invalid blank node label")
        chars = [self.scanner.advance()]
        while True:
            ch = self.scanner.peek()
            if is_pn_chars(ch):
                chars.append(self.scanner.advance())
                continue
            dots = 0
            while self.scanner.peek(dots) == ".":
                dots += 1
            if not dots or not is_pn_chars(self.scanner.peek(dots)):
                break
            for _ in range(dots):
                chars.append(self.scanner.advance())
        label = "".join(chars)
        node = BNode(label)
        self.labels[node] = label
        return node

    def _reject_triple_term(self) -> None:
        """Raise a parse error on an RDF 1.2 triple term."""
        if self.scanner.startswith("<<"):
            self.scanner.error("triple terms are not supported")


def parse_ntriples(text: str, source: str = "<string>") -> list[Triple]:
    """Parse N-Triples text and return a list of RDF triples."""
    parser = NQuadsParser(text=text, source=source, allow_graph=False)
    return [(s, p, o) for s, p, o, _ in parser.parse()]


def parse_nquads(text: str, source: str = "<string>") -> list[Quad]:
    """Parse N-Quads text and return a list of RDF quads."""
    return NQuadsParser(text=text, source=source).parse()


def parse_nquads_dataset(
    text: str, source: str = "<string>"
) -> tuple[list[Quad], dict[BNode, str]]:
    """Parse N-Quads text and also return the blank node labels it used."""
    parser = NQuadsParser(text=text, source=source)
    quads = parser.parse()
    return quads, parser.labels


def triples_to_quads(
    triples: Iterable[Triple],
    *,
    graph_label: GraphLabel | None = None,
) -> list[Quad]:
    """Lift triples into one dataset graph."""
    quads: list[Quad] = []
    for triple in triples:
        if len(triple) != 3:
            raise InvalidInputError(f"expected a triple, got {len(triple)} terms: {triple!r}")
        subject, predicate, obj = triple
        quads.append((subject, predicate, obj, graph_label))
    return quads


# ---------------------------------------------------------------------------
# Canonical N-Quads rendering
# ---------------------------------------------------------------------------

CANONICAL_ECHARS = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def escape_literal_canonical(value: str) -> str:
    """Escape a literal's lexical form the way canonical N-Quads requires."""
    out: list[str] = []
    for ch in value:
        escaped = CANONICAL_ECHARS.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ord(ch) < 0x20 or ch == "\x7f":
            out.append(f"\\u{ord(ch):04X}")
        else:
            out.append(ch)
    return "".join(out)


def format_term_canonical(term: Term, bnode_label: Callable[[BNode], str]) -> str:
    """Format one term in canonical N-Quads form.

    `bnode_label` supplies the label written after `_:` for blank nodes, which
    lets the same renderer produce hashing input and final output.
    """
    if isinstance(term, IRI):
        return f"<{term.value}>"
    if isinstance(term, BNode):
        return f"_:{bnode_label(term)}"
    if isinstance(term, Literal):
        base = f'"{escape_literal_canonical(term.value)}"'
        if term.lang is not None:
            if term.direction is not None:
                return f"{base}@{term.lang}--{term.direction}"
            return f"{base}@{term.lang}"
        if term.datatype is not None:
            return f"{base}^^<{term.datatype}>"
        return base
    raise TypeError(f"unsupported term type: {type(term)!r}")


def serialize_quad_canonical(quad: Quad, bnode_label: Callable[[BNode], str]) -> str:
    """Render one quad as a canonical N-Quads statement without the newline."""
    subject, predicate, obj, graph_label = quad
    parts = [
        format_term_canonical(subject, bnode_label),
        format_term_canonical(predicate, bnode_label),
        format_term_canonical(obj, bnode_label),
    ]
    if graph_label is not None:
        parts.append(format_term_canonical(graph_label, bnode_label))
    parts.append(".")
    return " ".join(parts)


def _own_label(node: BNode) -> str:
    """Return the label a blank node already carries."""
    return node.label


def serialize_nquads(quads: Iterable[Quad], *, sort: bool = False) -> str:
    """Serialize quads to N-Quads text using the blank node labels as they are."""
    lines = [serialize_quad_canonical(quad, _own_label) for quad in quads]
    if sort:
        lines.sort()
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Options and input checking
# ---------------------------------------------------------------------------


def normalize_hash_algorithm(value: str) -> str:
    """Map a user-facing hash algorithm name to its `hashlib` name."""
    name = HASH_ALGORITHMS.get(str(value).strip().lower().replace("_", "-"))
    if name is None:
        supported = ", ".join(sorted({"sha256", "sha384"}))
        raise UnsupportedHashAlgorithmError(
            f"unsupported hash algorithm: {value!r} (supported: {supported})"
        )
    return name


@dataclass(frozen=True)
class CanonicalizationOptions:
    """Hash algorithm, canonical label prefix, and search budget for one run."""
    hash_algorithm: str = "sha256"
    prefix: str = DEFAULT_PREFIX
    max_permutations: int | None = DEFAULT_MAX_PERMUTATIONS
    max_recursion_depth: int | None = DEFAULT_MAX_RECURSION_DEPTH

    def __post_init__(self) -> None:
        """Normalize the hash algorithm name and validate prefix and limits."""
        object.__setattr__(
            self, "hash_algorithm", normalize_hash_algorithm(self.hash_algorithm)
        )
        if not self.prefix or not is_valid_bnode_label(f"{self.prefix}0"):
            raise InvalidInputError(
                f"canonical prefix {self.prefix!r} does not form valid blank node labels"
            )
        for name in ("max_permutations", "max_recursion_depth"):
            limit = getattr(self, name)
            if limit is not None and (isinstance(limit, bool) or limit < 1):
                raise ValueError(f"{name} must be a positive integer or None")


def _check_iri(value: object, role: str) -> None:
    """Raise `InvalidInputError` unless `value` is an absolute IRI string."""
    if not isinstance(value, str):
        raise InvalidInputError(f"{role} IRI must be a string, got {type(value).__name__}")
    try:
        validate_iri(value)
    except ValueError as exc:
        raise InvalidInputError(f"invalid {role} IRI: {exc}") from exc


def _check_term(term: object, role: str, allowed: tuple[type, ...]) -> None:
    """Raise `InvalidInputError` unless `term` is a well-formed allowed term."""
    if not isinstance(term, allowed):
        names = " or ".join(cls.__name__ for cls in allowed)
        raise InvalidInputError(f"{role} must be {names}, got {term!r}")
    if isinstance(term, IRI):
        _check_iri(term.value, role)
    elif isinstance(term, BNode):
        if not isinstance(term.label, str) or not term.label:
            raise InvalidInputError(f"{role} blank node has no label: {term!r}")
    elif isinstance(term, Literal):
        if not isinstance(term.value, str):
            raise InvalidInputError(f"literal value must be a string: {term!r}")
        if term.lang is not None and (
            not isinstance(term.lang, str) or not is_valid_language_tag(term.lang)
        ):
            raise InvalidInputError(f"invalid literal language tag: {term!r}")
        if term.lang is not None and term.datatype is not None:
            raise InvalidInputError(f"literal cannot have both language and datatype: {term!r}")
        if term.direction is not None and (
            term.lang is None or term.direction not in ("ltr", "rtl")
        ):
            raise InvalidInputError(f"invalid literal base direction: {term!r}")
        if term.datatype is not None:
            _check_iri(term.datatype, "datatype")


def normalize_quad(quad: object) -> Quad:
    """Validate a triple or quad and return it as a 4-tuple."""
    if not isinstance(quad, (tuple, list)) or len(quad) not in (3, 4):
        raise InvalidInputError(f"expected a 3- or 4-tuple of terms, got {quad!r}")
    subject, predicate, obj = quad[:3]
    graph_label = quad[3] if len(quad) == 4 else None
    _check_term(subject, "subject", (IRI, BNode))
    _check_term(predicate, "predicate", (IRI,))
    _check_term(obj, "object", (IRI, BNode, Literal))
    if graph_label is not None:
        _check_term(graph_label, "graph name", (IRI, BNode))
    return (subject, predicate, obj, graph_label)


def _blank_nodes(quad: Quad) -> Iterator[BNode]:
    """Yield the blank nodes in subject, object, and graph position."""
    for term in (quad[0], quad[2], quad[3]):
        if isinstance(term, BNode):
            yield term


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------


class IdentifierIssuer:
    """Issues `prefix0`, `prefix1`, ... to input identifiers in first-seen order."""

    def __init__(self, prefix: str):
        """Initialize an issuer for labels starting with `prefix`."""
        self.prefix = prefix
        self.counter = 0
        self._issued: dict[str, str] = {}

    def issue(self, identifier: str) -> str:
        """Return the identifier issued for `identifier`, minting one if needed."""
        issued = self._issued.get(identifier)
        if issued is None:
            issued = f"{self.prefix}{self.counter}"
            self._issued[identifier] = issued
            self.counter += 1
        return issued

    def is_issued(self, identifier: str) -> bool:
        """Return whether `identifier` already has an issued identifier."""
        return identifier in self._issued

    def get(self, identifier: str) -> str | None:
        """Return the issued identifier for `identifier`, or None."""
        return self._issued.get(identifier)

    @property
    def issued_order(self) -> list[str]:
        """Input identifiers in the order they were issued."""
        return list(self._issued)

    @property
    def issued_map(self) -> dict[str, str]:
        """Copy of the input to issued identifier mapping."""
        return dict(self._issued)

    def clone(self) -> IdentifierIssuer:
        """Snapshot this issuer; the copy evolves independently."""
        copy = IdentifierIssuer(self.prefix)
        copy.counter = self.counter
        copy._issued = dict(self._issued)
        return copy

    def __len__(self) -> int:
        """Return how many identifiers were issued."""
        return len(self._issued)

    def __repr__(self) -> str:
        """Return a debug representation of the issued mapping."""
        return f"IdentifierIssuer(prefix={self.prefix!r}, issued={self._issued!r})"


@dataclass
class CanonicalizationState:
    """Working set of one canonicalization run; discarded afterwards."""
    quads: list[Quad]
    blank_node_identifiers: dict[BNode, str]
    blank_node_to_quads: dict[str, list[Quad]]
    canonical_issuer: IdentifierIssuer
    hash_to_blank_nodes: dict[str, list[str]] = field(default_factory=dict)
    first_degree_hashes: dict[str, str] = field(default_factory=dict)
    permutations_explored: int = 0
    n_degree_calls: int = 0

    @classmethod
    def build(
        cls,
        dataset: Iterable[Quad],
        options: CanonicalizationOptions,
        input_labels: dict[BNode, str] | None = None,
    ) -> CanonicalizationState:
        """Deduplicate quads, assign input identifiers, and index mentions."""
        quads = list(dict.fromkeys(normalize_quad(quad) for quad in dataset))
        supplied = dict(input_labels or {})
        for node, label in supplied.items():
            if not isinstance(label, str) or not label:
                raise InvalidInputError(f"input label for {node!r} must be a non-empty string")
        if len(set(supplied.values())) != len(supplied):
            raise InvalidInputError("input labels must be unique per blank node")

        used = set(supplied.values())
        counter = 0
        identifiers: dict[BNode, str] = {}
        mentions: dict[str, list[Quad]] = {}
        for quad in quads:
            seen: set[str] = set()
            for node in _blank_nodes(quad):
                identifier = identifiers.get(node)
                if identifier is None:
                    identifier = supplied.get(node)
                    if identifier is None:
                        while f"n{counter}" in used:
                            counter += 1
                        identifier = f"n{counter}"
                        used.add(identifier)
                    identifiers[node] = identifier
                if identifier not in seen:
                    seen.add(identifier)
                    mentions.setdefault(identifier, []).append(quad)
        return cls(
            quads=quads,
            blank_node_identifiers=identifiers,
            blank_node_to_quads=mentions,
            canonical_issuer=IdentifierIssuer(options.prefix),
        )


def _path_exceeds(path: str, chosen_path: str) -> bool:
    """Return whether `path` can no longer beat `chosen_path`."""
    return bool(chosen_path) and len(path) >= len(chosen_path) and path > chosen_path


class BlankNodeHasher:
    """First-degree and N-degree hashing over one `CanonicalizationState`."""

    def __init__(self, state: CanonicalizationState, options: CanonicalizationOptions):
        """Initialize a hasher over `state`."""
        self.state = state
        self.options = options

    def hash_string(self, data: str) -> str:
        """Return the hex digest of `data` with the configured algorithm."""
        return hashlib.new(self.options.hash_algorithm, data.encode("utf-8")).hexdigest()

    def hash_first_degree(self, identifier: str) -> str:
        """Hash the quads mentioning `identifier` with all blank nodes anonymized.

        The node itself is written `_:a` and every other blank node `_:z`, so
        two nodes with the same one-hop pattern hash alike. Results are cached.
        """
        cached = self.state.first_degree_hashes.get(identifier)
        if cached is not None:
            return cached
        identifiers = self.state.blank_node_identifiers

        def marker(node: BNode) -> str:
            return "a" if identifiers[node] == identifier else "z"

        lines = sorted(
            serialize_quad_canonical(quad, marker) + "\n"
            for quad in self.state.blank_node_to_quads[identifier]
        )
        digest = self.hash_string("".join(lines))
        self.state.first_degree_hashes[identifier] = digest
        return digest

    def hash_related_blank_node(
        self, related: str, quad: Quad, issuer: IdentifierIssuer, position: str
    ) -> str:
        """Hash how `related` is attached to the reference node in `quad`."""
        issued = self.state.canonical_issuer.get(related)
        if issued is None:
            issued = issuer.get(related)
        label = f"_:{issued}" if issued is not None else self.hash_first_degree(related)
        data = position
        if position != "g":
            data += f"<{quad[1].value}>"
        return self.hash_string(data + label)

    def related_hashes(
        self, identifier: str, issuer: IdentifierIssuer
    ) -> dict[str, list[str]]:
        """Group the blank nodes co-occurring with `identifier` by related hash."""
        identifiers = self.state.blank_node_identifiers
        groups: dict[str, list[str]] = {}
        for quad in self.state.blank_node_to_quads[identifier]:
            for position, term in (("s", quad[0]), ("o", quad[2]), ("g", quad[3])):
                if not isinstance(term, BNode):
                    continue
                related = identifiers[term]
                if related == identifier:
                    continue
                digest = self.hash_related_blank_node(related, quad, issuer, position)
                groups.setdefault(digest, []).append(related)
        return groups

    def hash_n_degree(
        self,
        identifier: str,
        issuer: IdentifierIssuer,
        exploring: frozenset[str] = frozenset(),
    ) -> tuple[str, IdentifierIssuer]:
        """Resolve `identifier` against its first-degree twins.

        Every ordering of each related-hash group is tried with a cloned
        issuer; the lexicographically smallest path wins and its issuer is
        carried forward. Returns the hash of the chosen paths and that issuer.
        """
        if identifier in exploring:
            raise InternalConsistencyError(
                f"blank node {identifier!r} re-entered while already being explored"
            )
        depth_limit = self.options.max_recursion_depth
        if depth_limit is not None and len(exploring) >= depth_limit:
            raise ResourceLimitExceededError(
                f"N-degree recursion deeper than max_recursion_depth={depth_limit}"
            )
        exploring = exploring | {identifier}
        self.state.n_degree_calls += 1

        groups = self.related_hashes(identifier, issuer)
        data_to_hash: list[str] = []
        for related_hash in sorted(groups):
            nodes = groups[related_hash]
            data_to_hash.append(related_hash)
            self._reserve_permutations(len(nodes))
            chosen_path = ""
            chosen_issuer: IdentifierIssuer | None = None
            for permutation in itertools.permutations(nodes):
                self.state.permutations_explored += 1
                outcome = self._explore_permutation(
                    permutation, issuer, chosen_path, exploring
                )
                if outcome is not None:
                    chosen_path, chosen_issuer = outcome
            if chosen_issuer is None:
                raise InternalConsistencyError(
                    f"no permutation chosen for related hash {related_hash}"
                )
            data_to_hash.append(chosen_path)
            issuer = chosen_issuer
        return self.hash_string("".join(data_to_hash)), issuer

    def _explore_permutation(
        self,
        permutation: tuple[str, ...],
        issuer: IdentifierIssuer,
        chosen_path: str,
        exploring: frozenset[str],
    ) -> tuple[str, IdentifierIssuer] | None:
        """Build the path for one ordering, or return None once it cannot win."""
        issuer_copy = issuer.clone()
        path = ""
        recursion_list: list[str] = []
        for related in permutation:
            issued = self.state.canonical_issuer.get(related)
            if issued is None:
                if not issuer_copy.is_issued(related):
                    recursion_list.append(related)
                issued = issuer_copy.issue(related)
            path += f"_:{issued}"
            if _path_exceeds(path, chosen_path):
                return None
        for related in recursion_list:
            related_hash, result_issuer = self.hash_n_degree(
                related, issuer_copy, exploring
            )
            path += f"_:{issuer_copy.issue(related)}<{related_hash}>"
            issuer_copy = result_issuer
            if _path_exceeds(path, chosen_path):
                return None
        if not chosen_path or path < chosen_path:
            return path, issuer_copy
        return None

    def _reserve_permutations(self, group_size: int) -> None:
        """Fail before enumerating a group whose orderings exceed the budget."""
        limit = self.options.max_permutations
        if limit is None:
            return
        needed = math.factorial(group_size)
        if self.state.permutations_explored + needed > limit:
            raise ResourceLimitExceededError(
                f"{group_size} interchangeable blank nodes need {needed} permutations; "
                f"{self.state.permutations_explored} already explored, "
                f"max_permutations={limit}"
            )


@dataclass
class CanonicalizedDataset:
    """Outcome of one canonicalization run.

    Quads keep their original blank nodes; `issued_identifiers` maps each of
    them to its canonical label.
    """
    quads: list[Quad]
    input_identifiers: dict[BNode, str]
    issued_identifiers: dict[BNode, str]
    stats: dict[str, int]

    @property
    def identifier_map(self) -> dict[str, str]:
        """Input identifier to canonical identifier, in canonical order."""
        return {
            self.input_identifiers[node]: issued
            for node, issued in self.issued_identifiers.items()
        }

    def relabeled_quads(self) -> list[Quad]:
        """Return the quads with every blank node replaced by its canonical one."""
        canonical = {node: BNode(label) for node, label in self.issued_identifiers.items()}
        relabeled: list[Quad] = []
        for subject, predicate, obj, graph_label in self.quads:
            relabeled.append(
                (
                    canonical.get(subject, subject),
                    predicate,
                    canonical.get(obj, obj),
                    canonical.get(graph_label, graph_label),
                )
            )
        return relabeled

    def to_nquads(self) -> str:
        """Render the canonical N-Quads document."""
        lines = sorted(
            serialize_quad_canonical(quad, self.issued_identifiers.__getitem__)
            for quad in self.quads
        )
        if not lines:
            return ""
        return "\n".join(lines) + "\n"


def _issue_unique_identifiers(
    state: CanonicalizationState, hasher: BlankNodeHasher
) -> list[str]:
    """Issue canonical ids for singleton hash buckets; return the other hashes."""
    for identifier in state.blank_node_to_quads:
        digest = hasher.hash_first_degree(identifier)
        state.hash_to_blank_nodes.setdefault(digest, []).append(identifier)

    non_unique: list[str] = []
    for digest in sorted(state.hash_to_blank_nodes):
        identifiers = state.hash_to_blank_nodes[digest]
        if len(identifiers) == 1:
            state.canonical_issuer.issue(identifiers[0])
        else:
            non_unique.append(digest)
    logger.debug(
        "first-degree hashing: %d unique, %d shared hashes",
        len(state.hash_to_blank_nodes) - len(non_unique),
        len(non_unique),
    )
    return non_unique


def _resolve_shared_hash(
    state: CanonicalizationState, hasher: BlankNodeHasher, digest: str
) -> None:
    """Issue canonical ids to one shared first-degree bucket via N-degree hashing."""
    results: list[tuple[str, IdentifierIssuer]] = []
    for identifier in state.hash_to_blank_nodes[digest]:
        if state.canonical_issuer.is_issued(identifier):
            continue
        temporary = IdentifierIssuer(TEMPORARY_PREFIX)
        temporary.issue(identifier)
        try:
            results.append(hasher.hash_n_degree(identifier, temporary))
        except RecursionError as exc:
            raise ResourceLimitExceededError(
                "N-degree recursion exhausted the interpreter stack; "
                "set max_recursion_depth to bound it"
            ) from exc
    results.sort(key=lambda result: result[0])
    for n_degree_hash, issuer in results:
        logger.debug("replaying %d identifiers for %s", len(issuer), n_degree_hash)
        for identifier in issuer.issued_order:
            state.canonical_issuer.issue(identifier)


def canonicalize_dataset(
    dataset: Iterable[Quad],
    options: CanonicalizationOptions | None = None,
    *,
    input_labels: dict[BNode, str] | None = None,
) -> CanonicalizedDataset:
    """Run RDFC-1.0 over `dataset` and return the canonical label assignment."""
    opts = options or CanonicalizationOptions()
    state = CanonicalizationState.build(dataset, opts, input_labels=input_labels)
    logger.debug(
        "canonicalizing %d quads with %d blank nodes (%s)",
        len(state.quads),
        len(state.blank_node_identifiers),
        opts.hash_algorithm,
    )

    non_unique: list[str] = []
    if state.blank_node_to_quads:
        hasher = BlankNodeHasher(state, opts)
        non_unique = _issue_unique_identifiers(state, hasher)
        for digest in non_unique:
            _resolve_shared_hash(state, hasher, digest)

    nodes_by_identifier = {
        identifier: node for node, identifier in state.blank_node_identifiers.items()
    }
    missing = set(nodes_by_identifier) - set(state.canonical_issuer.issued_order)
    if missing:
        raise InternalConsistencyError(
            f"no canonical identifier issued for blank nodes {sorted(missing)!r}"
        )
    issued: dict[BNode, str] = {
        nodes_by_identifier[identifier]: canonical
        for identifier, canonical in state.canonical_issuer.issued_map.items()
    }

    stats = {
        "quads": len(state.quads),
        "blank_nodes": len(state.blank_node_identifiers),
        "first_degree_hashes": len(state.first_degree_hashes),
        "unique_hashes": len(state.hash_to_blank_nodes) - len(non_unique),
        "shared_hashes": len(non_unique),
        "n_degree_calls": state.n_degree_calls,
        "permutations_explored": state.permutations_explored,
    }
    logger.debug("canonicalization finished: %s", stats)
    return CanonicalizedDataset(
        quads=state.quads,
        input_identifiers=dict(state.blank_node_identifiers),
        issued_identifiers=issued,
        stats=stats,
    )


def canonicalize(
    dataset: Iterable[Quad],
    options: CanonicalizationOptions | None = None,
    *,
    input_labels: dict[BNode, str] | None = None,
) -> str:
    """Return the canonical N-Quads serialization of `dataset`."""
    return canonicalize_dataset(dataset, options, input_labels=input_labels).to_nquads()


def canonicalize_graph(
    graph: Iterable[Triple], options: CanonicalizationOptions | None = None
) -> str:
    """Canonicalize triples as the default graph of a dataset."""
    return canonicalize(triples_to_quads(graph), options)


def canonicalize_nquads(
    text: str,
    options: CanonicalizationOptions | None = None,
    source: str = "<string>",
) -> str:
    """Parse N-Quads text and return its canonical form."""
    quads, labels = parse_nquads_dataset(text, source=source)
    return canonicalize(quads, options, input_labels=labels)


def is_isomorphic(
    a: Iterable[Quad], b: Iterable[Quad], options: CanonicalizationOptions | None = None
) -> bool:
    """Return whether two datasets differ only in blank node labels."""
    return canonicalize(a, options) == canonicalize(b, options)


def is_isomorphic_graphs(
    a: Iterable[Triple], b: Iterable[Triple], options: CanonicalizationOptions | None = None
) -> bool:
    """Return whether two graphs differ only in blank node labels."""
    return canonicalize_graph(a, options) == canonicalize_graph(b, options)


class CanonicalDataset:
    """Dataset wrapper whose equality and hash follow its canonical form.

    The canonical N-Quads text is computed on first use and cached, so the
    wrapper can be used as a dict key or set member and compared repeatedly
    at the cost of one canonicalization per instance.
    """

    def __init__(
        self, quads: Iterable[Quad], options: CanonicalizationOptions | None = None
    ):
        """Wrap `quads`; canonicalization is deferred until first needed."""
        self.quads = tuple(quads)
        self.options = options or CanonicalizationOptions()

    @cached_property
    def canonical_nquads(self) -> str:
        """Canonical N-Quads text, computed once."""
        return canonicalize(self.quads, self.options)

    def __eq__(self, other: object) -> bool:
        """Compare canonical forms of two wrappers of the same kind and options."""
        if self is other:
            return True
        if type(other) is not type(self):
            return NotImplemented
        return (
            self.options == other.options
            and self.canonical_nquads == other.canonical_nquads
        )

    def __hash__(self) -> int:
        """Hash the canonical N-Quads text."""
        return hash(self.canonical_nquads)

    def __len__(self) -> int:
        """Return the number of wrapped statements."""
        return len(self.quads)

    def __iter__(self) -> Iterator:
        """Iterate over the wrapped statements."""
        return iter(self.quads)

    def __repr__(self) -> str:
        """Return a short summary with the statement count."""
        return f"{type(self).__name__}({len(self.quads)} statements)"


class CanonicalGraph(CanonicalDataset):
    """Graph counterpart of `CanonicalDataset`; holds triples."""

    @cached_property
    def canonical_nquads(self) -> str:
        """Canonical N-Quads text of the graph as the default graph."""
        return canonicalize_graph(self.quads, self.options)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

FORMAT_ALIASES = {
    "nt": "nt",
    "ntriples": "nt",
    "n-triples": "nt",
    "nq": "nq",
    "nquads": "nq",
    "n-quads": "nq",
}

EXTENSION_FORMATS = {
    ".nt": "nt",
    ".nq": "nq",
    ".nquads": "nq",
}


def normalize_format(value: str) -> str:
    """Normalize a CLI format alias to the internal format key."""
    fmt = FORMAT_ALIASES.get(value.strip().lower())
    if fmt is None:
        raise ValueError(f"unsupported format: {value}")
    return fmt


def detect_format_from_path(path: str) -> str | None:
    """Infer the RDF format from a file extension."""
    if path == "-":
        return None
    return EXTENSION_FORMATS.get(Path(path).suffix.lower())


def read_input(path: str) -> str:
    """Read UTF-8 input text from a file or stdin."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def write_output(path: str, data: str) -> None:
    """Write output text to a file or stdout."""
    if path == "-":
        sys.stdout.write(data)
        return
    Path(path).write_text(data, encoding="utf-8")


def load_dataset(path: str, fmt: str | None) -> tuple[list[Quad], dict[BNode, str]]:
    """Read and parse an N-Triples or N-Quads document."""
    source_format = fmt or detect_format_from_path(path)
    if source_format is None:
        raise ValueError(f"could not infer format of {path}; provide --from")
    source_name = path if path != "-" else "<stdin>"
    parser = NQuadsParser(
        read_input(path), source=source_name, allow_graph=(source_format == "nq")
    )
    quads = parser.parse()
    return quads, parser.labels


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="rdf-canonicalize",
        description=(
            "Canonicalize an RDF dataset (N-Triples or N-Quads) with RDFC-1.0 "
            "and write canonical N-Quads."
        ),
    )
    parser.add_argument("input", help="Input file path, or '-' for stdin.")
    parser.add_argument(
        "output",
        nargs="?",
        default="-",
        help="Output file path, or '-' for stdout (default).",
    )
    parser.add_argument(
        "--from",
        dest="source_format",
        choices=sorted(FORMAT_ALIASES),
        help="Input format. If omitted, inferred from input extension.",
    )
    parser.add_argument(
        "--hash-algorithm",
        default="sha256",
        help="Digest used for blank node hashing: sha256 (default) or sha384.",
    )
    parser.add_argument(
        "--prefix",
        default=DEFAULT_PREFIX,
        help=f"Prefix of canonical blank node labels (default: {DEFAULT_PREFIX}).",
    )
    parser.add_argument(
        "--max-permutations",
        type=int,
        default=DEFAULT_MAX_PERMUTATIONS,
        help="Abort when the N-degree search would explore more permutations.",
    )
    parser.add_argument(
        "--compare",
        metavar="OTHER",
        default=None,
        help="Report whether INPUT and OTHER are isomorphic instead of writing output.",
    )
    parser.add_argument(
        "--map",
        action="store_true",
        help="Print the input label to canonical label map to stderr.",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print canonicalization statistics to stderr.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log algorithm progress to stderr.",
    )
    return parser


def emit_stats(stats: dict[str, int]) -> None:
    """Print canonicalization statistics to stderr."""
    print("stats:", file=sys.stderr)
    for key, value in stats.items():
        print(f"{key}: {value}", file=sys.stderr)


def emit_identifier_map(result: CanonicalizedDataset) -> None:
    """Print `_:input -> _:canonical` lines to stderr."""
    for input_id, canonical in result.identifier_map.items():
        print(f"_:{input_id} -> _:{canonical}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Run the `rdf-canonicalize` command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )

    try:
        fmt = normalize_format(args.source_format) if args.source_format else None
        options = CanonicalizationOptions(
            hash_algorithm=args.hash_algorithm,
            prefix=args.prefix,
            max_permutations=args.max_permutations,
        )
        quads, labels = load_dataset(args.input, fmt)

        if args.compare is not None:
            other_quads, other_labels = load_dataset(args.compare, fmt)
            left = canonicalize(quads, options, input_labels=labels)
            right = canonicalize(other_quads, options, input_labels=other_labels)
            same = left == right
            print("isomorphic" if same else "not isomorphic")
            return 0 if same else 1

        result = canonicalize_dataset(quads, options, input_labels=labels)
        write_output(args.output, result.to_nquads())
        if args.map:
            emit_identifier_map(result)
        if args.stats:
            emit_stats(result.stats)
        return 0
    except (ParseError, CanonicalizationError, ValueError, OSError) as exc:
        parser.exit(status=2, message=f"Error: {exc}\n")


if __name__ == "__main__":
    raise SystemExit(main())
