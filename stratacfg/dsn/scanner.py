"""
Tokenizer for DSN templates.

A template is literal text interleaved with ${...} placeholders. Matching is
deliberately non-nested: a placeholder starts at "${" and ends at the first
following "}".

Placeholder kinds:
    ${.name} / ${name}     field of the same structure (dotted for nesting)
    ${env:KEY}             environment variable, empty when unset
    ${ref:scheme:///path#fragment}
                           value from a registered resolver
"""

from dataclasses import dataclass

from stratacfg.exceptions import DsnSyntaxError

FIELD = "field"
ENV = "env"
REF = "ref"

_OPEN = "${"
_CLOSE = "}"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    kind: str
    body: str
    raw: str


Token = Literal | Placeholder


def _classify(inner: str, raw: str) -> Placeholder:
    if inner.startswith("env:"):
        name = inner[len("env:") :].strip()
        if not name:
            raise DsnSyntaxError("empty env placeholder", placeholder=raw)
        return Placeholder(ENV, name, raw)
    if inner.startswith("ref:"):
        uri = inner[len("ref:") :].strip()
        if not uri:
            raise DsnSyntaxError("empty ref placeholder", placeholder=raw)
        try:
            parse_ref(uri)
        except DsnSyntaxError as e:
            raise DsnSyntaxError(e.message, placeholder=raw) from e
        return Placeholder(REF, uri, raw)

    path = inner.strip()
    if path.startswith("."):
        path = path[1:]
    if not path or any(not part for part in path.split(".")):
        raise DsnSyntaxError("invalid field reference", placeholder=raw)
    return Placeholder(FIELD, path, raw)


def scan(template: str) -> list[Token]:
    """
    Split a template into literal and placeholder tokens, left to right.

    Raises:
        DsnSyntaxError: On an unterminated or empty placeholder
    """
    tokens: list[Token] = []
    pos = 0
    while True:
        start = template.find(_OPEN, pos)
        if start == -1:
            break
        end = template.find(_CLOSE, start + len(_OPEN))
        if end == -1:
            raise DsnSyntaxError(
                "unterminated placeholder", placeholder=template[start:]
            )
        if start > pos:
            tokens.append(Literal(template[pos:start]))
        raw = template[start : end + 1]
        inner = template[start + len(_OPEN) : end]
        if not inner.strip():
            raise DsnSyntaxError("empty placeholder", placeholder=raw)
        tokens.append(_classify(inner, raw))
        pos = end + 1

    if pos < len(template):
        tokens.append(Literal(template[pos:]))
    return tokens


def references(template: str) -> list[str]:
    """Return the field references of a template, in order of appearance."""
    return [
        t.body
        for t in scan(template)
        if isinstance(t, Placeholder) and t.kind == FIELD
    ]


@dataclass(frozen=True)
class RefURI:
    scheme: str
    path: str
    fragment: str | None


def parse_ref(uri: str) -> RefURI:
    """
    Parse the body of a ref: placeholder.

    Accepts "scheme:///abs/path#frag", "scheme://host/path" and
    "scheme:path". The path keeps a leading "/" only for the triple-slash
    form.

    Raises:
        DsnSyntaxError: If no scheme is present
    """
    scheme, sep, rest = uri.partition(":")
    if not sep or not scheme or not scheme.replace("+", "").replace("-", "").isalnum():
        raise DsnSyntaxError("ref placeholder needs a scheme", placeholder=uri)

    if rest.startswith("//"):
        rest = rest[2:]
    path, hash_sep, fragment = rest.partition("#")
    return RefURI(
        scheme=scheme.lower(), path=path, fragment=fragment if hash_sep else None
    )
