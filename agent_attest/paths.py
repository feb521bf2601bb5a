"""
Path codec: git's quoted path rendering <-> canonical UTF-8 paths.

With ``core.quotepath`` on (git's default), any path containing bytes
``>= 0x80``, control characters, ``"`` or ``\\`` is printed inside double
quotes with C-style escapes, e.g. ``"\\344\\270\\255\\346\\226\\207.txt"``
for ``中文.txt``.  Paths read from diff, blame and log output are decoded
here before they are used as keys anywhere else.

Decoding never substitutes characters: an escape git would not produce or
bytes that are not valid UTF-8 raise ``PathDecodeError``.
"""

from __future__ import annotations

from .errors import PathDecodeError


# Escapes git writes for specific bytes (quote.c ``cq_lookup``)
_NAMED_ESCAPES: dict[int, bytes] = {
    0x07: b"a",
    0x08: b"b",
    0x09: b"t",
    0x0A: b"n",
    0x0B: b"v",
    0x0C: b"f",
    0x0D: b"r",
    0x22: b'"',
    0x5C: b"\\",
}

_UNESCAPES: dict[int, int] = {ord(v): k for k, v in _NAMED_ESCAPES.items()}

_OCTAL = b"01234567"


def _needs_quoting(byte: int) -> bool:
    return byte < 0x20 or byte == 0x7F or byte >= 0x80 or byte in (0x22, 0x5C)


def _as_bytes(raw: bytes | str) -> bytes:
    if isinstance(raw, str):
        # str input came from a text-mode read; recover the original bytes
        return raw.encode("utf-8", "surrogateescape")
    return raw


# -------------------------------------------------------------------
# Quoted-string scanning
# -------------------------------------------------------------------

def _scan_quoted(raw: bytes, start: int = 0) -> tuple[bytes, int]:
    """Unquote the C-style string beginning at ``raw[start]``.

    Returns ``(unescaped_bytes, index_after_closing_quote)``.
    """
    if raw[start:start + 1] != b'"':
        raise PathDecodeError(raw, "expected opening quote")

    out = bytearray()
    i = start + 1
    n = len(raw)
    while i < n:
        c = raw[i]
        if c == 0x22:
            return bytes(out), i + 1
        if c != 0x5C:
            out.append(c)
            i += 1
            continue

        # Backslash escape
        if i + 1 >= n:
            raise PathDecodeError(raw, "trailing backslash")
        esc = raw[i + 1]
        if esc in _UNESCAPES:
            out.append(_UNESCAPES[esc])
            i += 2
            continue
        if esc in _OCTAL:
            digits = raw[i + 1:i + 4]
            if len(digits) != 3 or any(d not in _OCTAL for d in digits):
                raise PathDecodeError(raw, f"truncated octal escape at offset {i}")
            value = int(digits, 8)
            if value > 0xFF:
                raise PathDecodeError(raw, f"octal escape out of range at offset {i}")
            out.append(value)
            i += 4
            continue
        raise PathDecodeError(raw, f"unknown escape \\{chr(esc)} at offset {i}")

    raise PathDecodeError(raw, "missing closing quote")


def _utf8(data: bytes, raw: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PathDecodeError(raw, f"invalid UTF-8 at byte {e.start}") from e


# -------------------------------------------------------------------
# Public codec
# -------------------------------------------------------------------

def decode(raw: bytes | str) -> str:
    """Decode a path as printed by git into its canonical UTF-8 form."""
    data = _as_bytes(raw)
    if data.startswith(b'"'):
        unquoted, end = _scan_quoted(data)
        if end != len(data):
            raise PathDecodeError(data, "unexpected bytes after closing quote")
        return _utf8(unquoted, data)
    return _utf8(data, data)


def encode(path: str) -> bytes:
    """Render a canonical path the way git prints it with core.quotepath on."""
    data = path.encode("utf-8")
    if not any(_needs_quoting(b) for b in data):
        return data

    out = bytearray(b'"')
    for b in data:
        if b in _NAMED_ESCAPES:
            out += b"\\" + _NAMED_ESCAPES[b]
        elif _needs_quoting(b):
            out += b"\\%03o" % b
        else:
            out.append(b)
    out += b'"'
    return bytes(out)


def strip_prefix(path: str, prefix: str) -> str:
    """Drop git's ``a/`` / ``b/`` side prefix from a decoded path."""
    if path.startswith(prefix):
        return path[len(prefix):]
    return path


def split_diff_header(rest: bytes | str) -> tuple[bytes, bytes]:
    """Split the ``a/<old> b/<new>`` operand of a ``diff --git`` line.

    Either side may be quoted.  When neither is quoted and the names contain
    spaces, the split is taken where both halves name the same file (the
    only case git leaves ambiguous is a rename, which carries explicit
    ``rename from``/``rename to`` lines anyway).
    """
    data = _as_bytes(rest).rstrip(b"\n")

    if data.startswith(b'"'):
        _, end = _scan_quoted(data)
        old = data[:end]
        new = data[end:].lstrip(b" ")
        return old, new

    # Unquoted old side, quoted new side
    q = data.find(b' "')
    if q != -1 and data.endswith(b'"'):
        return data[:q], data[q + 1:]

    # Both unquoted: "a/NAME b/NAME"
    if len(data) % 2 == 1:
        half = len(data) // 2
        old, new = data[:half], data[half + 1:]
        if data[half:half + 1] == b" " and old[2:] == new[2:]:
            return old, new

    sep = data.find(b" b/")
    if sep == -1:
        raise PathDecodeError(data, "malformed diff header")
    return data[:sep], data[sep + 1:]


def is_canonical(path: object) -> bool:
    """True for a repo-relative, unquoted, losslessly decoded path."""
    if not isinstance(path, str) or not path:
        return False
    if path.startswith("/") or "\x00" in path:
        return False
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return False
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        # lone surrogates: left over from a lossy surrogateescape decode
        return False
    return True


def to_pathspec(path: str) -> str:
    """Literal pathspec for passing a canonical path back to git."""
    return f":(literal){path}"
