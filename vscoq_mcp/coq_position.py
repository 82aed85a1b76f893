"""Convert between document columns and LSP positions.

Documents store each line as a Python ``str``, so an addressable position is
``(row, col)`` with ``col`` an index into that string (code points). The
server counts ``character`` in code units of the negotiated position
encoding. The two only agree for ASCII text, so every conversion reads the
live line.
"""

from typing import Literal, Protocol

PositionEncoding = Literal[
    # Bytes.
    "utf-8",
    # UTF-16 code units; the LSP default.
    "utf-16",
    # Code points; same as a Python str index.
    "utf-32",
]

DEFAULT_ENCODING: PositionEncoding = "utf-16"
ENCODINGS = ("utf-8", "utf-16", "utf-32")

DOCUMENT_START = {"line": 0, "character": 0}


class LineSource(Protocol):
    def line(self, row: int) -> str | None: ...


def _check_encoding(encoding: str):
    if encoding not in ENCODINGS:
        raise ValueError(f"Unsupported position encoding: {encoding!r}")


def _unit_width(ch: str, encoding: str) -> int:
    """Number of code units ``ch`` occupies in ``encoding``."""
    if encoding == "utf-8":
        return len(ch.encode("utf-8"))
    if encoding == "utf-16":
        return 2 if ord(ch) > 0xFFFF else 1
    return 1


def character_to_column(line: str, character: int, encoding: str = DEFAULT_ENCODING) -> int:
    """Map an LSP ``character`` on ``line`` to a str index.

    Offsets past the end clamp to the end of the line. An offset that falls
    inside a multi-unit character lands on the boundary after it.
    """
    _check_encoding(encoding)
    if character <= 0:
        return 0
    units = 0
    for col, ch in enumerate(line):
        units += _unit_width(ch, encoding)
        if units >= character:
            return col + 1
    return len(line)


def column_to_character(line: str, col: int, encoding: str = DEFAULT_ENCODING) -> int:
    """Map a str index on ``line`` to an LSP ``character``."""
    _check_encoding(encoding)
    if col <= 0:
        return 0
    return sum(_unit_width(ch, encoding) for ch in line[:col])


def to_addressable(doc: LineSource, position: dict, encoding: str = DEFAULT_ENCODING) -> tuple[int, int]:
    """LSP ``{"line", "character"}`` -> ``(row, col)`` in ``doc``.

    Returns ``(0, 0)`` when the line no longer exists (the document was
    edited after the server computed the position).
    """
    row = position["line"]
    line = doc.line(row)
    if line is None:
        return (0, 0)
    return (row, character_to_column(line, position["character"], encoding))


def to_protocol(doc: LineSource, position: tuple[int, int], encoding: str = DEFAULT_ENCODING) -> dict:
    """``(row, col)`` in ``doc`` -> LSP ``{"line", "character"}``."""
    row, col = position
    line = doc.line(row)
    if line is None:
        return dict(DOCUMENT_START)
    return {"line": row, "character": column_to_character(line, col, encoding)}


def range_to_addressable(doc: LineSource, rng: dict, encoding: str = DEFAULT_ENCODING) -> tuple[tuple[int, int], tuple[int, int]]:
    return (
        to_addressable(doc, rng["start"], encoding),
        to_addressable(doc, rng["end"], encoding),
    )
