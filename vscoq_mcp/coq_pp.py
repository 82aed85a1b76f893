"""Decode and render Coq pretty-printing documents (PpString).

The server sends formatted output as a tree of boxes, glue and breaks. We
only do as much layout as a text panel needs: horizontal boxes put breaks on
one line as spaces, vertical boxes turn every break into a newline. hv and
hov boxes are laid out horizontally (no line filling).
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Union


class PpParseError(Exception):
    """Server sent a PpString we don't know how to read."""
    pass


class BoxKind(Enum):
    HORIZONTAL = "Pp_hbox"
    VERTICAL = "Pp_vbox"
    HVERTICAL = "Pp_hvbox"
    HOVERTICAL = "Pp_hovbox"


class Mode(Enum):
    HORIZONTAL = auto()
    VERTICAL = auto()


# -- Document tree

@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Glue:
    children: tuple = ()


@dataclass(frozen=True)
class Box:
    kind: BoxKind
    child: "PpDoc"


@dataclass(frozen=True)
class Tag:
    label: str
    child: "PpDoc"


@dataclass(frozen=True)
class Break:
    width: int = 1


@dataclass(frozen=True)
class ForceNewline:
    pass


PpDoc = Union[Empty, Text, Glue, Box, Tag, Break, ForceNewline]


def _box_kind(spec) -> BoxKind:
    # ["Pp_hovbox", 2] or bare "Pp_hbox"
    name = spec[0] if isinstance(spec, list) and spec else spec
    try:
        return BoxKind(name)
    except ValueError:
        raise PpParseError(f"Unknown box kind: {spec!r}") from None


def parse_pp(pp) -> PpDoc:
    """Decode the JSON form of a PpString into a PpDoc tree."""
    if isinstance(pp, str):
        return Text(pp)
    if not isinstance(pp, list) or not pp:
        raise PpParseError(f"Malformed PpString: {pp!r}")
    tag = pp[0]
    try:
        if tag == "Ppcmd_empty":
            return Empty()
        if tag == "Ppcmd_string":
            return Text(pp[1])
        if tag == "Ppcmd_glue":
            return Glue(tuple(parse_pp(p) for p in pp[1]))
        if tag == "Ppcmd_box":
            return Box(_box_kind(pp[1]), parse_pp(pp[2]))
        if tag == "Ppcmd_tag":
            return Tag(pp[1], parse_pp(pp[2]))
        if tag == "Ppcmd_print_break":
            return Break(int(pp[1]))
        if tag == "Ppcmd_force_newline":
            return ForceNewline()
        if tag == "Ppcmd_comment":
            return Text(" ".join(pp[1]))
    except (IndexError, TypeError) as e:
        raise PpParseError(f"Malformed {tag}: {pp!r}") from e
    raise PpParseError(f"Unknown PpString tag: {tag!r}")


# -- Layout

_BOX_MODES = {
    BoxKind.HORIZONTAL: Mode.HORIZONTAL,
    BoxKind.VERTICAL: Mode.VERTICAL,
    BoxKind.HVERTICAL: Mode.HORIZONTAL,
    BoxKind.HOVERTICAL: Mode.HORIZONTAL,
}


def _render(doc: PpDoc, mode: Mode) -> str:
    if isinstance(doc, Empty):
        return ""
    if isinstance(doc, Text):
        return doc.text
    if isinstance(doc, Glue):
        return "".join(_render(child, mode) for child in doc.children)
    if isinstance(doc, Box):
        return _render(doc.child, _BOX_MODES[doc.kind])
    if isinstance(doc, Tag):
        return _render(doc.child, mode)
    if isinstance(doc, Break):
        if mode is Mode.HORIZONTAL:
            return " " * doc.width
        if mode is Mode.VERTICAL:
            return "\n"
        raise ValueError(f"Unknown layout mode: {mode!r}")
    if isinstance(doc, ForceNewline):
        return "\n"
    raise TypeError(f"Not a PpDoc node: {doc!r}")


def render_text(doc: PpDoc) -> str:
    return _render(doc, Mode.HORIZONTAL)


def render(doc: PpDoc) -> list[str]:
    """Render to lines. Text leaves may carry their own newlines, so split last."""
    return render_text(doc).replace("\r\n", "\n").split("\n")


# -- Proof view

GOAL_RULE = "=" * 40
GOALS_SEPARATOR = "─" * 60
SECTION_WIDTH = 68
SEVERITIES = ("Error", "Warning", "Information")


@dataclass
class Goal:
    id: Union[int, str]
    hypotheses: list = field(default_factory=list)  # PpDoc per hypothesis
    goal: PpDoc = field(default_factory=Empty)

    @classmethod
    def from_json(cls, data: dict) -> "Goal":
        return cls(
            id=data["id"],
            hypotheses=[parse_pp(h) for h in data.get("hypotheses", [])],
            goal=parse_pp(data["goal"]),
        )


@dataclass
class Proof:
    goals: list[Goal] = field(default_factory=list)
    shelved_goals: list[Goal] = field(default_factory=list)
    given_up_goals: list[Goal] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "Proof":
        return cls(
            goals=[Goal.from_json(g) for g in data.get("goals", [])],
            shelved_goals=[Goal.from_json(g) for g in data.get("shelvedGoals", [])],
            given_up_goals=[Goal.from_json(g) for g in data.get("givenUpGoals", [])],
        )


@dataclass
class ProofView:
    proof: Proof | None = None
    messages: list[tuple[int, PpDoc]] = field(default_factory=list)  # (severity, text)


@dataclass
class SearchResult:
    id: int
    name: PpDoc
    statement: PpDoc


def parse_proof_view(params: dict) -> ProofView:
    """Decode a vscoq/proofView notification."""
    proof = params.get("proof")
    try:
        messages = [(int(severity), parse_pp(pp)) for severity, pp in params.get("messages", [])]
    except (TypeError, ValueError) as e:
        raise PpParseError(f"Malformed proofView messages: {params.get('messages')!r}") from e
    return ProofView(
        proof=Proof.from_json(proof) if proof else None,
        messages=messages,
    )


def parse_search_result(params: dict) -> SearchResult:
    """Decode a vscoq/searchResult notification; ids travel as strings."""
    return SearchResult(
        id=int(params["id"]),
        name=parse_pp(params["name"]),
        statement=parse_pp(params["statement"]),
    )


def render_goal(i: int, n: int, goal: Goal) -> list[str]:
    lines = [f"Goal {goal.id} ({i} / {n})"]
    for hyp in goal.hypotheses:
        lines.extend(render(hyp))
    lines.extend(["", GOAL_RULE, ""])
    lines.extend(render(goal.goal))
    return lines


def render_goals(goals: list[Goal]) -> list[str]:
    lines = []
    for i, goal in enumerate(goals, 1):
        if i > 1:
            lines.extend(["", "", GOALS_SEPARATOR, ""])
        lines.extend(render_goal(i, len(goals), goal))
    return lines


def severity_name(severity: int) -> str:
    """1-based LSP-style severity -> label."""
    if 1 <= severity <= len(SEVERITIES):
        return SEVERITIES[severity - 1]
    return f"Unknown {severity}"


def render_messages(messages: list[tuple[int, PpDoc]]) -> list[str]:
    lines = []
    for severity, pp in messages:
        lines.append(f"{severity_name(severity)}:")
        lines.extend(render(pp))
    return lines


def section_header(label: str) -> list[str]:
    return ["", "", f"{label} ".ljust(SECTION_WIDTH, "━"), ""]


def render_proof_view(view: ProofView) -> list[str]:
    """Goals, then Messages / Shelved / Given Up sections when non-empty."""
    lines = []
    if view.proof:
        lines.extend(render_goals(view.proof.goals))
    if view.messages:
        lines.extend(section_header("Messages"))
        lines.extend(render_messages(view.messages))
    if view.proof:
        if view.proof.shelved_goals:
            lines.extend(section_header("Shelved"))
            lines.extend(render_goals(view.proof.shelved_goals))
        if view.proof.given_up_goals:
            lines.extend(section_header("Given Up"))
            lines.extend(render_goals(view.proof.given_up_goals))
    return lines


def render_search_result(result: SearchResult) -> list[str]:
    """``name:`` then the statement indented by two, then a blank line."""
    lines = render(result.name)
    lines[-1] = lines[-1] + ":"
    # Search statements arrive without line breaks.
    lines.extend("  " + line for line in render(result.statement))
    lines.append("")
    return lines


def render_query_result(pp) -> list[str]:
    """Lines for an about/check/print/locate response (JSON PpString or None)."""
    if pp is None:
        return []
    return render(parse_pp(pp))
