#!/usr/bin/env python3
"""
Traindown: plain-text training logs to a Session graph.

Surface syntax, one construct per line:

    DATE: 2023-01-15
    META: location: home gym
    NOTE: felt strong
    MOVEMENT: Squat
      LOAD: 100
      REPS: 5
      SETS: 3
    SUPERSET: Chin-up
      LOAD: 0

Keywords are case-insensitive and may be indented. Lines starting with '#'
are comments, blank lines are skipped. Any other line is a scan error.
"""
import sys, json, argparse, enum, functools, logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from dateutil import parser as dateutil_parser
from lark import Lark, Transformer
from lark.exceptions import LarkError, UnexpectedCharacters, UnexpectedInput

logger = logging.getLogger(__name__)

GRAMMAR = r"""
start: (_line | _NL)*

_line: date | fails | load | metadata | movement | superset
     | note | reps | sets | unit | percent | comment

date:     KW_DATE VALUE
fails:    KW_FAILS VALUE
load:     KW_LOAD VALUE
metadata: KW_META VALUE
movement: KW_MOVEMENT VALUE
superset: KW_SUPERSET VALUE
note:     KW_NOTE VALUE
reps:     KW_REPS VALUE
sets:     KW_SETS VALUE
unit:     KW_UNIT VALUE
percent:  KW_PERCENT VALUE
comment:  COMMENT

KW_DATE:     /date[ \t]*:/i
KW_FAILS:    /fails?[ \t]*:/i
KW_LOAD:     /load[ \t]*:/i
KW_META:     /meta(data)?[ \t]*:/i
KW_MOVEMENT: /movement[ \t]*:/i
KW_SUPERSET: /(superset|movement_ss)[ \t]*:/i
KW_NOTE:     /notes?[ \t]*:/i
KW_REPS:     /reps?[ \t]*:/i
KW_SETS:     /sets?[ \t]*:/i
KW_UNIT:     /unit[ \t]*:/i
KW_PERCENT:  /percent[ \t]*:/i

VALUE: /[^ \t\r\n][^\n]*/
COMMENT: /#[^\n]*/
_NL: /(\r?\n[ \t]*)+/
WS: /[ \t]+/

%ignore WS
"""


class TraindownError(Exception):
    pass


class ScannerError(TraindownError):
    """The scanner grammar could not be compiled."""


class ScanError(TraindownError):
    """The input text could not be tokenized."""

    def __init__(self, msg: str, line: Optional[int] = None, column: Optional[int] = None):
        super().__init__(msg)
        self.line = line
        self.column = column


class TokenKind(enum.Enum):
    DATE = "DATE"
    FAILS = "FAILS"
    LOAD = "LOAD"
    METADATA = "METADATA"
    MOVEMENT = "MOVEMENT"
    MOVEMENT_SS = "MOVEMENT_SS"
    NOTE = "NOTE"
    REPS = "REPS"
    SETS = "SETS"
    UNIT = "UNIT"
    PERCENT = "PERCENT"
    COMMENT = "COMMENT"


# Canonical spelling used by render_tokens
KEYWORDS = {
    TokenKind.DATE: "DATE",
    TokenKind.FAILS: "FAILS",
    TokenKind.LOAD: "LOAD",
    TokenKind.METADATA: "META",
    TokenKind.MOVEMENT: "MOVEMENT",
    TokenKind.MOVEMENT_SS: "SUPERSET",
    TokenKind.NOTE: "NOTE",
    TokenKind.REPS: "REPS",
    TokenKind.SETS: "SETS",
    TokenKind.UNIT: "UNIT",
    TokenKind.PERCENT: "PERCENT",
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: Optional[int] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "value": self.value, "line": self.line}


def _tok(kind: TokenKind, xs) -> Token:
    kw, val = xs
    return Token(kind, str(val).strip(), kw.line)


class ToTokens(Transformer):
    def start(self, xs):      return list(xs)
    def date(self, xs):       return _tok(TokenKind.DATE, xs)
    def fails(self, xs):      return _tok(TokenKind.FAILS, xs)
    def load(self, xs):       return _tok(TokenKind.LOAD, xs)
    def metadata(self, xs):   return _tok(TokenKind.METADATA, xs)
    def movement(self, xs):   return _tok(TokenKind.MOVEMENT, xs)
    def superset(self, xs):   return _tok(TokenKind.MOVEMENT_SS, xs)
    def note(self, xs):       return _tok(TokenKind.NOTE, xs)
    def reps(self, xs):       return _tok(TokenKind.REPS, xs)
    def sets(self, xs):       return _tok(TokenKind.SETS, xs)
    def unit(self, xs):       return _tok(TokenKind.UNIT, xs)
    def percent(self, xs):    return _tok(TokenKind.PERCENT, xs)
    def comment(self, xs):
        raw = xs[0]
        return Token(TokenKind.COMMENT, str(raw)[1:].strip(), raw.line)


class Scanner:
    """Turns Traindown text into a flat token list. Instances share no state."""

    def __init__(self, grammar: str = GRAMMAR):
        try:
            self._parser = Lark(grammar, start="start", parser="lalr")
        except LarkError as e:
            raise ScannerError(f"Failed to build scanner: {e}") from e
        self._transformer = ToTokens()

    def scan(self, text: str) -> List[Token]:
        try:
            tree = self._parser.parse(text)
        except UnexpectedInput as e:
            line, column = getattr(e, "line", None), getattr(e, "column", None)
            if not isinstance(line, int) or line < 1:
                line = column = None
            detail = (str(e).strip().splitlines() or ["unexpected input"])[0]
            msg = f"line {line}, column {column}: {detail}" if line else detail
            if isinstance(e, UnexpectedCharacters):
                msg += "\n" + e.get_context(text).rstrip()
            raise ScanError(msg, line, column) from e
        tokens = self._transformer.transform(tree)
        logger.debug("Scanned %d tokens", len(tokens))
        return tokens


# ---------------------------------------------------------------------------
# Data model

Metadata = Dict[str, Any]


@dataclass
class Performance:
    fails: int = 0
    load: float = 0.0
    percent_of_max: Optional[float] = None
    reps: int = 1
    sets: int = 1
    sequence: int = 0
    unit: str = ""
    metadata: Metadata = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = {"fails": self.fails, "load": self.load}
        if self.percent_of_max is not None:
            out["percentOfMax"] = self.percent_of_max
        out.update({"reps": self.reps, "sequence": self.sequence, "sets": self.sets, "unit": self.unit,
                    "metadata": dict(self.metadata), "notes": list(self.notes)})
        return out

    def __str__(self): return json.dumps(self.to_dict())


@dataclass
class Movement:
    name: str = ""
    sequence: int = 0
    is_superset: bool = False
    performances: List[Performance] = field(default_factory=list)
    metadata: Metadata = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "sequence": self.sequence, "superSet": self.is_superset,
                "performances": [p.to_dict() for p in self.performances],
                "metadata": dict(self.metadata), "notes": list(self.notes)}

    def __str__(self): return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Diagnostic:
    code: str
    kind: TokenKind
    value: str
    msg: str
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        path = f"LINE[{self.line}]" if self.line else self.kind.value
        return {"level": "warning", "code": self.code, "path": path, "msg": self.msg}

    def __str__(self): return self.msg


@dataclass
class Session:
    date: Optional[datetime] = None
    errors: List[Diagnostic] = field(default_factory=list)
    movements: List[Movement] = field(default_factory=list)
    metadata: Metadata = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat() if self.date else None,
                "errors": [d.to_dict() for d in self.errors],
                "movements": [m.to_dict() for m in self.movements],
                "metadata": dict(self.metadata), "notes": list(self.notes)}

    def __str__(self): return json.dumps(self.to_dict())


# ---------------------------------------------------------------------------
# Session builder

def parse_freeform_date(text: str) -> datetime:
    """Default date interpreter. Raises ValueError or OverflowError."""
    return dateutil_parser.parse(text)


class Scope(enum.Enum):
    SESSION = "session"
    MOVEMENT = "movement"
    PERFORMANCE = "performance"


@dataclass
class BuildState:
    """Accumulator threaded through reduce_token.

    `scope` picks where notes and metadata go. `performance_open` is tracked
    apart from it: a LOAD before the first movement opens a performance while
    routing stays on the session.
    """
    date_parser: Callable[[str], datetime] = parse_freeform_date
    clock: Callable[[], datetime] = datetime.now
    session: Session = field(default_factory=Session)
    movement: Movement = field(default_factory=Movement)
    performance: Performance = field(default_factory=Performance)
    scope: Scope = Scope.SESSION
    performance_open: bool = False

    def target(self):
        if self.scope is Scope.SESSION: return self.session
        if self.scope is Scope.PERFORMANCE: return self.performance
        return self.movement


def _diagnose(state: BuildState, tok: Token, code: str, msg: str):
    logger.debug("%s %s", code, msg)
    state.session.errors.append(Diagnostic(code, tok.kind, tok.value, msg, tok.line))


def _int_value(state, tok, what) -> Optional[int]:
    try:
        return int(tok.value)
    except ValueError:
        _diagnose(state, tok, "W020", f"Failed to parse {what}: {tok.value!r}")
        return None


def _float_value(state, tok, what, text=None) -> Optional[float]:
    try:
        return float(tok.value if text is None else text)
    except ValueError:
        _diagnose(state, tok, "W021", f"Failed to parse {what}: {tok.value!r}")
        return None


def _flush_performance(state):
    perf = state.performance
    perf.sequence = len(state.movement.performances) + 1
    state.movement.performances.append(perf)
    state.performance = Performance()


def _flush_movement(state):
    mv = state.movement
    mv.sequence = len(state.session.movements) + 1
    state.session.movements.append(mv)
    state.movement = Movement()


def _on_date(state, tok):
    try:
        state.session.date = state.date_parser(tok.value)
    except (ValueError, OverflowError) as e:
        _diagnose(state, tok, "W010", f"Failed to parse date {tok.value!r}: {e}. Using current time")
        state.session.date = state.clock()


def _on_fails(state, tok):
    i = _int_value(state, tok, "fails")
    if i is not None: state.performance.fails = i


def _on_reps(state, tok):
    i = _int_value(state, tok, "reps")
    if i is not None: state.performance.reps = i


def _on_sets(state, tok):
    i = _int_value(state, tok, "sets")
    if i is not None: state.performance.sets = i


def _on_load(state, tok):
    if state.performance_open:
        _flush_performance(state)
    f = _float_value(state, tok, "load")
    state.performance.load = 0.0 if f is None else f
    state.performance_open = True
    if state.scope is not Scope.SESSION:
        state.scope = Scope.PERFORMANCE


def _on_metadata(state, tok):
    key, sep, value = tok.value.partition(":")
    key, value = key.strip(), value.strip()
    if not sep or not key:
        _diagnose(state, tok, "W030", f"Malformed metadata {tok.value!r}: expected 'key: value'")
        return
    state.target().metadata[key] = value


def _on_movement(state, tok):
    state.scope = Scope.MOVEMENT
    if state.performance_open:
        _flush_performance(state)
        state.performance_open = False
    # an unnamed movement is the placeholder and gets reused
    if state.movement.name:
        _flush_movement(state)
    state.movement.name = tok.value
    state.movement.is_superset = tok.kind is TokenKind.MOVEMENT_SS


def _on_note(state, tok):
    state.target().notes.append(tok.value)


def _on_unit(state, tok):
    state.performance.unit = tok.value


def _on_percent(state, tok):
    f = _float_value(state, tok, "percent", tok.value.rstrip("%").strip())
    if f is not None: state.performance.percent_of_max = f


_HANDLERS: Dict[TokenKind, Callable[[BuildState, Token], None]] = {
    TokenKind.DATE: _on_date,
    TokenKind.FAILS: _on_fails,
    TokenKind.LOAD: _on_load,
    TokenKind.METADATA: _on_metadata,
    TokenKind.MOVEMENT: _on_movement,
    TokenKind.MOVEMENT_SS: _on_movement,
    TokenKind.NOTE: _on_note,
    TokenKind.REPS: _on_reps,
    TokenKind.SETS: _on_sets,
    TokenKind.UNIT: _on_unit,
    TokenKind.PERCENT: _on_percent,
}


def reduce_token(state: BuildState, tok: Token) -> BuildState:
    handler = _HANDLERS.get(tok.kind)
    if handler is not None:
        handler(state, tok)
    return state


def finish(state: BuildState) -> Session:
    # a trailing performance without load is dropped
    if state.performance.load != 0:
        _flush_performance(state)
    if state.movement.name:
        _flush_movement(state)
    return state.session


def build_session(tokens: Iterable[Token], date_parser: Optional[Callable[[str], datetime]] = None,
                  clock: Optional[Callable[[], datetime]] = None) -> Session:
    """Fold a token stream into a Session. Never raises for bad token values;
    those end up in Session.errors."""
    state = BuildState(date_parser=date_parser or parse_freeform_date, clock=clock or datetime.now)
    session = finish(functools.reduce(reduce_token, tokens, state))
    logger.debug("Built session: %d movements, %d diagnostics", len(session.movements), len(session.errors))
    return session


# ---------------------------------------------------------------------------
# Entry points

def _decode(data: bytes, encoding: str) -> str:
    try:
        return data.decode(encoding)
    except UnicodeDecodeError as e:
        raise ScanError(f"Failed to parse: input is not valid {encoding}: {e}") from e


def scan_text(text: str) -> List[Token]:
    try:
        return Scanner().scan(text)
    except ScanError as e:
        raise ScanError(f"Failed to parse: {e}", e.line, e.column) from e


def parse_text(text: str, *, date_parser=None, clock=None) -> Session:
    return build_session(scan_text(text), date_parser=date_parser, clock=clock)


def parse_bytes(data: bytes, encoding: str = "utf-8-sig", *, date_parser=None, clock=None) -> Session:
    return parse_text(_decode(data, encoding), date_parser=date_parser, clock=clock)


def lint(session: Session) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in session.errors]


def render_tokens(tokens: Iterable[Token]) -> str:
    """Canonical text for a token stream. Lines after the first movement are
    indented, each movement after the first line is preceded by a blank line."""
    out = []; in_movement = False
    for tok in tokens:
        if tok.kind in (TokenKind.MOVEMENT, TokenKind.MOVEMENT_SS):
            if out: out.append("")
            in_movement = True
            out.append(f"{KEYWORDS[tok.kind]}: {tok.value}")
            continue
        if tok.kind is TokenKind.COMMENT:
            line = f"# {tok.value}" if tok.value else "#"
        else:
            line = f"{KEYWORDS[tok.kind]}: {tok.value}"
        out.append(("  " if in_movement else "") + line)
    return "\n".join(out) + "\n" if out else ""


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(prog="traindown")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)
    p1 = sub.add_parser("parse");  p1.add_argument("file"); p1.add_argument("-o", "--out")
    p2 = sub.add_parser("tokens"); p2.add_argument("file"); p2.add_argument("--format", choices=["text", "json"], default="text")
    p3 = sub.add_parser("lint");   p3.add_argument("file"); p3.add_argument("--strict", action="store_true", help="exit 1 on any warning")
    p4 = sub.add_parser("fmt");    p4.add_argument("file"); p4.add_argument("-i", "--in-place", action="store_true"); p4.add_argument("-o", "--out")
    for pp in (p1, p2, p3, p4):
        pp.add_argument("--encoding", default="utf-8-sig")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        text = _decode(Path(args.file).read_bytes(), args.encoding)
        tokens = scan_text(text)
    except TraindownError as e:
        print(str(e), file=sys.stderr)
        return 2

    if args.cmd == "parse":
        data = json.dumps(build_session(tokens).to_dict(), ensure_ascii=False, indent=2)
        if args.out: Path(args.out).write_text(data); print(f"Saved -> {args.out}")
        else: print(data)
        return 0
    if args.cmd == "tokens":
        if args.format == "json": print(json.dumps([t.to_dict() for t in tokens], ensure_ascii=False, indent=2))
        else:
            for t in tokens: print(f"{t.line or 0:>4} {t.kind.value:<12} {t.value}")
        return 0
    if args.cmd == "lint":
        issues = lint(build_session(tokens))
        for i in issues: print(f"{i['level'].upper()} {i['code']} {i['path']}: {i['msg']}")
        return 1 if args.strict and issues else 0
    if args.cmd == "fmt":
        normalized = render_tokens(tokens)
        if args.out:
            Path(args.out).write_text(normalized)
            print(f"Saved -> {args.out}")
        elif args.in_place:
            Path(args.file).write_text(normalized)
        else:
            print(normalized, end="")
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
