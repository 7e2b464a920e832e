"""Shorthand swim-session text -> blocks of structured exercises.

    6*50 jbes spé r : 10''      -> 6 x 50m, kick, specialty stroke, 10s rest
    x3                          -> next lines repeat three times
    #1-3 : jbes V1 @ 60''       -> per-repetition note on the previous exercise
"""
import logging
import re
import unicodedata
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Sequence, Tuple

from lark import Lark, Token
from lark.exceptions import UnexpectedInput

logger = logging.getLogger(__name__)

# Lexer-only grammar: every non-space character belongs to some terminal.
TOKENS = r"""
PAREN.6: /\([^()]*\)/
TIME.5: /\d+'\d{1,2}(?![\d'])/ | /\d+''/
REPDIST.4: /\d+\*\d+(?![^\s()@:\/])/
NUMBER.3: /\d+(?![^\s()@:\/])/
AT: "@"
COLON: ":"
SLASH: "/"
STRAY: /[()]/
WORD: /[^\s()@:\/]+/
WS: /\s+/

%ignore WS
"""

LEXER = Lark(TOKENS, parser=None, lexer="basic")

STROKES = MappingProxyType({
    "cr": "crawl", "crawl": "crawl", "nl": "crawl",
    "d": "dos", "dos": "dos",
    "br": "brasse", "brasse": "brasse",
    "pap": "pap", "papillon": "pap",
    "4n": "4n",
    "spé": "spe", "spe": "spe",
})
STROKE_TYPES = MappingProxyType({
    "jbes": "jambes", "jambes": "jambes",
    "educ": "educ", "éduc": "educ",
    "nc": "nc",
})
INTENSITY_ALIASES = MappingProxyType({
    "ez": "V0", "souple": "V0", "facile": "V0", "relâché": "V0", "relache": "V0",
    "vmax": "Max", "max": "Max",
    "prog": "Prog", "progressif": "Prog",
})
EQUIPMENT_PREFIXES = MappingProxyType({
    "plaq": "plaquettes",
    "palm": "palmes",
    "tuba": "tuba",
    "pull": "pull",
    "elas": "elastique", "élas": "elastique",
})
REST_MARKERS = MappingProxyType({"r": "rest", "d": "departure"})

_SECONDS_RE = re.compile(r"^(\d+)''$")
_MINSEC_RE = re.compile(r"^(\d+)'(\d{1,2})$")
_MARKER_RE = re.compile(r"^([rd])\s*(:.*)?$", re.I)
_LEVEL_RE = re.compile(r"^v(\d+)$", re.I)
_PROG_BASE_RE = re.compile(r"^v(?:\d+|max)?$", re.I)
_BLOCK_REP_RE = re.compile(r"^x\s*(\d+)\b\s*(?:\(([^()]*(?:\([^()]*\)[^()]*)*)\))?\s*(.*)$", re.I)
_EXERCISE_RE = re.compile(r"^\d")
_NOTE_RE = re.compile(r"^\d+(?:\s*-\s*\d+)?\s*:")
_ANNOTATION_RE = re.compile(r"^[A-Za-z]{1,3}\d{1,2}\s*:")
_INLINE_SPLIT_RE = re.compile(r"\s+\+\s+")
_EDGE_CHARS = " \t/,;-"
_VARIATION_SELECTORS = ("\ufe0e", "\ufe0f")
_PROG_ARROW = "\u2197"


class LineKind(str, Enum):
    EMPTY = "empty"
    BLOCK_REP = "block_rep"
    EXERCISE = "exercise"
    SUB_DETAIL = "sub_detail"
    CONTINUATION = "continuation"
    ANNOTATION = "annotation"
    UNPARSED = "unparsed"


class SubDetailForm(str, Enum):
    SPLIT = "split"  # "#150 Cr": replaces the aggregate above it
    NOTE = "note"    # "#1-3 : jbes V1": annotates the exercise above it


@dataclass(frozen=True)
class LineClassification:
    kind: LineKind
    text: str = ""
    count: Optional[int] = None
    content: Optional[str] = None
    trailing: Optional[str] = None
    form: Optional[SubDetailForm] = None


@dataclass(frozen=True)
class RestSpec:
    rest: int
    rest_type: str

    def to_dict(self)->Dict[str,Any]:
        return {"rest": self.rest, "restType": self.rest_type}


@dataclass(frozen=True)
class ParsedExercise:
    repetitions: int = 1
    distance: Optional[int] = None
    stroke: Optional[str] = None
    stroke_type: str = "nc"
    intensity: str = "V0"
    rest: Optional[int] = None
    rest_type: Optional[str] = None
    equipment: Tuple[str, ...] = ()
    modalities: Tuple[str, ...] = ()

    def to_dict(self)->Dict[str,Any]:
        return {
            "repetitions": self.repetitions, "distance": self.distance,
            "stroke": self.stroke, "strokeType": self.stroke_type, "intensity": self.intensity,
            "rest": self.rest, "restType": self.rest_type,
            "equipment": list(self.equipment), "modalities": list(self.modalities),
        }


@dataclass(frozen=True)
class Block:
    repetitions: Optional[int] = None
    exercises: Tuple[ParsedExercise, ...] = ()

    def to_dict(self)->Dict[str,Any]:
        return {"repetitions": self.repetitions, "exercises": [e.to_dict() for e in self.exercises]}


def _key(word:str)->str:
    return unicodedata.normalize("NFC", word).strip().lower()

def _strip_variation(s:str)->str:
    for sel in _VARIATION_SELECTORS:
        s = s.replace(sel, "")
    return s

def _is_time(token:str)->bool:
    return bool(_SECONDS_RE.match(token) or _MINSEC_RE.match(token))


# ---------------------------------------------------------------- time / rest

def parse_time_notation(token:str)->int:
    """``10''`` -> 10, ``1'45`` -> 105. Anything else is 0."""
    if not isinstance(token, str): return 0
    t = token.strip()
    m = _SECONDS_RE.match(t)
    if m: return int(m.group(1))
    m = _MINSEC_RE.match(t)
    if m: return int(m.group(1))*60 + int(m.group(2))
    return 0

def parse_rest_token(tokens:Sequence[str])->Optional[RestSpec]:
    """Read ``r : <time>``, ``d : <time>`` or ``@ <time>`` from the head of ``tokens``.

    The colon may be glued to the time (``["r", ":20''"]``). Returns None when the
    sequence does not start with a marker or the marker is not followed by a time.
    """
    parts = [t.strip() for t in (tokens or ()) if isinstance(t, str) and t.strip()]
    if not parts: return None
    head = parts[0]
    if head.startswith("@"):
        kind, tail = "departure", [head[1:]] + parts[1:]
    else:
        m = _MARKER_RE.match(head)
        if not m: return None
        kind = REST_MARKERS[m.group(1).lower()]
        tail = [t for t in ([m.group(2) or ""] + parts[1:]) if t.strip()]
        if not tail or not tail[0].startswith(":"): return None
        tail = [tail[0][1:]] + tail[1:]
    tail = [t.strip() for t in tail if t.strip()]
    if not tail or not _is_time(tail[0]): return None
    return RestSpec(parse_time_notation(tail[0]), kind)


# ---------------------------------------------------------------- normalizers

def normalize_intensity_value(value:Optional[str])->str:
    if not isinstance(value, str) or not value.strip(): return "V0"
    raw = value.strip()
    bare = _strip_variation(raw).strip()
    if bare.endswith(_PROG_ARROW) and _PROG_BASE_RE.match(bare[:-1].strip()): return "Prog"
    alias = INTENSITY_ALIASES.get(_key(bare))
    if alias: return alias
    m = _LEVEL_RE.match(bare)
    if m:
        level = int(m.group(1))
        return "Max" if level >= 4 else "V%d" % level
    return raw

def normalize_equipment_value(value:Optional[str])->Optional[str]:
    if not isinstance(value, str): return None
    k = _key(value)
    if not k: return None
    for prefix, name in EQUIPMENT_PREFIXES.items():
        if k.startswith(prefix): return name
    return None

def _is_intensity(word:str)->bool:
    bare = _strip_variation(word).strip()
    if bare.endswith(_PROG_ARROW): return bool(_PROG_BASE_RE.match(bare[:-1].strip()))
    return _key(bare) in INTENSITY_ALIASES or bool(_LEVEL_RE.match(bare))


# ---------------------------------------------------------------- classifier

def classify_line(line:str)->LineClassification:
    text = line.strip() if isinstance(line, str) else ""
    if not text: return LineClassification(LineKind.EMPTY)
    m = _BLOCK_REP_RE.match(text)
    if m:
        return LineClassification(
            LineKind.BLOCK_REP, text, count=int(m.group(1)),
            content=(m.group(2) or "").strip() or None,
            trailing=m.group(3).strip() or None,
        )
    if _EXERCISE_RE.match(text): return LineClassification(LineKind.EXERCISE, text)
    if text.startswith("#"):
        content = text[1:].strip()
        form = SubDetailForm.SPLIT if _EXERCISE_RE.match(content) and not _NOTE_RE.match(content) else SubDetailForm.NOTE
        return LineClassification(LineKind.SUB_DETAIL, text, content=content, form=form)
    if text.startswith("+"): return LineClassification(LineKind.CONTINUATION, text, content=text[1:].strip())
    if _ANNOTATION_RE.match(text): return LineClassification(LineKind.ANNOTATION, text)
    return LineClassification(LineKind.UNPARSED, text)


# ---------------------------------------------------------------- exercise line

def tokenize(text:str)->List[Token]:
    toks: List[Token] = []
    try:
        for tok in LEXER.lex(text): toks.append(tok)
    except UnexpectedInput as e:
        pos = e.pos_in_stream if e.pos_in_stream is not None else (toks[-1].end_pos if toks else 0)
        rest = text[pos:]
        start = pos + len(rest) - len(rest.lstrip())
        value = rest.strip()
        logger.warning("lexer stopped at %d in %r, keeping %r as text", pos, text, value)
        if value:
            toks.append(Token("WORD", value, start_pos=start, end_pos=start+len(value)))
    return toks

def _claim_rest(toks, claimed)->Optional[RestSpec]:
    for i, tok in enumerate(toks):
        if claimed[i]: continue
        if tok.type == "AT": end = i+2
        elif tok.type == "WORD" and _key(tok) in REST_MARKERS and i+1 < len(toks) and toks[i+1].type == "COLON": end = i+3
        else: continue
        spec = parse_rest_token([t.value for t in toks[i:end]])
        if spec is None: continue
        for j in range(i, end): claimed[j] = True
        if end+1 < len(toks) and toks[end].type == "SLASH" and toks[end+1].type == "TIME":
            claimed[end] = claimed[end+1] = True
            logger.debug("discarding alternate departure %s", toks[end+1].value)
        return spec
    return None

def _claim_first(toks, claimed, table)->Optional[str]:
    for i, tok in enumerate(toks):
        if claimed[i] or tok.type != "WORD": continue
        hit = table.get(_key(tok))
        if hit:
            claimed[i] = True
            return hit
    return None

def _claim_intensity(toks, claimed)->str:
    for i, tok in enumerate(toks):
        if not claimed[i] and tok.type == "WORD" and _is_intensity(tok):
            claimed[i] = True
            return normalize_intensity_value(tok.value)
    return "V0"

def _claim_equipment(toks, claimed)->Tuple[str, ...]:
    found: List[str] = []
    for i, tok in enumerate(toks):
        if claimed[i] or tok.type != "WORD": continue
        name = normalize_equipment_value(tok.value)
        if name:
            claimed[i] = True
            if name not in found: found.append(name)
    return tuple(found)

def _add_fragment(out:List[str], fragment:str):
    frag = fragment.strip(_EDGE_CHARS)
    if frag: out.append(frag)

def _leftovers(text, toks, claimed)->Tuple[str, ...]:
    out: List[str] = []; run: List[Token] = []
    def close():
        if run:
            _add_fragment(out, text[run[0].start_pos:run[-1].end_pos])
            run.clear()
    for tok, used in zip(toks, claimed):
        if used: close()
        elif tok.type == "PAREN": close(); _add_fragment(out, tok.value[1:-1])
        else: run.append(tok)
    close()
    return tuple(out)

def parse_exercise_tokens(line:str)->ParsedExercise:
    """Extract the facets of one exercise line; unknown tokens end up in ``modalities``."""
    text = line.strip() if isinstance(line, str) else ""
    if text[:1] in ("#", "+"): text = text[1:].strip()
    toks = tokenize(text)
    claimed = [False]*len(toks)
    reps, distance = 1, None
    if toks and toks[0].type == "REPDIST":
        n, d = toks[0].value.split("*")
        reps, distance = max(int(n), 1), int(d); claimed[0] = True
    elif toks and toks[0].type == "NUMBER":
        distance = int(toks[0].value); claimed[0] = True
    # order matters: rest claims "d :" before the stroke pass can read "d" as dos
    rest = _claim_rest(toks, claimed)
    stroke = _claim_first(toks, claimed, STROKES)
    stroke_type = _claim_first(toks, claimed, STROKE_TYPES) or "nc"
    intensity = _claim_intensity(toks, claimed)
    equipment = _claim_equipment(toks, claimed)
    return ParsedExercise(
        repetitions=reps, distance=distance, stroke=stroke, stroke_type=stroke_type,
        intensity=intensity,
        rest=rest.rest if rest else None, rest_type=rest.rest_type if rest else None,
        equipment=equipment, modalities=_leftovers(text, toks, claimed),
    )


# ---------------------------------------------------------------- assembler

def _with_modality(ex:ParsedExercise, note:str)->ParsedExercise:
    return replace(ex, modalities=ex.modalities + (note,))

def _parse_inline(content:str)->List[ParsedExercise]:
    out: List[ParsedExercise] = []
    for part in _INLINE_SPLIT_RE.split(content):
        part = part.strip()
        if not part: continue
        if out and not _EXERCISE_RE.match(part): out[-1] = _with_modality(out[-1], part)
        else: out.append(parse_exercise_tokens(part))
    return out


class _Assembler:
    def __init__(self):
        self.blocks: List[Block] = []
        self._start_block()

    def _start_block(self):
        self.repetitions: Optional[int] = None
        self.exercises: List[ParsedExercise] = []
        self.placeholder = False

    def flush(self):
        if self.exercises: self.blocks.append(Block(self.repetitions, tuple(self.exercises)))
        self._start_block()

    def feed(self, line:str):
        c = classify_line(line)
        k = c.kind
        if k == LineKind.EMPTY: self.flush(); return
        placeholder, self.placeholder = self.placeholder, False
        if k == LineKind.BLOCK_REP:
            self.repetitions = c.count if c.count else None
            inline = _parse_inline(c.content) if c.content else []
            if c.trailing:
                if inline: inline[-1] = _with_modality(inline[-1], c.trailing)
                else: logger.debug("dropping block trailer %r", c.trailing)
            self.exercises.extend(inline)
        elif k == LineKind.EXERCISE:
            self.exercises.append(parse_exercise_tokens(c.text))
            self.placeholder = True
        elif k == LineKind.SUB_DETAIL and c.form == SubDetailForm.SPLIT:
            if placeholder: self.exercises.pop()
            self.exercises.append(parse_exercise_tokens(c.content))
        elif k == LineKind.SUB_DETAIL:
            if self.exercises: self.exercises[-1] = _with_modality(self.exercises[-1], c.content)
            else: logger.debug("dropping orphan note %r", c.text)
        elif k == LineKind.CONTINUATION:
            self.exercises.append(parse_exercise_tokens(c.content))
        else:
            logger.debug("dropping %s line %r", k.value, c.text)


def parse_swim_text(text:str)->List[Block]:
    if not isinstance(text, str): return []
    asm = _Assembler()
    for line in text.splitlines(): asm.feed(line)
    asm.flush()
    return asm.blocks


# ---------------------------------------------------------------- consumers

def exercise_label(ex:ParsedExercise)->Optional[str]:
    if ex.repetitions and ex.distance: return f"{ex.repetitions}x{ex.distance}m"
    if ex.distance: return f"{ex.distance}m"
    return None

def format_recovery(seconds:Optional[int])->str:
    if not seconds: return ""
    m, s = divmod(int(seconds), 60)
    if m and s: return f"{m}'{s:02d}"
    if m: return f"{m}'00"
    return f"{s}s"

def total_distance(blocks:Sequence[Block])->int:
    total = 0
    for b in blocks:
        per = sum(e.repetitions*e.distance for e in b.exercises if e.distance)
        total += (b.repetitions or 1)*per
    return total

def to_session_items(blocks:Sequence[Block])->List[Dict[str,Any]]:
    """Flatten blocks into the ordered session items the authoring screens store."""
    items: List[Dict[str,Any]] = []
    for bi, b in enumerate(blocks):
        for ei, ex in enumerate(b.exercises):
            notes = "\n".join(ex.modalities) or None
            items.append({
                "ordre": len(items),
                "label": exercise_label(ex),
                "distance": ex.distance,
                "duration": None,
                "intensity": ex.intensity,
                "notes": notes,
                "raw_payload": {
                    "block_title": f"Bloc {bi+1}",
                    "block_description": None,
                    "block_order": bi,
                    "block_repetitions": b.repetitions,
                    "block_modalities": None,
                    "block_equipment": [],
                    "exercise_repetitions": ex.repetitions,
                    "exercise_rest": ex.rest,
                    "exercise_rest_type": ex.rest_type or "rest",
                    "exercise_stroke": ex.stroke,
                    "exercise_stroke_type": ex.stroke_type,
                    "exercise_intensity": ex.intensity,
                    "exercise_modalities": notes,
                    "exercise_equipment": list(ex.equipment),
                    "exercise_order": ei,
                },
            })
    return items
