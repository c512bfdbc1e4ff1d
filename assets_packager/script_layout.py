"""Statement-level passes over already minified or formatted scripts.

The scanner here is not a parser. It knows enough JavaScript lexical
structure (strings, template literals, comments, regular expression
literals) to never touch the inside of a token, and tracks bracket nesting
to tell block bodies from object literals. That is all the package-level
passes need:

* ``join_var_statements`` merges ``var a=0;var b=0;`` into ``var a=0,b=0;``
* ``wrap_lines`` breaks long lines at statement boundaries
* ``reindent`` re-indents unminified sources by nesting depth
* ``concatenate_scripts`` joins per-file outputs without changing the
  meaning of adjacent statements
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

# A '/' after one of these starts a regular expression literal.
REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")
REGEX_KEYWORDS = {
    "return", "typeof", "instanceof", "in", "of", "new", "delete",
    "void", "throw", "case", "do", "else", "yield", "await",
}
BLOCK_KEYWORDS = {"else", "try", "finally", "do"}
# Words that continue the statement closed by a preceding block.
CONTINUATION_WORDS = {"else", "catch", "finally", "while", "instanceof", "in", "of"}
# Statements that may end in a block and need no terminator.
STATEMENT_WORDS = {"function", "if", "else", "for", "while", "switch", "try", "catch", "finally", "with"}
ASI_HAZARDS = ("(", "[", "`", "+", "-", "/")
TWO_CHAR_PUNCT = ("=>", "++", "--")

_WORD_CHAR = re.compile(r"[\w$]")
_LINE_END = re.compile(r"[ \t]*\n")


@dataclass
class Token:
    kind: str
    text: str
    start: int
    end: int


@dataclass(eq=False)
class _Frame:
    kind: str
    statement: bool = False
    empty: bool = True
    opener: int = -1


@dataclass
class _Position:
    frame: _Frame
    depth: int
    closed: Optional[_Frame] = None


@dataclass
class _Layout:
    tokens: List[Token] = field(default_factory=list)
    positions: List[_Position] = field(default_factory=list)

    def next_significant(self, index: int) -> Optional[Token]:
        for tok in self.tokens[index + 1:]:
            if tok.kind != "comment":
                return tok
        return None


def _skip_string(code: str, i: int) -> int:
    quote = code[i]
    n = len(code)
    j = i + 1
    while j < n:
        ch = code[j]
        if ch == "\\":
            j += 2
            continue
        if ch == quote:
            return j + 1
        if quote == "`" and code.startswith("${", j):
            j = _skip_template_expression(code, j + 2)
            continue
        if ch == "\n" and quote != "`":
            return j
        j += 1
    return n


def _skip_template_expression(code: str, j: int) -> int:
    depth = 1
    n = len(code)
    while j < n and depth:
        ch = code[j]
        if ch in "'\"`":
            j = _skip_string(code, j)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        j += 1
    return j


def _skip_regex(code: str, i: int) -> Optional[int]:
    n = len(code)
    j = i + 1
    in_class = False
    while j < n:
        ch = code[j]
        if ch == "\n":
            return None
        if ch == "\\":
            j += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            j += 1
            while j < n and _WORD_CHAR.match(code[j]):
                j += 1
            return j
        j += 1
    return None


def _regex_allowed(prev: Optional[Token]) -> bool:
    if prev is None:
        return True
    if prev.kind == "punct":
        return prev.text == "=>" or prev.text in REGEX_PRECEDERS
    if prev.kind == "word":
        return prev.text in REGEX_KEYWORDS
    return False


def tokenize(code: str) -> List[Token]:
    tokens: List[Token] = []
    prev: Optional[Token] = None
    i = 0
    n = len(code)
    while i < n:
        ch = code[i]
        if ch.isspace():
            i += 1
            continue

        if code.startswith("//", i):
            end = code.find("\n", i)
            end = n if end == -1 else end
            tokens.append(Token("comment", code[i:end], i, end))
            i = end
            continue
        if code.startswith("/*", i):
            end = code.find("*/", i + 2)
            end = n if end == -1 else end + 2
            tokens.append(Token("comment", code[i:end], i, end))
            i = end
            continue

        if ch in "'\"`":
            end = _skip_string(code, i)
            tok = Token("string", code[i:end], i, end)
        elif ch == "/" and _regex_allowed(prev) and _skip_regex(code, i) is not None:
            end = _skip_regex(code, i)
            tok = Token("regex", code[i:end], i, end)
        elif _WORD_CHAR.match(ch):
            end = i + 1
            while end < n and _WORD_CHAR.match(code[end]):
                end += 1
            tok = Token("word", code[i:end], i, end)
        elif code.startswith(TWO_CHAR_PUNCT, i):
            end = i + 2
            tok = Token("punct", code[i:end], i, end)
        else:
            end = i + 1
            tok = Token("punct", ch, i, end)

        tokens.append(tok)
        prev = tok
        i = end
    return tokens


def _opens_block(prev: Optional[Token], current: _Frame) -> bool:
    if prev is None:
        return True
    if prev.kind == "punct":
        if prev.text in (")", "{", "}", ";", "=>"):
            return True
        # `case x:{` inside a block, `key:{` inside an object literal
        return prev.text == ":" and current.kind == "block"
    if prev.kind == "word":
        return prev.text in BLOCK_KEYWORDS
    return False


def analyze(code: str) -> _Layout:
    """Tokenize ``code`` and record the enclosing frame of every token."""
    layout = _Layout(tokens=tokenize(code))
    stack = [_Frame("block", statement=True)]
    prev: Optional[Token] = None

    for index, tok in enumerate(layout.tokens):
        current = stack[-1]
        if tok.kind == "comment":
            layout.positions.append(_Position(current, len(stack) - 1))
            continue

        if tok.kind == "punct" and tok.text in ("(", "[", "{"):
            current.empty = False
            if tok.text == "{":
                kind = "block" if _opens_block(prev, current) else "object"
            else:
                kind = "paren" if tok.text == "(" else "bracket"
            layout.positions.append(_Position(current, len(stack) - 1))
            stack.append(_Frame(kind, statement=(kind == "block" and current.kind == "block"), opener=index))
        elif tok.kind == "punct" and tok.text in (")", "]", "}") and len(stack) > 1:
            closed = stack.pop()
            layout.positions.append(_Position(stack[-1], len(stack) - 1, closed=closed))
        else:
            current.empty = False
            layout.positions.append(_Position(current, len(stack) - 1))
        prev = tok

    return layout


def _boundaries(code: str, layout: _Layout) -> List[int]:
    """Offsets where a newline can go without changing what the code means."""
    limit = len(code.rstrip())
    found = set()
    for index, (tok, pos) in enumerate(zip(layout.tokens, layout.positions)):
        if tok.kind != "punct":
            continue
        if tok.text == ";" and pos.frame.kind == "block":
            found.add(tok.end)
        elif tok.text == "}" and pos.closed is not None and pos.closed.kind == "block":
            if not pos.closed.empty:
                found.add(tok.start)
            following = layout.next_significant(index)
            if (
                pos.closed.statement
                and following is not None
                and following.kind == "word"
                and following.text not in CONTINUATION_WORDS
            ):
                found.add(tok.end)
    return sorted(p for p in found if 0 < p < limit)


def wrap_lines(code: str, max_line_len: Optional[int]) -> str:
    """Insert newlines at statement boundaries once a line exceeds ``max_line_len``.

    The limit is soft: a line is only broken at the first boundary past the
    limit, so single statements longer than the limit stay whole.
    """
    if not max_line_len or max_line_len <= 0:
        return code

    layout = analyze(code)
    out: List[str] = []
    line = ""
    last = 0
    for boundary in _boundaries(code, layout):
        segment = code[last:boundary]
        out.append(segment)
        last = boundary
        line = segment.rsplit("\n", 1)[-1] if "\n" in segment else line + segment

        if len(line) <= max_line_len or _LINE_END.match(code, boundary):
            continue
        indent = line[: len(line) - len(line.lstrip(" \t"))]
        out.append("\n" + indent)
        line = indent
        while last < len(code) and code[last] in " \t":
            last += 1

    out.append(code[last:])
    return "".join(out)


def _statement_start(prev: Optional[Token]) -> bool:
    return prev is None or (prev.kind == "punct" and prev.text in (";", "{", "}"))


def join_var_statements(code: str) -> str:
    """Merge consecutive ``var`` statements of the same block.

    Only ``;var`` pairs sitting directly next to each other are merged, and
    only when the first ``var`` starts a statement of a braced block (or the
    top level), so braceless ``if``/loop bodies and ``for(...)`` headers are
    never touched.
    """
    layout = analyze(code)
    tokens = layout.tokens
    replacements = []
    prev: Optional[Token] = None
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        frame = layout.positions[i].frame
        if tok.kind == "comment":
            i += 1
            continue
        if not (tok.kind == "word" and tok.text == "var" and frame.kind == "block" and _statement_start(prev)):
            prev = tok
            i += 1
            continue

        j = i + 1
        while j < len(tokens):
            current, pos = tokens[j], layout.positions[j]
            if pos.closed is frame:
                break
            if current.kind == "punct" and current.text == ";" and pos.frame is frame:
                nxt = tokens[j + 1] if j + 1 < len(tokens) else None
                if nxt is not None and nxt.kind == "word" and nxt.text == "var" and not code[current.end:nxt.start].strip():
                    end = nxt.end
                    while end < len(code) and code[end].isspace():
                        end += 1
                    replacements.append((current.start, end))
                    j += 2
                    continue
                break
            j += 1

        prev = tokens[j - 1] if j - 1 > i else tok
        i = j

    if not replacements:
        return code
    out: List[str] = []
    last = 0
    for start, end in replacements:
        out.append(code[last:start])
        out.append(",")
        last = end
    out.append(code[last:])
    return "".join(out)


def reindent(code: str, indent_width: int = 4) -> str:
    """Re-indent unminified script source by bracket nesting depth.

    Lines that start inside a multi-line string or comment are kept as they
    are, apart from trailing whitespace.
    """
    layout = analyze(code)
    tokens = layout.tokens
    result: List[str] = []
    offset = 0
    ti = 0
    for line in code.split("\n"):
        while ti < len(tokens) and tokens[ti].end <= offset:
            ti += 1
        stripped = line.strip()
        if not stripped:
            result.append("")
        elif ti < len(tokens) and tokens[ti].start < offset:
            result.append(line.rstrip())
        else:
            depth = layout.positions[ti].depth if ti < len(tokens) else 0
            result.append(" " * (indent_width * depth) + stripped)
        offset += len(line) + 1
    return "\n".join(result).strip("\n")


def _last_significant(layout: _Layout) -> Optional[int]:
    for index in range(len(layout.tokens) - 1, -1, -1):
        if layout.tokens[index].kind != "comment":
            return index
    return None


def _statement_head(layout: _Layout, index: int) -> Optional[Token]:
    """First token of the statement the token at ``index`` belongs to."""
    depth = layout.positions[index].depth
    head = None
    for i in range(index, -1, -1):
        tok, pos = layout.tokens[i], layout.positions[i]
        if tok.kind == "comment" or pos.depth > depth:
            continue
        if pos.depth < depth:
            break
        if i != index and tok.kind == "punct":
            if tok.text == ";":
                break
            if tok.text == "}" and pos.closed is not None and pos.closed.statement:
                break
        head = tok
    return head


def _ends_with_block_statement(layout: _Layout, index: int) -> bool:
    closed = layout.positions[index].closed
    if closed is None or closed.kind != "block" or not closed.statement:
        return False
    head = _statement_head(layout, closed.opener)
    return head is not None and head.kind == "word" and head.text in STATEMENT_WORDS


def concatenate_scripts(chunks: Sequence[str], separator: str = "") -> str:
    """Join per-file script outputs, keeping adjacent statements apart.

    A ``;`` is added after every chunk that is not already terminated. A
    chunk ending with the body of a declaration or control statement
    (``function a(){}``, ``if(x){}``) only gets one when the next chunk
    starts with a token that would otherwise continue it. Function
    expressions and object literals always get one.
    """
    parts: List[str] = []
    for chunk in chunks:
        chunk = chunk.strip()
        if not chunk:
            continue
        if parts:
            previous = parts[-1]
            layout = analyze(previous)
            index = _last_significant(layout)
            first = next((t for t in tokenize(chunk) if t.kind != "comment"), None)
            if index is not None and first is not None:
                last = layout.tokens[index]
                if last.text == ";":
                    needed = False
                elif last.text == "}" and _ends_with_block_statement(layout, index):
                    needed = first.text.startswith(ASI_HAZARDS)
                else:
                    needed = True
                if needed:
                    parts[-1] = previous[: last.end] + ";" + previous[last.end:]
        parts.append(chunk)
    return separator.join(parts)
