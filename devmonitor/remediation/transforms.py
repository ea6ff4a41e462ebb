"""Text-level fix transforms.

Every transform takes the current file content plus the diagnostic's reported
line and returns a ``TextEdit`` with the new content, or ``None`` when the
pattern it repairs is not present. Transforms never touch the filesystem, so
each can be replaced by a parser-based rewrite without changing the engine.

The reported line is tried first, then the lines around it, nearest first.
The search stays inside the block that encloses the reported line, so a name
reused in another function is never touched.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from devmonitor.remediation.strategies import FixStrategy, StrategyKind


class LineNotFoundError(ValueError):
    """The reported line cannot be located in the file."""

    def __init__(self, line: int) -> None:
        super().__init__(f"Could not find error line {line}")
        self.line = line


@dataclass
class TextEdit:
    content: str
    change_type: str
    details: dict[str, Any] = field(default_factory=dict)


Transform = Callable[[str, int, FixStrategy], Optional[TextEdit]]

# lines on either side of the reported line that a transform may rewrite
NEARBY_LINES = 3

DIRECTIVE = re.compile(r"""^\s*['"]use (?:client|server)['"];?\s*$""")
IMPORT_LINE = re.compile(r"""^\s*import\b|\bfrom\s+['"][^'"]+['"];?\s*$""")
# bindings between ``import`` and ``from``; only a ``{...}`` list may span lines
IMPORT_CLAUSE = re.compile(r"""^\s*import\s+([^'"{};\n]*?(?:\{[^}]*\})?)\s*from\s*['"]""", re.MULTILINE)
SPECIFIER = re.compile(r"""(\bfrom\s+|\bimport\s*\(?\s*|\brequire\(\s*)(['"])([^'"]+)\2""")
MEMBER_ACCESS = re.compile(r"(?<![\w$?.])([A-Za-z_$][\w$]*)\.(?=[A-Za-z_$])")
GLOBAL_OBJECTS = frozenset({
    "console", "Math", "JSON", "Object", "Array", "Number", "String", "Promise",
    "Date", "this", "process", "window", "document", "React", "Symbol", "Reflect",
})

KNOWN_IMPORTS: dict[str, tuple[str, bool]] = {
    # symbol -> (module, is_default)
    "React": ("react", True),
    "useState": ("react", False),
    "useEffect": ("react", False),
    "useLayoutEffect": ("react", False),
    "useReducer": ("react", False),
    "useRef": ("react", False),
    "useContext": ("react", False),
    "useCallback": ("react", False),
    "useMemo": ("react", False),
    "createContext": ("react", False),
    "Fragment": ("react", False),
    "Suspense": ("react", False),
    "ReactNode": ("react", False),
    "useRouter": ("next/navigation", False),
    "usePathname": ("next/navigation", False),
    "useSearchParams": ("next/navigation", False),
    "useParams": ("next/navigation", False),
    "redirect": ("next/navigation", False),
    "notFound": ("next/navigation", False),
    "NextResponse": ("next/server", False),
    "NextRequest": ("next/server", False),
    "Metadata": ("next", False),
    "Image": ("next/image", True),
    "Link": ("next/link", True),
    "Head": ("next/head", True),
    "Script": ("next/script", True),
    "dynamic": ("next/dynamic", True),
}

PARAMETER_TYPES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(?:id|\w+Id|uuid|name|title|label|text|message|url|href|path|slug|key)$"), "string"),
    (re.compile(r"^(?:count|index|idx|i|n|num|total|page|limit|offset|size|length|amount)$"), "number"),
    (re.compile(r"^(?:callback|cb|fn|handler|on[A-Z]\w*)$"), "Function"),
    (re.compile(r"^(?:event|evt)$"), "Event"),
    (re.compile(r"^(?:is|has|should|can)[A-Z]\w*$|^(?:enabled|disabled|visible|active)$"), "boolean"),
)


def infer_parameter_type(name: str) -> str:
    """Guess a parameter's type from its name; ``any`` when nothing fits."""
    for pattern, type_name in PARAMETER_TYPES:
        if pattern.match(name):
            return type_name
    return "any"


def find_block_end(lines: list[str], start: int) -> int:
    """Index of the line closing the first ``{`` block opened at or after ``start``."""
    depth = 0
    opened = False
    for index in range(start, len(lines)):
        for char in lines[index]:
            if char == "{":
                depth += 1
                opened = True
            elif char == "}":
                depth -= 1
        if opened and depth <= 0:
            return index
    return len(lines) - 1


def has_response(lines: list[str], start: int, end: int) -> bool:
    """True if any line in ``[start, end]`` returns a response object."""
    pattern = re.compile(r"\breturn\b.*\b(?:Response|NextResponse|response|res)\b")
    return any(pattern.search(line) for line in lines[start:end + 1])


def _split(content: str, line: int) -> list[str]:
    if not content.strip():
        raise LineNotFoundError(line)
    return content.split("\n")


def _enclosing_block(lines: list[str], index: int) -> tuple[int, int]:
    """Line span of the innermost ``{`` block containing ``index``; the whole file at top level."""
    for start in range(index, -1, -1):
        if "{" in lines[start]:
            end = find_block_end(lines, start)
            if end >= index:
                return start, end
    return 0, len(lines) - 1


def _line_order(lines: list[str], line: int) -> Iterator[int]:
    """The reported line, then its neighbours by distance without leaving the enclosing block."""
    reported = line - 1
    if not 0 <= reported < len(lines):
        return
    first, last = _enclosing_block(lines, reported)
    yield reported
    for distance in range(1, NEARBY_LINES + 1):
        for index in (reported - distance, reported + distance):
            if first <= index <= last:
                yield index


def _rewrite_first_line(
    lines: list[str],
    line: int,
    rewrite: Callable[[str], Optional[str]],
) -> Optional[int]:
    """Apply ``rewrite`` to the first candidate line it changes; return that index."""
    for index in _line_order(lines, line):
        updated = rewrite(lines[index])
        if updated is not None and updated != lines[index]:
            lines[index] = updated
            return index
    return None


def _line_of(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


# ── Imports ───────────────────────────────────────────────────────────


def _already_imported(content: str, symbol: str) -> bool:
    name = re.compile(rf"(?<![\w$]){re.escape(symbol)}(?![\w$])")
    return any(name.search(m.group(1)) for m in IMPORT_CLAUSE.finditer(content))


def _import_insert_index(lines: list[str]) -> int:
    index = 0
    for i, text in enumerate(lines):
        if DIRECTIVE.match(text):
            index = i + 1
        elif IMPORT_LINE.search(text) and not text.lstrip().startswith("//"):
            index = i + 1
    return index


def import_statement(symbol: str) -> tuple[str, str]:
    """Return ``(module, statement)`` for a symbol, synthesizing a package import if unknown."""
    if symbol in KNOWN_IMPORTS:
        module, is_default = KNOWN_IMPORTS[symbol]
    else:
        module = re.sub(r"(?<!^)(?=[A-Z])", "-", symbol).lower()
        is_default = False
    if is_default:
        return module, f'import {symbol} from "{module}";'
    return module, f'import {{ {symbol} }} from "{module}";'


def insert_import(content: str, symbol: str) -> Optional[str]:
    if _already_imported(content, symbol):
        return None
    module, statement = import_statement(symbol)
    lines = content.split("\n")

    named = re.compile(rf"""^(\s*import\s*\{{)([^}}]*)(\}}\s*from\s*['"]{re.escape(module)}['"];?\s*)$""")
    if not KNOWN_IMPORTS.get(symbol, (module, False))[1]:
        for i, text in enumerate(lines):
            m = named.match(text)
            if m:
                names = [n.strip() for n in m.group(2).split(",") if n.strip()]
                lines[i] = f"{m.group(1)} {', '.join(names + [symbol])} {m.group(3)}"
                return "\n".join(lines)

    lines.insert(_import_insert_index(lines), statement)
    return "\n".join(lines)


def add_import(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    symbol = strategy.symbol
    if not symbol:
        return None
    updated = insert_import(content, symbol)
    if updated is None:
        return None
    module, statement = import_statement(symbol)
    return TextEdit(updated, "add_import", {"symbol": symbol, "module": module, "statement": statement})


def _strip_extension(specifier: str) -> str:
    return re.sub(r"\.[cm]?[jt]sx?$", "", specifier)


def fix_import_extension(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    lines = _split(content, line)
    wrong, right = strategy.symbol, strategy.replacement

    def rewrite_specifier(specifier: str) -> str:
        if not specifier.startswith("."):
            return specifier
        if right and "/" in right:
            return right if _strip_extension(specifier) == _strip_extension(right) else specifier
        if wrong and right:
            if specifier.endswith(wrong):
                return specifier[: -len(wrong)] + right
            if not re.search(r"\.\w+$", specifier.rsplit("/", 1)[-1]):
                return specifier + right
            return specifier
        return re.sub(r"\.tsx?$", "", specifier)

    def rewrite(text: str) -> Optional[str]:
        return SPECIFIER.sub(lambda m: f"{m.group(1)}{m.group(2)}{rewrite_specifier(m.group(3))}{m.group(2)}", text)

    index = _rewrite_first_line(lines, line, rewrite)
    if index is None:
        return None
    return TextEdit("\n".join(lines), "fix_import_extension", {"line": index + 1})


def fix_module_specifier(content: str, specifier: str, available: list[str]) -> Optional[TextEdit]:
    """Point an unresolved relative import at the closest existing module."""
    matches = difflib.get_close_matches(specifier, available, n=1, cutoff=0.6)
    if not matches or matches[0] == specifier:
        return None
    replacement = matches[0]
    pattern = re.compile(rf"""(['"]){re.escape(specifier)}\1""")
    updated, count = pattern.subn(lambda m: f"{m.group(1)}{replacement}{m.group(1)}", content)
    if not count:
        return None
    return TextEdit(updated, "fix_module_resolution", {"from": specifier, "to": replacement})


# ── Type annotations ──────────────────────────────────────────────────


def add_type_annotation(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    name = strategy.symbol
    if not name:
        return None
    lines = _split(content, line)
    type_name = infer_parameter_type(name)
    in_params = re.compile(rf"([(,]\s*)({re.escape(name)})(\s*)(?=[,)=])")
    bare_arrow = re.compile(rf"(?<![\w$(])({re.escape(name)})\s*=>")

    def rewrite(text: str) -> Optional[str]:
        if in_params.search(text):
            return in_params.sub(rf"\1\2: {type_name}\3", text, count=1)
        if bare_arrow.search(text):
            return bare_arrow.sub(rf"(\1: {type_name}) =>", text, count=1)
        return None

    if _rewrite_first_line(lines, line, rewrite) is None:
        return None
    return TextEdit("\n".join(lines), "add_type_annotation", {"parameter": name, "type": type_name})


def _infer_return_type(body: list[str]) -> Optional[str]:
    kinds: set[str] = set()
    for text in body:
        m = re.search(r"\breturn\b\s*(.*?);?\s*$", text)
        if not m:
            continue
        value = m.group(1).strip()
        if not value:
            kinds.add("void")
        elif re.match(r"""^(['"`]).*\1$""", value):
            kinds.add("string")
        elif re.match(r"^-?\d+(?:\.\d+)?$", value):
            kinds.add("number")
        elif value in ("true", "false"):
            kinds.add("boolean")
        elif value.startswith("<") or value == "(":
            kinds.add("JSX.Element")
        elif value == "null":
            kinds.add("null")
        else:
            return None
    if not kinds:
        return "void"
    if len(kinds) == 1:
        return kinds.pop()
    if "void" in kinds:
        return None
    return " | ".join(sorted(kinds))


def add_return_type(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    lines = _split(content, line)
    declaration = re.compile(
        r"^(?P<head>.*?\b(?P<async>async\s+)?function\b\s*\*?\s*[\w$]*\s*\([^)]*\))(?P<gap>\s*)\{"
        r"|^(?P<arrow>.*?=\s*(?P<aasync>async\s+)?\([^)]*\))(?P<agap>\s*)=>"
    )

    for index in _line_order(lines, line):
        m = declaration.match(lines[index])
        if not m:
            continue
        end = find_block_end(lines, index)
        inferred = _infer_return_type(lines[index + 1:end + 1])
        if inferred is None:
            continue
        is_async = bool(m.group("async") or m.group("aasync"))
        type_name = f"Promise<{inferred}>" if is_async else inferred
        if m.group("head") is not None:
            lines[index] = f"{m.group('head')}: {type_name} {{" + lines[index][m.end():]
        else:
            lines[index] = f"{m.group('arrow')}: {type_name} =>" + lines[index][m.end():]
        return TextEdit("\n".join(lines), "add_return_type", {"type": type_name, "line": index + 1})
    return None


def fix_strict_optional(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    lines = _split(content, line)
    name = re.escape(strategy.symbol) if strategy.symbol else r"[\w$]+"
    optional = re.compile(rf"\b({name})\?:\s*([^;,\n}}]+?)(\s*[;,]?\s*)$")

    def rewrite(text: str) -> Optional[str]:
        m = optional.search(text)
        if not m or "undefined" in m.group(2):
            return None
        return text[: m.start()] + f"{m.group(1)}?: {m.group(2)} | undefined{m.group(3)}"

    index = _rewrite_first_line(lines, line, rewrite)
    if index is None:
        return None
    return TextEdit("\n".join(lines), "fix_strict_optional", {"line": index + 1})


# ── Property access ───────────────────────────────────────────────────


def fix_property_access(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    if not strategy.symbol or not strategy.replacement:
        return None
    lines = _split(content, line)
    pattern = re.compile(rf"(\??\.){re.escape(strategy.symbol)}\b")

    def rewrite(text: str) -> Optional[str]:
        return pattern.sub(rf"\g<1>{strategy.replacement}", text)

    index = _rewrite_first_line(lines, line, rewrite)
    if index is None:
        return None
    return TextEdit(
        "\n".join(lines),
        "fix_property_access",
        {"from": strategy.symbol, "to": strategy.replacement, "line": index + 1},
    )


def add_type_assertion(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    if not strategy.symbol:
        return None
    lines = _split(content, line)
    pattern = re.compile(rf"(?<![\w$.)])([A-Za-z_$][\w$]*)\.{re.escape(strategy.symbol)}\b")

    def rewrite(text: str) -> Optional[str]:
        return pattern.sub(rf"(\1 as any).{strategy.symbol}", text, count=1)

    index = _rewrite_first_line(lines, line, rewrite)
    if index is None:
        return None
    return TextEdit("\n".join(lines), "add_type_assertion", {"property": strategy.symbol, "line": index + 1})


def add_null_check(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    lines = _split(content, line)

    def rewrite(text: str) -> Optional[str]:
        if IMPORT_LINE.search(text):
            return None
        if strategy.symbol:
            named = re.compile(rf"(?<![\w$.?])({re.escape(strategy.symbol)})(\.|\[)")
            return named.sub(lambda m: f"{m.group(1)}?.{'' if m.group(2) == '.' else '['}", text, count=1)
        for m in MEMBER_ACCESS.finditer(text):
            if m.group(1) not in GLOBAL_OBJECTS:
                return f"{text[: m.end(1)]}?{text[m.end(1):]}"
        return None

    index = _rewrite_first_line(lines, line, rewrite)
    if index is None:
        return None
    return TextEdit("\n".join(lines), "add_null_check", {"operator": "?.", "line": index + 1})


def add_missing_property(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    if not strategy.symbol:
        return None
    lines = _split(content, line)
    literal = re.compile(r"((?:=|\(|\breturn|:|,)\s*\{)(?!\s*\})")
    empty = re.compile(r"((?:=|\(|\breturn|:|,)\s*\{)(\s*\})")
    entry = f"{strategy.symbol}: undefined as never"

    reported = line - 1
    window = range(max(reported, 0), min(reported + 3, len(lines)))
    for index in window:
        text = lines[index]
        if empty.search(text):
            lines[index] = empty.sub(rf"\1 {entry} \2", text, count=1)
        elif literal.search(text):
            lines[index] = literal.sub(rf"\1 {entry},", text, count=1)
        else:
            continue
        return TextEdit("\n".join(lines), "add_missing_property", {"property": strategy.symbol, "line": index + 1})
    return None


# ── Removals ──────────────────────────────────────────────────────────


def _balanced(text: str) -> bool:
    return all(text.count(a) == text.count(b) for a, b in ("()", "[]", "{}"))


def _remove_from_import(text: str, name: str) -> Optional[str]:
    m = re.match(r"""^(\s*import\s+(?:type\s+)?)(?:([\w$]+)\s*,?\s*)?(?:\{([^}]*)\})?(\s*from\s*['"][^'"]+['"];?\s*)$""", text)
    if not m:
        return None
    default, named = m.group(2), m.group(3)
    names = [n.strip() for n in (named or "").split(",") if n.strip()]
    kept = [n for n in names if re.split(r"\s+as\s+", n)[-1] != name]
    if default == name:
        default = None
    elif len(kept) == len(names):
        return None
    if not default and not kept:
        return ""
    parts = []
    if default:
        parts.append(default)
    if kept:
        parts.append("{ " + ", ".join(kept) + " }")
    return f"{m.group(1)}{', '.join(parts)}{m.group(4)}"


def remove_unused_symbol(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    name = strategy.symbol
    if not name:
        return None
    lines = _split(content, line)
    escaped = re.escape(name)
    declaration = re.compile(rf"^\s*(?:export\s+)?(?:const|let|var)\s+{escaped}\s*(?::[^=]+)?=.*$")
    destructured = re.compile(rf"^(\s*(?:const|let|var)\s*\{{)([^}}]*)(\}}\s*=.*)$")

    for index in _line_order(lines, line):
        text = lines[index]
        if IMPORT_LINE.search(text):
            updated = _remove_from_import(text, name)
            if updated is None:
                continue
            kind = "import"
        elif declaration.match(text) and _balanced(text):
            updated = ""
            kind = "declaration"
        else:
            m = destructured.match(text)
            if not m:
                continue
            names = [n.strip() for n in m.group(2).split(",") if n.strip()]
            kept = [n for n in names if n.split(":")[-1].strip() != name]
            if len(kept) == len(names) or not kept:
                continue
            updated = f"{m.group(1)} {', '.join(kept)} {m.group(3)}"
            kind = "destructuring"

        if updated:
            lines[index] = updated
        else:
            del lines[index]
        return TextEdit("\n".join(lines), "remove_unused_symbol", {"symbol": name, "kind": kind, "line": index + 1})
    return None


def remove_debug_statement(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    lines = _split(content, line)
    if strategy.symbol == "debugger":
        start = re.compile(r"^\s*debugger\s*;?\s*$")
    else:
        start = re.compile(r"^\s*console\.\w+\s*\(")

    for index in _line_order(lines, line):
        if not start.match(lines[index]):
            continue
        end = index
        statement = lines[index]
        while not _balanced(statement) and end + 1 < len(lines):
            end += 1
            statement += "\n" + lines[end]
        if not _balanced(statement):
            return None
        removed = "\n".join(lines[index:end + 1]).strip()
        del lines[index:end + 1]
        return TextEdit("\n".join(lines), "remove_debug_statement", {"removed": removed, "line": index + 1})
    return None


# ── Framework idioms ──────────────────────────────────────────────────


def add_client_directive(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    updated = content
    details: dict[str, Any] = {}
    first_statement = next(
        (text for text in content.split("\n") if text.strip() and not text.strip().startswith(("//", "/*", "*"))),
        "",
    )
    if not re.match(r"""^\s*['"]use client['"]""", first_statement):
        updated = '"use client";\n\n' + updated.lstrip("\n")
        details["directive"] = "use client"
    if strategy.symbol:
        with_import = insert_import(updated, strategy.symbol)
        if with_import is not None:
            updated = with_import
            details["import"] = import_statement(strategy.symbol)[1]
    if updated == content:
        return None
    return TextEdit(updated, "add_client_directive", details)


def fix_api_route(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    lines = _split(content, line)
    handler = re.compile(r"^(\s*)export\s+(?:async\s+)?function\s+(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\b")
    fixed: list[str] = []

    index = 0
    while index < len(lines):
        m = handler.match(lines[index])
        if not m:
            index += 1
            continue
        end = find_block_end(lines, index)
        if end > index and not has_response(lines, index, end):
            lines.insert(end, f"{m.group(1)}  return new Response(null, {{ status: 204 }});")
            fixed.append(m.group(2))
            end += 1
        index = end + 1

    if not fixed:
        return None
    return TextEdit("\n".join(lines), "fix_api_route", {"handlers": fixed})


def add_alt_attribute(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    tags = [m for m in re.finditer(r"<(img|Image)\b([^>]*)>", content) if not re.search(r"\balt\s*=", m.group(2))]
    if not tags:
        return None
    tag = next((m for m in tags if _line_of(content, m.start()) == line), tags[0])
    updated = content[: tag.end(1)] + ' alt=""' + content[tag.end(1):]
    return TextEdit(updated, "add_alt_attribute", {"element": tag.group(1), "line": _line_of(content, tag.start())})


def fix_image_optimization(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    tags = list(re.finditer(r"<img\b([^>]*?)\s*/?>", content))
    if not tags:
        return None
    tag = next((m for m in tags if _line_of(content, m.start()) == line), tags[0])
    attributes = tag.group(1)
    if not re.search(r"\bwidth\s*=", attributes) or not re.search(r"\bheight\s*=", attributes):
        attributes += ' width={0} height={0} sizes="100vw" style={{ width: "100%", height: "auto" }}'
    updated = content[: tag.start()] + f"<Image{attributes} />" + content[tag.end():]
    updated = insert_import(updated, "Image") or updated
    return TextEdit(updated, "fix_image_optimization", {"line": _line_of(content, tag.start())})


def _call_span(content: str, open_paren: int) -> Optional[int]:
    depth = 0
    for position in range(open_paren, len(content)):
        char = content[position]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return position
    return None


def fix_hook_dependencies(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    if not strategy.symbol or not strategy.replacement:
        return None
    calls = list(re.finditer(rf"\b{re.escape(strategy.symbol)}\s*\(", content))
    if not calls:
        return None
    call = next((m for m in calls if _line_of(content, m.start()) >= line), calls[-1])
    close = _call_span(content, call.end() - 1)
    if close is None:
        return None

    m = re.search(r"\[([^\[\]]*)\]\s*,?\s*$", content[call.end():close])
    if not m:
        return None
    start = call.end() + m.start(1)
    end = call.end() + m.end(1)
    existing = [d.strip() for d in m.group(1).split(",") if d.strip()]
    missing = [d.strip() for d in strategy.replacement.split(",") if d.strip()]
    merged = existing + [d for d in missing if d not in existing]
    if merged == existing:
        return None
    updated = content[:start] + ", ".join(merged) + content[end:]
    return TextEdit(updated, "fix_hook_dependencies", {"hook": strategy.symbol, "dependencies": merged})


def add_key_prop(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    pattern = re.compile(
        r"\.map\(\s*(?P<params>\(\s*(?P<item>[\w$]+)(?:\s*:\s*[^,)]+)?(?:\s*,\s*(?P<index>[\w$]+)[^)]*)?\)|(?P<bare>[\w$]+))"
        r"\s*=>\s*\(?\s*<(?P<tag>[A-Za-z][\w.]*)(?P<attrs>[^>]*)>"
    )
    matches = [m for m in pattern.finditer(content) if not re.search(r"\bkey\s*=", m.group("attrs"))]
    if not matches:
        return None
    m = next((x for x in matches if _line_of(content, x.start()) == line), matches[0])

    index_name = m.group("index")
    params = m.group("params")
    if not index_name:
        item = m.group("item") or m.group("bare")
        index_name = "index"
        if m.group("bare"):
            params = f"({item}, {index_name})"
        else:
            params = params[:-1].rstrip() + f", {index_name})"

    updated = (
        content[: m.start("params")]
        + params
        + content[m.end("params"): m.end("tag")]
        + f" key={{{index_name}}}"
        + content[m.end("tag"):]
    )
    return TextEdit(updated, "add_key_prop", {"element": m.group("tag"), "key": index_name})


def fix_env_variable(content: str, line: int, strategy: FixStrategy) -> Optional[TextEdit]:
    if not strategy.symbol:
        return None
    renamed = f"NEXT_PUBLIC_{strategy.symbol}"
    updated, count = re.subn(rf"\bprocess\.env\.{re.escape(strategy.symbol)}\b", f"process.env.{renamed}", content)
    if not count:
        return None
    return TextEdit(updated, "fix_env_variable", {"from": strategy.symbol, "to": renamed, "occurrences": count})


TRANSFORMS: dict[StrategyKind, Transform] = {
    StrategyKind.ADD_IMPORT: add_import,
    StrategyKind.ADD_TYPE_ANNOTATION: add_type_annotation,
    StrategyKind.ADD_RETURN_TYPE: add_return_type,
    StrategyKind.FIX_IMPORT_EXTENSION: fix_import_extension,
    StrategyKind.FIX_PROPERTY_ACCESS: fix_property_access,
    StrategyKind.ADD_TYPE_ASSERTION: add_type_assertion,
    StrategyKind.ADD_NULL_CHECK: add_null_check,
    StrategyKind.REMOVE_UNUSED_SYMBOL: remove_unused_symbol,
    StrategyKind.ADD_MISSING_PROPERTY: add_missing_property,
    StrategyKind.ADD_CLIENT_DIRECTIVE: add_client_directive,
    StrategyKind.FIX_API_ROUTE: fix_api_route,
    StrategyKind.ADD_ALT_ATTRIBUTE: add_alt_attribute,
    StrategyKind.FIX_IMAGE_OPTIMIZATION: fix_image_optimization,
    StrategyKind.FIX_HOOK_DEPENDENCIES: fix_hook_dependencies,
    StrategyKind.ADD_KEY_PROP: add_key_prop,
    StrategyKind.REMOVE_DEBUG_STATEMENT: remove_debug_statement,
    StrategyKind.FIX_ENV_VARIABLE: fix_env_variable,
    StrategyKind.FIX_STRICT_OPTIONAL: fix_strict_optional,
}
