"""Maps a diagnostic to the bounded fix recipe that can remediate it."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath
from typing import Callable, Optional

from devmonitor.models import Diagnostic, DiagnosticCategory, FixCapability


class StrategyKind(StrEnum):
    LINT_AUTOFIX = "lint_autofix"
    ADD_IMPORT = "add_import"
    ADD_TYPE_ANNOTATION = "add_type_annotation"
    ADD_RETURN_TYPE = "add_return_type"
    INSTALL_DEPENDENCY = "install_dependency"
    FIX_IMPORT_EXTENSION = "fix_import_extension"
    FIX_CONFIG_FILE = "fix_config_file"
    FIX_PROPERTY_ACCESS = "fix_property_access"
    ADD_TYPE_ASSERTION = "add_type_assertion"
    ADD_NULL_CHECK = "add_null_check"
    REMOVE_UNUSED_SYMBOL = "remove_unused_symbol"
    ADD_MISSING_PROPERTY = "add_missing_property"
    FIX_MODULE_RESOLUTION = "fix_module_resolution"
    ADD_CLIENT_DIRECTIVE = "add_client_directive"
    FIX_API_ROUTE = "fix_api_route"
    ADD_ALT_ATTRIBUTE = "add_alt_attribute"
    FIX_IMAGE_OPTIMIZATION = "fix_image_optimization"
    FIX_HOOK_DEPENDENCIES = "fix_hook_dependencies"
    ADD_KEY_PROP = "add_key_prop"
    REMOVE_DEBUG_STATEMENT = "remove_debug_statement"
    FIX_ENV_VARIABLE = "fix_env_variable"
    FIX_STRICT_OPTIONAL = "fix_strict_optional"


@dataclass(frozen=True)
class FixStrategy:
    """A resolved recipe. ``symbol`` and ``replacement`` are only set where the kind needs them."""

    kind: StrategyKind
    description: str
    symbol: Optional[str] = None
    replacement: Optional[str] = None


CONFIG_FILES = re.compile(r"(?:^|/)(?:next\.config\.[cm]?[jt]s|package\.json|tsconfig\.json)$")
CLIENT_HOOKS = (
    "useState", "useEffect", "useLayoutEffect", "useReducer", "useRef", "useContext",
    "useCallback", "useMemo", "useRouter", "usePathname", "useSearchParams", "useParams",
)
QUOTED = r"['\"`]"

Rule = Callable[[Diagnostic], Optional[FixStrategy]]


def _search(pattern: str, message: str) -> Optional[re.Match[str]]:
    return re.search(pattern, message, re.IGNORECASE)


def is_relative_specifier(specifier: str) -> bool:
    return specifier.startswith(("./", "../", "@/", "~/"))


# ── Framework idioms (checked for every category) ─────────────────────


def _client_directive(d: Diagnostic) -> Optional[FixStrategy]:
    hooks = "|".join(CLIENT_HOOKS)
    m = _search(rf"\b({hooks})\b.*(?:is not defined|only works in a Client Component|needs .*\"use client\")", d.message)
    if m is None:
        m = _search(rf"needs ({hooks})\b", d.message)
    if m:
        return FixStrategy(StrategyKind.ADD_CLIENT_DIRECTIVE, f"Mark component as client component for {m.group(1)}", symbol=m.group(1))
    if _search(r"only works in a Client Component|add the \"use client\" directive", d.message):
        return FixStrategy(StrategyKind.ADD_CLIENT_DIRECTIVE, "Mark component as client component")
    return None


def _api_route(d: Diagnostic) -> Optional[FixStrategy]:
    if _search(r"missing return Response|No response is returned from route handler|did not return a Response", d.message):
        return FixStrategy(StrategyKind.FIX_API_ROUTE, "Return a Response from the route handler")
    return None


def _alt_attribute(d: Diagnostic) -> Optional[FixStrategy]:
    if _search(r"img elements must have an alt prop|alt-text|missing .*alt (?:prop|attribute)", d.message) or d.rule == "jsx-a11y/alt-text":
        return FixStrategy(StrategyKind.ADD_ALT_ATTRIBUTE, "Add alt attribute to image")
    return None


def _image_optimization(d: Diagnostic) -> Optional[FixStrategy]:
    if d.rule == "@next/next/no-img-element" or _search(r"Using `?<img>`? could result in slower LCP|Do not use `?<img>`? element", d.message):
        return FixStrategy(StrategyKind.FIX_IMAGE_OPTIMIZATION, "Replace <img> with next/image <Image />")
    return None


def _hook_dependencies(d: Diagnostic) -> Optional[FixStrategy]:
    m = _search(r"React Hook (\w+) has (?:a )?missing dependenc(?:y|ies): ((?:'[\w.]+'(?:,\s*| and )?)+)", d.message)
    if m:
        deps = ", ".join(re.findall(r"'([\w.]+)'", m.group(2)))
        return FixStrategy(StrategyKind.FIX_HOOK_DEPENDENCIES, f"Add missing dependencies to {m.group(1)}", symbol=m.group(1), replacement=deps)
    return None


def _key_prop(d: Diagnostic) -> Optional[FixStrategy]:
    if _search(rf"Missing {QUOTED}key{QUOTED} prop|should have a unique {QUOTED}key{QUOTED} prop", d.message):
        return FixStrategy(StrategyKind.ADD_KEY_PROP, "Add key prop to iterated element")
    return None


def _debug_statement(d: Diagnostic) -> Optional[FixStrategy]:
    m = _search(r"Unexpected (console|debugger) statement", d.message)
    if m:
        return FixStrategy(StrategyKind.REMOVE_DEBUG_STATEMENT, f"Remove {m.group(1).lower()} statement", symbol=m.group(1).lower())
    return None


def _env_variable(d: Diagnostic) -> Optional[FixStrategy]:
    m = _search(r"process\.env\.(\w+)\b.*(?:undefined|not (?:defined|exposed|available))", d.message)
    if m is None:
        m = _search(rf"environment variable {QUOTED}?(\w+){QUOTED}?.*(?:undefined|not (?:defined|exposed|available))", d.message)
    if m and not m.group(1).startswith("NEXT_PUBLIC_"):
        return FixStrategy(StrategyKind.FIX_ENV_VARIABLE, f"Expose {m.group(1)} to the browser with NEXT_PUBLIC_ prefix", symbol=m.group(1))
    return None


def _strict_optional(d: Diagnostic) -> Optional[FixStrategy]:
    if not _search(r"exactOptionalPropertyTypes", d.message):
        return None
    m = _search(r"Types of property '(\w+)' are incompatible", d.message)
    return FixStrategy(
        StrategyKind.FIX_STRICT_OPTIONAL,
        "Allow undefined on optional property",
        symbol=m.group(1) if m else None,
    )


IDIOM_RULES: tuple[Rule, ...] = (
    _client_directive,
    _api_route,
    _alt_attribute,
    _image_optimization,
    _hook_dependencies,
    _key_prop,
    _debug_statement,
    _env_variable,
    _strict_optional,
)


# ── Category rules ────────────────────────────────────────────────────


def _config_file(d: Diagnostic) -> Optional[FixStrategy]:
    path = PurePosixPath(d.location.file.replace("\\", "/")).as_posix()
    named = _search(r"(next\.config\.[cm]?[jt]s|package\.json|tsconfig\.json)", d.message)
    if CONFIG_FILES.search(path) or named:
        target = named.group(1) if named else PurePosixPath(path).name
        return FixStrategy(StrategyKind.FIX_CONFIG_FILE, f"Review {target}", symbol=target)
    return None


def _unresolved_module(specifier: str) -> FixStrategy:
    if is_relative_specifier(specifier):
        return FixStrategy(StrategyKind.FIX_MODULE_RESOLUTION, f"Fix import path {specifier}", symbol=specifier)
    return FixStrategy(StrategyKind.INSTALL_DEPENDENCY, f"Install package {specifier}", symbol=specifier)


def _import_extension(d: Diagnostic) -> Optional[FixStrategy]:
    m = _search(r"Incorrect file extension(?:\s+(\.\w+)\s+should be\s+(\.\w+))?", d.message)
    if m:
        return FixStrategy(StrategyKind.FIX_IMPORT_EXTENSION, "Fix import file extension", symbol=m.group(1), replacement=m.group(2))
    if _search(r"import path cannot end with a '\.tsx?' extension", d.message):
        return FixStrategy(StrategyKind.FIX_IMPORT_EXTENSION, "Drop TypeScript extension from import")
    m = _search(r"need explicit file extensions.*Did you mean '([^']+)'", d.message)
    if m:
        return FixStrategy(StrategyKind.FIX_IMPORT_EXTENSION, f"Use {m.group(1)}", replacement=m.group(1))
    return None


def _unused_symbol(d: Diagnostic) -> Optional[FixStrategy]:
    m = _search(r"'(\w+)' is (?:declared|defined|assigned a value) but (?:its value is )?never (?:read|used)", d.message)
    if m:
        return FixStrategy(StrategyKind.REMOVE_UNUSED_SYMBOL, f"Remove unused {m.group(1)}", symbol=m.group(1))
    m = _search(r"Unused variable:? '?(\w+)'?", d.message)
    if m:
        return FixStrategy(StrategyKind.REMOVE_UNUSED_SYMBOL, f"Remove unused {m.group(1)}", symbol=m.group(1))
    return None


MessageRule = tuple[re.Pattern[str], Callable[[re.Match[str]], FixStrategy]]

TYPESCRIPT_RULES: tuple[MessageRule, ...] = (
    (
        re.compile(rf"Cannot find name {QUOTED}(\w+){QUOTED}"),
        lambda m: FixStrategy(StrategyKind.ADD_IMPORT, f"Import {m.group(1)}", symbol=m.group(1)),
    ),
    (
        re.compile(rf"Cannot find module {QUOTED}([^'\"`]+){QUOTED}"),
        lambda m: _unresolved_module(m.group(1)),
    ),
    (
        re.compile(r"Parameter '(\w+)' implicitly has an 'any' type"),
        lambda m: FixStrategy(StrategyKind.ADD_TYPE_ANNOTATION, f"Annotate parameter {m.group(1)}", symbol=m.group(1)),
    ),
    (
        re.compile(r"implicitly has an? '?any'? return type|Missing return type", re.IGNORECASE),
        lambda m: FixStrategy(StrategyKind.ADD_RETURN_TYPE, "Add explicit return type"),
    ),
    (
        re.compile(r"Property '(\w+)' does not exist on type .+ Did you mean '(\w+)'"),
        lambda m: FixStrategy(
            StrategyKind.FIX_PROPERTY_ACCESS,
            f"Rename {m.group(1)} to {m.group(2)}",
            symbol=m.group(1),
            replacement=m.group(2),
        ),
    ),
    (
        re.compile(r"Property '(\w+)' is missing in type .+ but required in type"),
        lambda m: FixStrategy(StrategyKind.ADD_MISSING_PROPERTY, f"Add missing property {m.group(1)}", symbol=m.group(1)),
    ),
    (
        re.compile(r"Property '(\w+)' does not exist on type"),
        lambda m: FixStrategy(StrategyKind.ADD_TYPE_ASSERTION, f"Assert type for access to {m.group(1)}", symbol=m.group(1)),
    ),
    (
        re.compile(r"(?:Object|'(\w+)') is possibly '(?:null|undefined)'"),
        lambda m: FixStrategy(StrategyKind.ADD_NULL_CHECK, "Add optional chaining", symbol=m.group(1)),
    ),
)

UNRESOLVED_MODULE = re.compile(r"Can't resolve '([^']+)'")
NOT_DEFINED = re.compile(r"'(\w+)' is not defined")
MISSING_DEPENDENCY = re.compile(rf"Missing dependency:? {QUOTED}?([@\w./-]+){QUOTED}?", re.IGNORECASE)


def _first_match(rules: tuple[MessageRule, ...], message: str) -> Optional[FixStrategy]:
    for pattern, build in rules:
        m = pattern.search(message)
        if m:
            return build(m)
    return None


def _typescript(d: Diagnostic) -> Optional[FixStrategy]:
    return _first_match(TYPESCRIPT_RULES, d.message) or _unused_symbol(d) or _import_extension(d)


def _eslint(d: Diagnostic) -> Optional[FixStrategy]:
    strategy = _unused_symbol(d)
    if strategy:
        return strategy
    m = NOT_DEFINED.search(d.message)
    if m:
        return FixStrategy(StrategyKind.ADD_IMPORT, f"Import {m.group(1)}", symbol=m.group(1))
    if d.capability == FixCapability.AUTO_FIXABLE or d.rule:
        return FixStrategy(StrategyKind.LINT_AUTOFIX, "Apply ESLint auto-fix")
    return None


def _import(d: Diagnostic) -> Optional[FixStrategy]:
    m = UNRESOLVED_MODULE.search(d.message)
    if m:
        return _unresolved_module(m.group(1))
    return _import_extension(d)


def _build(d: Diagnostic) -> Optional[FixStrategy]:
    strategy = _config_file(d)
    if strategy:
        return strategy
    m = UNRESOLVED_MODULE.search(d.message)
    if m:
        return _unresolved_module(m.group(1))
    m = MISSING_DEPENDENCY.search(d.message)
    if m:
        return FixStrategy(StrategyKind.INSTALL_DEPENDENCY, f"Install package {m.group(1)}", symbol=m.group(1))
    return _import_extension(d)


def _syntax(d: Diagnostic) -> Optional[FixStrategy]:
    if _search(r"Missing (?:semicolon|comma)", d.message):
        return FixStrategy(StrategyKind.LINT_AUTOFIX, "Apply ESLint auto-fix")
    return None


CATEGORY_RULES: dict[DiagnosticCategory, Rule] = {
    DiagnosticCategory.TYPESCRIPT: _typescript,
    DiagnosticCategory.ESLINT: _eslint,
    DiagnosticCategory.IMPORT: _import,
    DiagnosticCategory.BUILD: _build,
    DiagnosticCategory.SYNTAX: _syntax,
}


def resolve_strategy(diagnostic: Diagnostic) -> Optional[FixStrategy]:
    """Return the fix recipe for a diagnostic, or None when nothing applies."""
    for rule in IDIOM_RULES:
        strategy = rule(diagnostic)
        if strategy is not None:
            return strategy
    rule = CATEGORY_RULES.get(diagnostic.category)
    return rule(diagnostic) if rule else None
