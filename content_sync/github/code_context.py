"""Heuristic code signal extraction from pull request diffs.

Everything here is regex based and works on unified diff patches as returned
by the GitHub pull request files API. It is deliberately approximate: false
positives and negatives are accepted, and only TypeScript/JavaScript sources
produce symbols and imports.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from content_sync.shared.models import CodeContext

LANGUAGE_MAP: dict[str, str] = {
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "py": "Python",
    "rb": "Ruby",
    "go": "Go",
    "rs": "Rust",
    "java": "Java",
    "kt": "Kotlin",
    "swift": "Swift",
    "cs": "C#",
    "cpp": "C++",
    "c": "C",
    "h": "C",
    "php": "PHP",
    "sql": "SQL",
    "md": "Markdown",
    "json": "JSON",
    "yaml": "YAML",
    "yml": "YAML",
    "xml": "XML",
    "html": "HTML",
    "css": "CSS",
    "scss": "SCSS",
    "less": "LESS",
}

UNKNOWN_LANGUAGE = "Unknown"

SYMBOL_LANGUAGES = frozenset({"TypeScript", "JavaScript"})

# Method-like names that are never reported as functions
EXCLUDED_METHOD_NAMES = frozenset(
    {
        "if",
        "for",
        "while",
        "switch",
        "catch",
        "function",
        "return",
        "constructor",
        "render",
        "componentDidMount",
        "componentWillUnmount",
        "componentDidUpdate",
    }
)

FUNCTION_DECLARATION_RE = re.compile(r"(?:export\s+)?(?:async\s+)?function\s+(\w+)")
ARROW_FUNCTION_RE = re.compile(r"(?:export\s+)?(?:const|let)\s+(\w+)\s*=\s*(?:async\s*)?\(")
CLASS_RE = re.compile(r"(?:export\s+)?class\s+(\w+)")
COMPONENT_WRAPPER_RE = re.compile(
    r"(?:export\s+)?(?:const|let)\s+([A-Z]\w+)\s*=\s*(?:React\.)?(?:memo|forwardRef)"
)
METHOD_RE = re.compile(r"^\s+(?:async\s+)?(\w+)\s*\([^)]*\)\s*[{:]", re.MULTILINE)

IMPORT_FROM_RE = re.compile(r"""import\s+(?:\{[^}]+\}|\w+)\s+from\s+['"]([^'"]+)['"]""")
DYNAMIC_IMPORT_RE = re.compile(r"""import\s*\(\s*['"]([^'"]+)['"]\s*\)""")
REQUIRE_RE = re.compile(r"""require\s*\(\s*['"]([^'"]+)['"]\s*\)""")


@dataclass
class PatchSymbols:
    """Symbols found in the added lines of one patch."""

    components: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)


@dataclass
class SymbolChanges:
    """Symbols classified by which side of a diff they appear on."""

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    components_changed: list[str] = field(default_factory=list)


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _is_component_name(name: str) -> bool:
    return name[0].isupper()


def _added_lines(patch: str) -> list[str]:
    return [
        line[1:]
        for line in patch.split("\n")
        if line.startswith("+") and not line.startswith("+++")
    ]


def _removed_lines(patch: str) -> list[str]:
    return [
        line[1:]
        for line in patch.split("\n")
        if line.startswith("-") and not line.startswith("---")
    ]


def detect_language(filename: str) -> str:
    """Map a filename to a language name by its extension.

    Args:
        filename: File path or name (e.g., "src/app/page.tsx")

    Returns:
        Language name, or "Unknown" for unmapped or missing extensions

    Example:
        >>> detect_language("foo.tsx")
        'TypeScript'
    """
    if "." not in filename:
        return UNKNOWN_LANGUAGE
    extension = filename.rsplit(".", 1)[1].lower()
    return LANGUAGE_MAP.get(extension, UNKNOWN_LANGUAGE)


def extract_symbols_from_patch(patch: str, language: str) -> PatchSymbols:
    """Find declared functions, components and classes in a patch's added lines.

    Identifiers starting with an uppercase letter are treated as components.

    Args:
        patch: Unified diff text
        language: Language name from detect_language()

    Returns:
        PatchSymbols with unique names in discovery order
    """
    if language not in SYMBOL_LANGUAGES:
        return PatchSymbols()

    content = "\n".join(_added_lines(patch))
    components: list[str] = []
    functions: list[str] = []
    classes: list[str] = []

    for pattern in (FUNCTION_DECLARATION_RE, ARROW_FUNCTION_RE):
        for match in pattern.finditer(content):
            name = match.group(1)
            if _is_component_name(name):
                components.append(name)
            else:
                functions.append(name)

    classes.extend(match.group(1) for match in CLASS_RE.finditer(content))
    components.extend(match.group(1) for match in COMPONENT_WRAPPER_RE.finditer(content))

    for match in METHOD_RE.finditer(content):
        name = match.group(1)
        if name not in EXCLUDED_METHOD_NAMES:
            functions.append(name)

    return PatchSymbols(
        components=_unique(components),
        functions=_unique(functions),
        classes=_unique(classes),
    )


def extract_imports_from_patch(patch: str, language: str) -> list[str]:
    """Find module specifiers imported by a patch's added lines.

    Covers ES imports, dynamic import() and require().

    Args:
        patch: Unified diff text
        language: Language name from detect_language()

    Returns:
        Unique import paths in discovery order
    """
    if language not in SYMBOL_LANGUAGES:
        return []

    content = "\n".join(_added_lines(patch))
    imports: list[str] = []
    for pattern in (IMPORT_FROM_RE, DYNAMIC_IMPORT_RE, REQUIRE_RE):
        imports.extend(match.group(1) for match in pattern.finditer(content))
    return _unique(imports)


def _declared_symbols(lines: list[str], language: str) -> list[str]:
    if language not in SYMBOL_LANGUAGES:
        return []
    content = "\n".join(lines)
    names: list[str] = []
    for pattern in (FUNCTION_DECLARATION_RE, ARROW_FUNCTION_RE, CLASS_RE, COMPONENT_WRAPPER_RE):
        names.extend(match.group(1) for match in pattern.finditer(content))
    return _unique(names)


def extract_code_context(files: list[dict[str, Any]]) -> CodeContext:
    """Aggregate languages, paths, symbols and imports across a diff set.

    Args:
        files: Entries from GET /repos/{repo}/pulls/{n}/files (filename, patch)

    Returns:
        CodeContext with the union of every file's signal
    """
    components: list[str] = []
    functions: list[str] = []
    classes: list[str] = []
    imports: list[str] = []

    filenames = [f["filename"] for f in files]
    for file in files:
        patch = file.get("patch")
        if not patch:
            continue
        language = detect_language(file["filename"])
        symbols = extract_symbols_from_patch(patch, language)
        components.extend(symbols.components)
        functions.extend(symbols.functions)
        classes.extend(symbols.classes)
        imports.extend(extract_imports_from_patch(patch, language))

    directories = [name.rsplit("/", 1)[0] for name in filenames if "/" in name]

    return CodeContext(
        languages=_unique([detect_language(name) for name in filenames]),
        files=filenames,
        directories=_unique([d for d in directories if d]),
        components=_unique(components),
        functions=_unique(functions),
        classes=_unique(classes),
        imports=_unique(imports),
    )


def extract_symbol_changes(files: list[dict[str, Any]]) -> SymbolChanges:
    """Classify declared symbols as added, modified or removed across a diff set.

    A symbol declared on both sides of the diff counts as modified.
    Components touched on either side are listed in components_changed.
    """
    added: list[str] = []
    removed: list[str] = []

    for file in files:
        patch = file.get("patch")
        if not patch:
            continue
        language = detect_language(file["filename"])
        added.extend(_declared_symbols(_added_lines(patch), language))
        removed.extend(_declared_symbols(_removed_lines(patch), language))

    all_added = _unique(added)
    all_removed = _unique(removed)
    removed_set = set(all_removed)
    added_set = set(all_added)

    return SymbolChanges(
        added=[s for s in all_added if s not in removed_set],
        modified=[s for s in all_added if s in removed_set],
        removed=[s for s in all_removed if s not in added_set],
        components_changed=_unique(
            [s for s in all_added + all_removed if _is_component_name(s)]
        ),
    )
