"""Static dependency resolution for Node.js projects.

Starting at an entry file, this module follows ``require()``, ``import`` and
``export ... from`` references using Node's resolution rules and returns the
set of files the entry needs at runtime:

- relative and absolute paths, with extension inference,
- directories via ``package.json`` ``main`` and ``index`` files,
- bare package names via ``node_modules`` directories searched upward, stopping
  at the base directory.

Nothing is executed. Sources are scanned as text after comments are removed and
string, template and regex literal bodies are masked (template interpolations
excepted), so references only count when they appear in code. Built-in modules
are never part of the result.

Unresolvable references are fatal unless they are optional: either written
inside a ``try { ... }`` block or naming a package listed under
``optionalDependencies`` in the nearest ``package.json``.
"""

from dataclasses import dataclass
import json
import logging
import pathlib
import re

from app_packager.config import EXTENSIONS, MANIFEST_FILENAME
from app_packager.errors import ResolutionError


NODE_BUILTINS: frozenset[str] = frozenset(
    {
        "assert",
        "assert/strict",
        "async_hooks",
        "buffer",
        "child_process",
        "cluster",
        "console",
        "constants",
        "crypto",
        "dgram",
        "diagnostics_channel",
        "dns",
        "dns/promises",
        "domain",
        "events",
        "fs",
        "fs/promises",
        "http",
        "http2",
        "https",
        "inspector",
        "module",
        "net",
        "os",
        "path",
        "path/posix",
        "path/win32",
        "perf_hooks",
        "process",
        "punycode",
        "querystring",
        "readline",
        "readline/promises",
        "repl",
        "stream",
        "stream/consumers",
        "stream/promises",
        "stream/web",
        "string_decoder",
        "sys",
        "timers",
        "timers/promises",
        "tls",
        "trace_events",
        "tty",
        "url",
        "util",
        "util/types",
        "v8",
        "vm",
        "wasi",
        "worker_threads",
        "zlib",
    }
)

SCANNED_SUFFIXES: frozenset[str] = frozenset({".js", ".mjs", ".cjs", ".jsx"})

_RE_REQUIRE: re.Pattern[str] = re.compile(
    r"""(?<![\w$.])require\s*\(\s*(['"])([^'"\n]+)\1\s*\)"""
)
_RE_IMPORT_FROM: re.Pattern[str] = re.compile(
    r"""(?<![\w$.])import\s+(?:[\w$*{}\s,]+?\s*from\s*)?(['"])([^'"\n]+)\1"""
)
_RE_IMPORT_DYNAMIC: re.Pattern[str] = re.compile(
    r"""(?<![\w$.])import\s*\(\s*(['"])([^'"\n]+)\1\s*\)"""
)
_RE_EXPORT_FROM: re.Pattern[str] = re.compile(
    r"""(?<![\w$.])export\s+(?:\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*from\s*(['"])([^'"\n]+)\1"""
)
_RE_TRY: re.Pattern[str] = re.compile(r"""(?<![\w$.])try\s*\{""")

# A "/" after one of these starts a regex literal rather than a division.
_REGEX_PRECEDERS: frozenset[str] = frozenset("(,=:[!&|?{};+-*%<>~^")
_REGEX_KEYWORDS: frozenset[str] = frozenset(
    {"return", "typeof", "case", "do", "else", "in", "of", "new", "delete", "void", "throw", "yield", "await"}
)


@dataclass(frozen=True, slots=True)
class Reference:
    """A module specifier found in source text.

    :ivar specifier: The string literal passed to ``require``/``import``.
    :ivar offset: Character offset of the statement in the source.
    :ivar in_try: Whether the reference sits inside a ``try`` block.
    """

    specifier: str
    offset: int
    in_try: bool


def _blank(text: str) -> str:
    return re.sub(r"[^\r\n]", " ", text)


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() is True or ch == "_" or ch == "$"


def _string_end(text: str, start: int) -> int:
    """Return the index just past the string literal starting at ``start``."""

    quote: str = text[start]
    n: int = len(text)
    j: int = start + 1
    while j < n:
        c: str = text[j]
        if c == "\\":
            j += 2
            continue
        if c == quote:
            return j + 1
        if c == "\n":
            return j
        j += 1
    return n


def _template_chunk_end(text: str, start: int) -> tuple[int, bool]:
    """Scan template literal text from ``start``.

    :param text: Source text.
    :param start: Index just past the opening backtick or an interpolation's ``}``.
    :returns: ``(end, opened)``; ``end`` is just past the closing backtick, or just
        past ``${`` when ``opened`` is ``True``.
    """

    n: int = len(text)
    j: int = start
    while j < n:
        c: str = text[j]
        if c == "\\":
            j += 2
            continue
        if c == "`":
            return j + 1, False
        if c == "$" and j + 1 < n and text[j + 1] == "{":
            return j + 2, True
        j += 1
    return n, False


def _regex_end(text: str, start: int) -> int:
    """Return the index just past a regex literal starting at ``start``, or -1."""

    n: int = len(text)
    j: int = start + 1
    in_class: bool = False
    while j < n:
        c: str = text[j]
        if c == "\\":
            j += 2
            continue
        if c == "\n" or c == "\r":
            return -1
        if in_class is True:
            if c == "]":
                in_class = False
        elif c == "[":
            in_class = True
        elif c == "/":
            j += 1
            while j < n and _is_word_char(text[j]) is True:
                j += 1
            return j
        j += 1
    return -1


def mask_source(text: str) -> tuple[str, str]:
    """Strip comments and mask literal bodies, preserving offsets.

    :param text: JavaScript source.
    :returns: ``(code, masked)``. ``code`` has comments blanked out. ``masked``
        additionally blanks string, template and regex literal bodies; template
        ``${ ... }`` interpolations stay code. Both have the same length as
        ``text`` and keep its line breaks.
    """

    if text.startswith("#!") is True:
        eol: int = text.find("\n")
        shebang_end: int = len(text) if eol < 0 else eol
        text = _blank(text[0:shebang_end]) + text[shebang_end:]

    code: list[str] = []
    masked: list[str] = []
    n: int = len(text)
    i: int = 0
    last_sig: str = ""
    word: str = ""
    # Open brace count per enclosing ``${ ... }`` interpolation.
    template_depths: list[int] = []

    def template_chunk(start: int) -> int:
        nonlocal last_sig, word
        j, opened = _template_chunk_end(text, start + 1)
        code.append(text[start:j])
        if opened is True:
            masked.append(text[start] + _blank(text[start + 1 : j - 2]) + "${")
            template_depths.append(0)
            last_sig = "{"
        else:
            masked.append(text[start] + _blank(text[start + 1 : j]))
            last_sig = "`"
        word = ""
        return j

    while i < n:
        ch: str = text[i]
        nxt: str = text[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            j: int = i
            while j < n and text[j] != "\n" and text[j] != "\r":
                j += 1
            piece: str = _blank(text[i:j])
            code.append(piece)
            masked.append(piece)
            i = j
            continue

        if ch == "/" and nxt == "*":
            close: int = text.find("*/", i + 2)
            j = n if close < 0 else close + 2
            piece = _blank(text[i:j])
            code.append(piece)
            masked.append(piece)
            i = j
            continue

        if ch == "`":
            i = template_chunk(i)
            continue

        if ch == "}" and len(template_depths) > 0 and template_depths[-1] == 0:
            # End of an interpolation; template text resumes.
            template_depths.pop()
            i = template_chunk(i)
            continue

        if ch == "'" or ch == '"':
            j = _string_end(text, i)
            code.append(text[i:j])
            masked.append(ch + _blank(text[i + 1 : j]))
            last_sig = ch
            word = ""
            i = j
            continue

        if ch == "/":
            regex_ok: bool
            if last_sig == "":
                regex_ok = True
            elif _is_word_char(last_sig) is True:
                regex_ok = word in _REGEX_KEYWORDS
            else:
                regex_ok = last_sig in _REGEX_PRECEDERS
            if regex_ok is True:
                j = _regex_end(text, i)
                if j > 0:
                    code.append(text[i:j])
                    masked.append(ch + _blank(text[i + 1 : j]))
                    last_sig = ")"
                    word = ""
                    i = j
                    continue

        if len(template_depths) > 0:
            if ch == "{":
                template_depths[-1] += 1
            elif ch == "}":
                template_depths[-1] -= 1

        code.append(ch)
        masked.append(ch)
        if _is_word_char(ch) is True:
            if i > 0 and _is_word_char(text[i - 1]) is True:
                word += ch
            else:
                word = ch
        if ch.isspace() is False:
            last_sig = ch
        i += 1

    return "".join(code), "".join(masked)


def _matching_brace(masked: str, open_idx: int) -> int:
    depth: int = 0
    for j in range(open_idx, len(masked)):
        c: str = masked[j]
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return j
    return len(masked)


def scan_references(text: str) -> list[Reference]:
    """Find module references in JavaScript source.

    :param text: Source text.
    :returns: References in source order (duplicates kept).
    """

    code, masked = mask_source(text)

    try_spans: list[tuple[int, int]] = []
    for m in _RE_TRY.finditer(masked):
        open_idx: int = m.end() - 1
        try_spans.append((open_idx, _matching_brace(masked, open_idx)))

    refs: list[Reference] = []
    for pattern in (_RE_REQUIRE, _RE_IMPORT_FROM, _RE_IMPORT_DYNAMIC, _RE_EXPORT_FROM):
        for m in pattern.finditer(code):
            start: int = m.start()
            # Keyword must be real code, not text inside a literal.
            if masked[start] != code[start]:
                continue
            in_try: bool = any(lo < start < hi for lo, hi in try_spans)
            refs.append(Reference(specifier=m.group(2), offset=start, in_try=in_try))

    refs.sort(key=lambda r: r.offset)
    return refs


def is_builtin(specifier: str) -> bool:
    """Return whether a specifier names a Node.js built-in module."""

    if specifier.startswith("node:") is True:
        return True
    return specifier in NODE_BUILTINS


def is_relative(specifier: str) -> bool:
    """Return whether a specifier is a path rather than a package name."""

    if specifier == "." or specifier == "..":
        return True
    return specifier.startswith(("./", "../", "/")) is True


def package_name(specifier: str) -> str:
    """Return the package part of a bare specifier (``@scope/name/x`` -> ``@scope/name``)."""

    parts: list[str] = specifier.split("/")
    if specifier.startswith("@") is True and len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


class DependencyResolver:
    """Compute the files statically reachable from an entry module.

    :param base_dir: Directory results are made relative to.
    :param extensions: Extensions tried for extensionless references.
    :param logger: Optional logger.
    """

    def __init__(
        self,
        base_dir: pathlib.Path,
        *,
        extensions: tuple[str, ...] = EXTENSIONS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_dir: pathlib.Path = base_dir.resolve()
        self._base_given: pathlib.Path = base_dir.absolute()
        self.extensions: tuple[str, ...] = extensions
        self.logger: logging.Logger = logger or logging.getLogger("app_packager")
        self._manifests: dict[pathlib.Path, dict] = {}

    def resolve(self, entry_file: pathlib.Path) -> list[str]:
        """Return the sorted, deduplicated file set reachable from ``entry_file``.

        :param entry_file: Entry module.
        :returns: POSIX paths relative to the base directory.
        :raises ResolutionError: If the entry or a required module is missing.
        """

        if entry_file.is_file() is False:
            raise ResolutionError(f"Entry file not found: {entry_file}")

        seen: set[pathlib.Path] = set()
        stack: list[pathlib.Path] = [entry_file.resolve()]
        while len(stack) > 0:
            current: pathlib.Path = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current.suffix.lower() not in SCANNED_SUFFIXES:
                continue

            with open(current, "rb") as f:
                text: str = f.read().decode("utf-8", errors="replace")

            for ref in scan_references(text):
                try:
                    target: pathlib.Path | None = self.resolve_reference(ref.specifier, from_file=current)
                except ResolutionError:
                    if ref.in_try is True or self._is_optional_dependency(ref.specifier, current) is True:
                        self.logger.warning(
                            f"app-packager: skipping optional reference {ref.specifier!r} "
                            f"from {self.relative(current)}"
                        )
                        continue
                    raise
                if target is not None and target not in seen:
                    stack.append(target)

        paths: list[str] = sorted({self.relative(p) for p in seen})
        if self.logger.isEnabledFor(logging.DEBUG) is True:
            self.logger.debug(f"app-packager: resolved {len(paths)} files from {entry_file}")
        return paths

    def resolve_reference(self, specifier: str, *, from_file: pathlib.Path) -> pathlib.Path | None:
        """Resolve one specifier as Node would.

        :param specifier: Module specifier.
        :param from_file: File containing the reference.
        :returns: Resolved real path, or ``None`` for built-in modules.
        :raises ResolutionError: If the module cannot be located.
        """

        if is_builtin(specifier) is True:
            return None

        found: pathlib.Path | None = None
        if is_relative(specifier) is True:
            candidate: pathlib.Path = pathlib.Path(specifier)
            if candidate.is_absolute() is False:
                candidate = from_file.parent / specifier
            if specifier.endswith("/") is False:
                found = self._load_as_file(candidate)
            if found is None:
                found = self._load_as_directory(candidate)
        else:
            for modules_dir in self._node_modules_dirs(from_file.parent):
                candidate = modules_dir / specifier
                found = self._load_as_file(candidate)
                if found is None:
                    found = self._load_as_directory(candidate)
                if found is not None:
                    break

        if found is None:
            raise ResolutionError(f"Cannot find module {specifier!r} from {from_file}")
        return found.resolve()

    def relative(self, path: pathlib.Path) -> str:
        """Express a path relative to the base directory with forward slashes.

        :param path: Path reported by the traversal.
        :returns: Relative POSIX path.
        :raises ResolutionError: If the path is outside the base directory.
        """

        try:
            return path.relative_to(self.base_dir).as_posix()
        except ValueError:
            pass

        # Traversal may report a differently prefixed spelling of the base
        # (e.g. macOS /private/var vs /var); keep what follows the base.
        text: str = path.as_posix()
        for base in (self.base_dir, self._base_given):
            prefix: str = base.as_posix().rstrip("/") + "/"
            if prefix in text:
                return text.split(prefix)[-1]
        raise ResolutionError(f"Resolved file is outside {self.base_dir}: {path}")

    def _node_modules_dirs(self, start_dir: pathlib.Path) -> list[pathlib.Path]:
        dirs: list[pathlib.Path] = []
        d: pathlib.Path = start_dir
        while True:
            if d.name != "node_modules":
                dirs.append(d / "node_modules")
            if d == self.base_dir or d.parent == d:
                break
            d = d.parent
        return dirs

    def _load_as_file(self, path: pathlib.Path) -> pathlib.Path | None:
        if path.is_file() is True:
            return path
        for ext in self.extensions:
            candidate: pathlib.Path = pathlib.Path(f"{path}{ext}")
            if candidate.is_file() is True:
                return candidate
        return None

    def _load_index(self, path: pathlib.Path) -> pathlib.Path | None:
        for ext in self.extensions:
            candidate: pathlib.Path = path / f"index{ext}"
            if candidate.is_file() is True:
                return candidate
        return None

    def _load_as_directory(self, path: pathlib.Path) -> pathlib.Path | None:
        if path.is_dir() is False:
            return None

        manifest_path: pathlib.Path = path / MANIFEST_FILENAME
        if manifest_path.is_file() is True:
            main: object = self._read_manifest(manifest_path).get("main")
            if isinstance(main, str) and len(main) > 0:
                main_path: pathlib.Path = path / main
                found: pathlib.Path | None = self._load_as_file(main_path)
                if found is None:
                    found = self._load_index(main_path)
                if found is not None:
                    return found

        return self._load_index(path)

    def _read_manifest(self, manifest_path: pathlib.Path) -> dict:
        key: pathlib.Path = manifest_path.resolve()
        cached: dict | None = self._manifests.get(key)
        if cached is not None:
            return cached

        try:
            data: object = json.loads(manifest_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ResolutionError(f"Invalid JSON in {manifest_path}: {e}") from e

        manifest: dict = data if isinstance(data, dict) else {}
        self._manifests[key] = manifest
        return manifest

    def _is_optional_dependency(self, specifier: str, from_file: pathlib.Path) -> bool:
        if is_relative(specifier) is True:
            return False

        d: pathlib.Path = from_file.parent
        while True:
            manifest_path: pathlib.Path = d / MANIFEST_FILENAME
            if manifest_path.is_file() is True:
                optional: object = self._read_manifest(manifest_path).get("optionalDependencies")
                return isinstance(optional, dict) and package_name(specifier) in optional
            if d == self.base_dir or d.parent == d:
                return False
            d = d.parent


def resolve(
    entry_file: pathlib.Path,
    *,
    base_dir: pathlib.Path | None = None,
    extensions: tuple[str, ...] = EXTENSIONS,
    logger: logging.Logger | None = None,
) -> list[str]:
    """Resolve the files reachable from an entry module.

    :param entry_file: Entry module.
    :param base_dir: Directory results are relative to (defaults to the entry's directory).
    :param extensions: Extensions tried for extensionless references.
    :param logger: Optional logger.
    :returns: Sorted POSIX paths relative to ``base_dir``.
    :raises ResolutionError: If the entry or a required module is missing.
    """

    root: pathlib.Path = entry_file.parent if base_dir is None else base_dir
    return DependencyResolver(root, extensions=extensions, logger=logger).resolve(entry_file)
