"""Shallow, pattern-based dependency expansion.

Given a seed file, propose a small set of strongly related files:

  1. local imports/includes, resolved against the seed's directory
  2. the test counterpart (or the implementation, if the seed is a test)
  3. the style counterpart of UI components
  4. the package entry file of the seed's directory

This is a textual heuristic, not a parser. It can miss real dependencies and
propose false ones; callers treat the output as candidates only. Every
proposal refers to a file the index knows about. Within each rule the first
existing match wins.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Container, Iterable
from pathlib import Path

import networkx as nx

from ctxengine.index.metadata import is_test_file
from ctxengine.index.models import Language, detect_language

logger = logging.getLogger("ctxengine.expander")

# Relation kinds, in rule order
IMPORT = "import"
TEST = "test"
IMPLEMENTATION = "implementation"
STYLE = "style"
PACKAGE = "package"

_PY_FROM_RE = re.compile(r"^\s*from\s+(\.*)([\w.]*)\s+import\s+\(?\s*([\w \t,*]+)", re.MULTILINE)
_PY_IMPORT_RE = re.compile(r"^\s*import\s+([\w.]+)", re.MULTILINE)
_JS_IMPORT_RES = (
    re.compile(r"""^\s*(?:import|export)\b[^'"`]*?\bfrom\s*['"](\.{1,2}/[^'"]+)['"]""", re.MULTILINE),
    re.compile(r"""^\s*import\s*['"](\.{1,2}/[^'"]+)['"]""", re.MULTILINE),
    re.compile(r"""\b(?:require|import)\s*\(\s*['"](\.{1,2}/[^'"]+)['"]\s*\)"""),
)
_RUST_MOD_RE = re.compile(r"^\s*(?:pub(?:\([^)]*\))?\s+)?mod\s+(\w+)\s*;", re.MULTILINE)
_C_INCLUDE_RE = re.compile(r'^\s*#\s*include\s+"([^"]+)"', re.MULTILINE)
_CSS_IMPORT_RE = re.compile(r"""^\s*@(?:import|use)\s+['"]([^'"]+)['"]""", re.MULTILINE)

_JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".json")
_JS_LANGS = (Language.JAVASCRIPT, Language.TYPESCRIPT)
_UI_EXTENSIONS = (".jsx", ".tsx", ".vue", ".svelte")
_STYLE_SUFFIXES = (".css", ".scss", ".less", ".module.css", ".module.scss")
_TEST_INFIX_RE = re.compile(r"\.(test|spec)(\.[^./]+)$")


class DependencyExpander:
    """Propose related files for a seed file.

    Args:
        root: Project root, used to read seed contents.
        known: Container of repository-relative paths that exist (typically
            the artifact index). Proposals outside it are discarded.
    """

    def __init__(self, root: str | Path, known: Container[str]) -> None:
        self.root = Path(root)
        self.known = known

    def expand(self, seed: str) -> list[str]:
        """Related paths for a seed, in rule order, without duplicates."""
        return [path for path, _ in self.relations(seed)]

    def relations(self, seed: str) -> list[tuple[str, str]]:
        """(path, kind) pairs proposed for a seed."""
        language = detect_language(seed)
        found: list[tuple[str, str]] = []
        seen = {seed}

        def add(paths: Iterable[str], kind: str) -> None:
            for p in paths:
                if p not in seen:
                    seen.add(p)
                    found.append((p, kind))

        text = self._read(seed)
        if text is not None:
            add(self._imports(seed, language, text), IMPORT)

        if is_test_file(seed, text or ""):
            add(self._first(self._implementation_candidates(seed)), IMPLEMENTATION)
        else:
            add(self._first(self._test_candidates(seed, language)), TEST)

        if seed.endswith(_UI_EXTENSIONS):
            stem = seed.rsplit(".", 1)[0]
            add(self._first(stem + s for s in _STYLE_SUFFIXES), STYLE)

        add(self._first(self._package_candidates(seed, language)), PACKAGE)
        return found

    def dependency_graph(self, seeds: Iterable[str]) -> nx.DiGraph:
        """Directed graph of seed -> proposed file, edges tagged with ``kind``."""
        graph = nx.DiGraph()
        for seed in seeds:
            graph.add_node(seed)
            for path, kind in self.relations(seed):
                graph.add_edge(seed, path, kind=kind)
        return graph

    # -------------------------------------------------------------------
    # Rule 1: imports
    # -------------------------------------------------------------------

    def _imports(self, seed: str, language: Language, text: str) -> list[str]:
        directory = posixpath.dirname(seed)
        resolved: list[str] = []

        def resolve(options: Iterable[str]) -> None:
            hit = self._first(options)
            if hit:
                resolved.extend(hit)

        if language == Language.PYTHON:
            for dots, module, names in _PY_FROM_RE.findall(text):
                if dots:
                    base = _up(directory, len(dots) - 1)
                    if base is None:
                        continue
                    if module:
                        resolve(_py_module(base, module))
                    else:
                        for name in _py_names(names):
                            resolve(_py_module(base, name))
                else:
                    resolve([*_py_module(directory, module), *_py_module("", module)])
            for module in _PY_IMPORT_RE.findall(text):
                resolve([*_py_module(directory, module), *_py_module("", module)])

        elif language in _JS_LANGS:
            for regex in _JS_IMPORT_RES:
                for spec in regex.findall(text):
                    target = _join(directory, spec)
                    if target is None:
                        continue
                    resolve(
                        [target]
                        + [target + ext for ext in _JS_EXTENSIONS]
                        + [f"{target}/index{ext}" for ext in _JS_EXTENSIONS]
                    )

        elif language == Language.RUST:
            stem = posixpath.splitext(posixpath.basename(seed))[0]
            mod_dir = directory if stem in ("main", "lib", "mod") else _join(directory, stem)
            for name in _RUST_MOD_RE.findall(text):
                options = [_join(directory, f"{name}.rs"), _join(directory, f"{name}/mod.rs")]
                if mod_dir and mod_dir != directory:
                    options = [_join(mod_dir, f"{name}.rs"), _join(mod_dir, f"{name}/mod.rs")] + options
                resolve(p for p in options if p)

        elif language in (Language.C, Language.CPP):
            for name in _C_INCLUDE_RE.findall(text):
                target = _join(directory, name)
                if target:
                    resolve([target])

        elif language == Language.CSS:
            for spec in _CSS_IMPORT_RE.findall(text):
                target = _join(directory, spec)
                if target:
                    head, tail = posixpath.split(target)
                    resolve([
                        target,
                        f"{target}.css",
                        f"{target}.scss",
                        posixpath.join(head, f"_{tail}.scss"),
                    ])

        return resolved

    # -------------------------------------------------------------------
    # Rules 2-4: naming conventions
    # -------------------------------------------------------------------

    def _test_candidates(self, seed: str, language: Language) -> list[str]:
        directory, name = posixpath.split(seed)
        stem, ext = posixpath.splitext(name)

        def here(n: str) -> str:
            return posixpath.join(directory, n)

        if language == Language.PYTHON:
            options = [here(f"test_{stem}.py"), here(f"{stem}_test.py")]
            options += [
                posixpath.join(d, f"test_{stem}.py")
                for d in (here("tests"), "tests", "test")
            ]
            return options
        if language == Language.GO:
            return [here(f"{stem}_test.go")]
        if language in (Language.JAVA, Language.KOTLIN):
            options = [here(f"{stem}Test{ext}"), here(f"{stem}Tests{ext}")]
            if "src/main/" in directory:
                test_dir = directory.replace("src/main/", "src/test/", 1)
                options += [posixpath.join(test_dir, f"{stem}Test{ext}")]
            return options
        return [
            here(f"{stem}.test{ext}"),
            here(f"{stem}.spec{ext}"),
            here(f"__tests__/{name}"),
            here(f"__tests__/{stem}.test{ext}"),
        ]

    def _implementation_candidates(self, seed: str) -> list[str]:
        directory, name = posixpath.split(seed)
        options: list[str] = []

        m = _TEST_INFIX_RE.search(name)
        if m:
            impl_name = name[: m.start()] + m.group(2)
            options.append(posixpath.join(directory, impl_name))
            if posixpath.basename(directory) == "__tests__":
                options.append(posixpath.join(posixpath.dirname(directory), impl_name))
        elif posixpath.basename(directory) == "__tests__":
            options.append(posixpath.join(posixpath.dirname(directory), name))

        stem, ext = posixpath.splitext(name)
        impl_stem = None
        if stem.startswith("test_"):
            impl_stem = stem[len("test_"):]
        elif stem.endswith("_test"):
            impl_stem = stem[: -len("_test")]
        elif stem.endswith(("Test", "Tests")):
            impl_stem = stem[: -len("Tests")] if stem.endswith("Tests") else stem[: -len("Test")]

        if impl_stem:
            impl_name = impl_stem + ext
            options.append(posixpath.join(directory, impl_name))
            parent = posixpath.dirname(directory)
            if posixpath.basename(directory) in ("tests", "test"):
                options.append(posixpath.join(parent, impl_name))
                options.append(posixpath.join(parent, "src", impl_name))
            if "src/test/" in directory:
                options.append(
                    posixpath.join(directory.replace("src/test/", "src/main/", 1), impl_name)
                )
        return options

    def _package_candidates(self, seed: str, language: Language) -> list[str]:
        directory, name = posixpath.split(seed)
        if language == Language.PYTHON and name != "__init__.py":
            return [posixpath.join(directory, "__init__.py")]
        if language in _JS_LANGS and not name.startswith("index."):
            return [posixpath.join(directory, f"index{ext}") for ext in (".ts", ".tsx", ".js", ".jsx")]
        if language == Language.RUST and name not in ("mod.rs", "lib.rs", "main.rs"):
            return [posixpath.join(directory, "mod.rs")]
        return []

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _first(self, options: Iterable[str]) -> list[str]:
        for option in options:
            if option and option in self.known:
                return [option]
        return []

    def _read(self, seed: str) -> str | None:
        try:
            return (self.root / seed).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Cannot read %s for expansion: %s", seed, e)
            return None


def _join(directory: str, relative: str) -> str | None:
    """Normalize a path relative to a directory, or None if it leaves the root."""
    joined = posixpath.normpath(posixpath.join(directory, relative))
    if joined.startswith("../") or joined in ("..", ".") or joined.startswith("/"):
        return None
    return joined


def _up(directory: str, levels: int) -> str | None:
    for _ in range(levels):
        if not directory:
            return None
        directory = posixpath.dirname(directory)
    return directory


def _py_module(base: str, module: str) -> list[str]:
    if not module:
        return []
    rel = module.replace(".", "/")
    return [posixpath.join(base, f"{rel}.py"), posixpath.join(base, rel, "__init__.py")]


def _py_names(names: str) -> list[str]:
    result = []
    for part in names.split(","):
        words = part.split()
        if words and words[0] != "*":
            result.append(words[0])
    return result
