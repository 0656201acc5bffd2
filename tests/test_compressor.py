"""Tests for the adaptive compressor."""

from ctxengine.context.compressor import AdaptiveCompressor
from ctxengine.index.models import FileRecord, Language, UnitEstimator


def _body(prefix: str, count: int, indent: str = "    ") -> str:
    return "\n".join(f"{indent}{prefix}{i} = {i}" for i in range(count))


class TestPython:
    def test_long_function_keeps_signature_and_one_placeholder(self):
        source = "def compute(a, b):\n" + _body("x", 20) + "\n"
        out = AdaptiveCompressor().compress(source, Language.PYTHON)
        lines = out.splitlines()
        assert lines[0] == "def compute(a, b):"
        assert sum(1 for line in lines if line.strip() == "...") == 1
        assert UnitEstimator.estimate(out) < UnitEstimator.estimate(source)
        assert "x7 = 7" not in out

    def test_keeps_imports_classes_and_docstrings(self):
        source = '''"""Module doc."""

import os
from typing import List


class Greeter:
    """Says hello."""

    greeting = "hi"

    def greet(self, name: str) -> str:
        """Greet someone."""
        message = f"{self.greeting} {name}"
        return message.upper()

    async def wait(self):
        await something()
        return 1


def helper(x):
    return x * 2
'''
        out = AdaptiveCompressor().compress(source, "python")
        assert '"""Module doc."""' in out
        assert "import os" in out
        assert "from typing import List" in out
        assert "class Greeter:" in out
        assert 'greeting = "hi"' in out
        assert "    def greet(self, name: str) -> str:" in out
        assert '        """Greet someone."""' in out
        assert "    async def wait(self):" in out
        assert "def helper(x):" in out
        assert "message.upper()" not in out
        assert "await something()" not in out
        assert "return x * 2" not in out
        assert out.count("...") == 3

    def test_multiline_docstring_is_kept(self):
        source = '''def f():
    """First line.

    More detail.
    """
    return 1
'''
        out = AdaptiveCompressor().compress(source, Language.PYTHON)
        assert "    More detail." in out
        assert "return 1" not in out

    def test_docstring_only_body_has_no_placeholder(self):
        source = 'def f():\n    """Only a docstring."""\n'
        assert AdaptiveCompressor().compress(source, Language.PYTHON) == source

    def test_one_line_function_unchanged(self):
        source = "def f(x): return x + 1\n"
        assert AdaptiveCompressor().compress(source, Language.PYTHON) == source

    def test_multiline_signature(self):
        source = "def f(\n    a,\n    b,\n):\n" + _body("y", 5) + "\n"
        out = AdaptiveCompressor().compress(source, Language.PYTHON)
        assert out.splitlines()[:4] == ["def f(", "    a,", "    b,", "):"]
        assert "y3 = 3" not in out


class TestBraceLanguages:
    def test_long_js_function(self):
        source = "function compute(a, b) {\n" + _body("let x", 20, "  ") + "\n}\n"
        out = AdaptiveCompressor().compress(source, Language.JAVASCRIPT)
        assert out == "function compute(a, b) {\n    // ...\n}\n"

    def test_typescript_module(self):
        source = """import { a } from './a';
export interface User {
  name: string;
}

export function login(user) {
  if (user) {
    return a(user);
  }
  return null;
}

export const add = (x, y) => x + y;

export class Session {
  constructor(id) {
    this.id = id;
  }

  refresh() {
    return fetch('/refresh').then(r => { return r.json(); });
  }
}
"""
        out = AdaptiveCompressor().compress(source, Language.TYPESCRIPT)
        assert "import { a } from './a';" in out
        assert "export interface User {\n  name: string;\n}" in out
        assert "export function login(user) {\n    // ...\n}" in out
        assert "export const add = (x, y) => x + y;" in out
        assert "  constructor(id) {\n      // ...\n  }" in out
        assert "  refresh() {\n      // ...\n  }" in out
        assert "this.id = id" not in out
        assert out.count("// ...") == 3

    def test_go_braces_in_strings(self):
        source = """package core

import "fmt"

type Server struct {
\tName string
}

func (s *Server) Start() error {
\tfmt.Println("start {")
\treturn nil
}
"""
        out = AdaptiveCompressor().compress(source, Language.GO)
        assert "type Server struct {\n\tName string\n}" in out
        assert out.endswith("func (s *Server) Start() error {\n    // ...\n}\n")

    def test_rust_impl_methods(self):
        source = """use std::io;

impl Config {
    pub fn new(name: &str) -> Self {
        Config { name: name.to_string() }
    }
}
"""
        out = AdaptiveCompressor().compress(source, Language.RUST)
        assert "use std::io;" in out
        assert "    pub fn new(name: &str) -> Self {\n        // ...\n    }" in out
        assert "to_string" not in out

    def test_java_methods(self):
        source = """package com.example;

public class UserService {
    private final List<String> users;

    public UserService(List<String> users) {
        this.users = users;
    }

    public int count() {
        return users.size();
    }
}
"""
        out = AdaptiveCompressor().compress(source, Language.JAVA)
        assert "public class UserService {" in out
        assert "    private final List<String> users;" in out
        assert "    public int count() {\n        // ...\n    }" in out
        assert "users.size()" not in out


class TestPassThrough:
    def test_unsupported_language(self):
        source = "# Title\n\nSome text {\n"
        assert AdaptiveCompressor().compress(source, Language.MARKDOWN) == source
        assert AdaptiveCompressor().compress(source, "not-a-language") == source

    def test_compress_file_by_extension(self):
        css = ".a {\n  color: red;\n}\n"
        assert AdaptiveCompressor().compress_file(css, "styles/site.css") == css

    def test_supports(self):
        c = AdaptiveCompressor()
        assert c.supports(Language.PYTHON)
        assert c.supports("typescript")
        assert not c.supports(Language.CSS)


class TestEstimates:
    def test_ratio_by_extension(self):
        c = AdaptiveCompressor()
        assert c.estimate_ratio("a.py") == 0.35
        assert c.estimate_ratio("src/App.TSX") == 0.45
        assert c.estimate_ratio("README.md") == 1.0
        assert c.estimate_ratio("site.css") == 1.0

    def test_estimate_units(self):
        record = FileRecord(path="a.ts", fingerprint="f", size=4000, units=1000, modified=0.0)
        assert AdaptiveCompressor().estimate_units(record) == 450
