"""
Unit tests for the validation gate.
"""

import pytest

from portmorph.analyzer.import_mapping import ImportMapper
from portmorph.analyzer.symbol_index import build_index
from portmorph.config.models import ErrorCategory, LanguageType, SourceUnit
from portmorph.languages.dart.plugin import DartPlugin
from portmorph.languages.typescript.plugin import JavaScriptPlugin, TypeScriptPlugin
from portmorph.verifier.gate import ValidationGate, same_family

TS = TypeScriptPlugin()
DART = DartPlugin()


@pytest.fixture
def units():
    contents = {
        "src/types.ts": "export interface User {\n  name: string;\n}\n",
        "src/service.ts": "import { User } from './types';\nexport function greet(u: User) { return u.name; }\n",
    }
    return {
        path: SourceUnit(path=path, content=content, exports=TS.extract_exports(content))
        for path, content in contents.items()
    }


@pytest.fixture
def mapper(units):
    index = build_index(units.values(), lambda path: DART.convert_path(path, LanguageType.TYPESCRIPT))
    return ImportMapper(index, TS, DART, "demo")


@pytest.fixture
def gate(mapper):
    return ValidationGate(TS, DART, mapper)


def messages(issues) -> str:
    return "\n".join(str(issue) for issue in issues)


def test_accepts_clean_output(gate, units):
    text = "import 'types.dart';\n\nString greet(User user) {\n  return 'Hello ' + user.name;\n}\n"
    assert gate.validate(text, units["src/service.ts"]) == []


def test_braces_in_strings_and_comments_ignored(gate, units):
    text = "String brace() {\n  // }\n  return '{' + \"(\";\n}\n"
    assert gate.validate(text, units["src/service.ts"]) == []


def test_unbalanced_output_rejected(gate, units):
    issues = gate.validate("class User {\n  final String name;\n", units["src/types.ts"])

    assert len(issues) == 1
    assert issues[0].category == ErrorCategory.SYNTAX
    assert issues[0].gate == "syntax"
    assert "Unbalanced brackets" in issues[0].message


def test_source_module_syntax_leak_rejected(gate, units):
    issues = gate.validate("import { User } from './types';\nclass A {}\n", units["src/service.ts"])
    assert "ES module import syntax" in messages(issues)

    issues = gate.validate("export class A {}\n", units["src/service.ts"])
    assert "export modifier on a declaration" in messages(issues)
    assert all(issue.category == ErrorCategory.SYNTAX for issue in issues)


def test_no_leak_check_within_one_family(mapper):
    gate = ValidationGate(TS, JavaScriptPlugin(), mapper)
    assert same_family(TS, JavaScriptPlugin())
    assert not same_family(TS, DART)
    assert gate.check_syntax("export class A {}\n", "export class A {}\n") == []


def test_duplicate_declarations_rejected(gate, units):
    issues = gate.validate("class A {}\nclass A {}\n", units["src/types.ts"])

    assert len(issues) == 1
    assert issues[0].gate == "semantic"
    assert "Duplicate top-level declaration 'A'" in issues[0].message


def test_math_call_without_import(gate, units):
    text = "double hyp(double a) {\n  return sqrt(a);\n}\n"
    issues = gate.validate(text, units["src/types.ts"])

    assert len(issues) == 1
    assert issues[0].category == ErrorCategory.IMPORT
    assert "sqrt()" in issues[0].message
    assert issues[0].line == 2


def test_math_call_with_import(gate, units):
    unit = units["src/types.ts"]
    assert gate.validate("import 'dart:math';\n\ndouble hyp(double a) => sqrt(a);\n", unit) == []
    assert gate.validate("import 'dart:math' as math;\n\ndouble hyp(double a) => math.sqrt(a);\n", unit) == []


def test_locally_declared_math_name_allowed(gate, units):
    text = "double sqrt(double x) {\n  return x;\n}\n\ndouble twice(double x) => sqrt(x) * 2;\n"
    assert gate.validate(text, units["src/types.ts"]) == []


def test_foreign_package_import_rejected(gate, units):
    issues = gate.validate("import 'package:other/types.dart';\n\nclass A {}\n", units["src/service.ts"])

    assert len(issues) == 1
    assert issues[0].category == ErrorCategory.IMPORT
    assert "Invalid package import" in issues[0].message


def test_import_of_missing_project_file_rejected(gate, units):
    issues = gate.validate("import 'missing.dart';\n\nclass A {}\n", units["src/service.ts"])
    assert "nonexistent project file" in messages(issues)


def test_suppressed_imports_skip_import_gate(gate, units):
    text = "import 'missing.dart';\n\nclass A {}\n"
    assert gate.validate(text, units["src/service.ts"], suppress_imports=True) == []


def test_contract_members(mapper, units):
    """Configured foundational declarations must keep their members."""
    gate = ValidationGate(TS, DART, mapper, {"src/types.ts": {"Config": ["port", "hostName"]}})
    unit = units["src/types.ts"]

    issues = gate.validate("class Config {\n  final int port;\n}\n", unit)
    assert [i.category for i in issues] == [ErrorCategory.CONTRACT]
    assert "missing required member 'hostName'" in issues[0].message

    text = "class Config {\n  final int port;\n  final String host_name;\n}\n"
    assert gate.validate(text, unit) == []

    issues = gate.validate("class Other {}\n", unit)
    assert "Required declaration 'Config' is missing" in messages(issues)


def test_contract_skipped_for_chunks(mapper, units):
    gate = ValidationGate(TS, DART, mapper, {"src/types.ts": {"Config": ["port"]}})
    assert gate.validate("class Other {}\n", units["src/types.ts"], chunked=True) == []


def test_chunk_cut_through_declaration_skips_balance(gate, units):
    """A chunk whose source slice is unbalanced is not held to bracket balance."""
    unit = units["src/types.ts"]
    output = "class A {\n  int x = 1;\n"

    assert gate.validate(output, unit, chunked=True, source_text="export class A {\n  x = 1;\n") == []
    issues = gate.validate(output, unit, chunked=True, source_text="export class A {\n  x = 1;\n}\n")
    assert "Unbalanced brackets" in messages(issues)
