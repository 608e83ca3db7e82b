"""
Unit tests for post-gate normalization.
"""

import pytest

from portmorph.analyzer.import_mapping import ImportMapper
from portmorph.analyzer.symbol_index import build_index
from portmorph.config.models import LanguageType, SourceUnit
from portmorph.languages.dart.plugin import DartPlugin
from portmorph.languages.typescript.plugin import TypeScriptPlugin
from portmorph.verifier.normalizers import Normalizer

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
def normalizer(units):
    index = build_index(units.values(), lambda path: DART.convert_path(path, LanguageType.TYPESCRIPT))
    return Normalizer(DART, ImportMapper(index, TS, DART, "demo"))


def test_missing_required_import_inserted(normalizer, units):
    text = "String greet(User user) {\n  return user.name;\n}"
    result = normalizer.apply(text, units["src/service.ts"])

    assert result == "import 'types.dart';\n\nString greet(User user) {\n  return user.name;\n}\n"


def test_apply_is_idempotent(normalizer, units):
    samples = [
        ("src/service.ts", "String greet(User user) {\n  return user.name;\n}"),
        ("src/types.ts", "class Config {\n  final int port;\n  const Config({this.port});\n}\n"),
        ("src/types.ts", "double f(double x) => math.sqrt(x);\n"),
        ("src/types.ts", "import 'service.dart';\nclass User {}\n"),
    ]
    for path, text in samples:
        once = normalizer.apply(text, units[path])
        assert normalizer.apply(once, units[path]) == once


def test_self_import_removed(normalizer, units):
    result = normalizer.apply("import 'service.dart';\n\nString greet(User u) => u.name;\n", units["src/service.ts"])

    assert "service.dart" not in result
    assert result.startswith("import 'types.dart';")


def test_existing_import_not_duplicated(normalizer, units):
    text = "import 'types.dart';\n\nString greet(User user) => user.name;\n"
    assert normalizer.apply(text, units["src/service.ts"]) == text


def test_unused_project_import_pruned(normalizer, units):
    result = normalizer.apply("import 'service.dart';\nclass User {}\n", units["src/types.ts"])
    assert result == "class User {}\n"


def test_import_of_missing_file_pruned(normalizer, units):
    result = normalizer.apply("import 'nowhere.dart';\nimport 'dart:async';\nclass User {}\n", units["src/types.ts"])
    assert result == "import 'dart:async';\nclass User {}\n"


def test_math_import_added_for_qualified_calls(normalizer, units):
    result = normalizer.apply("double f(double x) => math.sqrt(x);\n", units["src/types.ts"])
    assert result == "import 'dart:math' as math;\n\ndouble f(double x) => math.sqrt(x);\n"


def test_import_inserted_after_existing_header(normalizer, units):
    text = "import 'dart:async';\n\nString greet(User user) => user.name;\n"
    result = normalizer.apply(text, units["src/service.ts"])
    assert result == "import 'dart:async';\nimport 'types.dart';\n\nString greet(User user) => user.name;\n"


def test_dart_conventions_applied(normalizer, units):
    text = "class Config {\n  final int port;\n  const Config({this.port});\n}\n"
    result = normalizer.apply(text, units["src/types.ts"])
    assert "const Config({required this.port});" in result


def test_import_metadata(normalizer, units):
    """Metadata compares required against actual imports."""
    unit = units["src/service.ts"]

    missing = normalizer.import_metadata("String greet(User u) => u.name;\n", unit)
    assert missing.import_issues == ["Missing import: import 'types.dart';"]
    assert missing.required_imports == ["import 'types.dart';"]
    assert missing.actual_imports == []

    foreign = normalizer.import_metadata("import 'package:other/types.dart';\n", unit)
    assert "Invalid package import: import 'package:other/types.dart';" in foreign.import_issues

    clean = normalizer.import_metadata("import 'types.dart';\n", unit)
    assert clean.import_issues == []
    assert clean.actual_imports == ["import 'types.dart';"]
