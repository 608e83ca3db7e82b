"""
Validation gate for oracle output.

Runs, in order of increasing strictness:

1. Syntax gate: bracket balance over a comment- and string-masked view, and
   source-dialect module syntax leaking into the target text.
2. Semantic gate: duplicate top-level declarations and math functions called
   without the import that provides them.
3. Import gate: imports that address project files through a foreign package
   name, or point at project files that do not exist.
4. Contract gate: required members of configured foundational declarations.

The gate only reports. It never changes the text; deterministic fixups live
in ``verifier.normalizers`` and run after the gate has passed.
"""

import logging
import re
from collections import Counter

from portmorph.analyzer.import_mapping import ImportMapper
from portmorph.config.models import ErrorCategory, SourceUnit, ValidationIssue
from portmorph.languages.base.lexing import find_bracket_problem, line_number, word_pattern
from portmorph.languages.base.plugin import LanguagePlugin, to_snake_case

logger = logging.getLogger(__name__)

DECLARED_CALLABLE = re.compile(r"\b(?:def|function)\s+([A-Za-z_$][\w$]*)")
TYPED_DECLARATION = re.compile(
    r"^[ \t]*(?:static\s+)?(?!(?:return|await|new|throw|yield|else|case|print)\b)[\w<>?,\[\]]+\s+([A-Za-z_$][\w$]*)\s*\(",
    re.MULTILINE,
)


def same_family(first: LanguagePlugin, second: LanguagePlugin) -> bool:
    """Whether two dialects share module syntax (e.g. TypeScript and JavaScript)."""
    return isinstance(first, type(second)) or isinstance(second, type(first))


class ValidationGate:
    """
    Accepts or rejects generated target text.

    Usage:
        gate = ValidationGate(source_plugin, target_plugin, mapper, contract_rules)
        issues = gate.validate(text, unit)
        if issues:
            ...  # retry with a degraded prompt
    """

    def __init__(
        self,
        source_plugin: LanguagePlugin,
        target_plugin: LanguagePlugin,
        mapper: ImportMapper,
        contract_rules: dict[str, dict[str, list[str]]] | None = None,
    ):
        self.source_plugin = source_plugin
        self.target_plugin = target_plugin
        self.mapper = mapper
        self.contract_rules = contract_rules or {}

    def validate(
        self,
        text: str,
        unit: SourceUnit,
        chunked: bool = False,
        source_text: str | None = None,
        suppress_imports: bool = False,
    ) -> list[ValidationIssue]:
        """
        Validate target text for one unit (or one chunk of it).

        Args:
            text: Generated target text
            unit: Source unit the text was generated from
            chunked: True for a chunk sub-pass
            source_text: Source slice a chunk was generated from
            suppress_imports: True when the text was generated without imports

        Returns:
            Issues found; empty when the text is accepted
        """
        masked = self.target_plugin.mask(text)
        issues = self.check_syntax(text, masked, chunked, source_text)
        issues.extend(self.check_semantics(text, masked))
        if not suppress_imports:
            issues.extend(self.check_imports(text, unit))
        if not chunked:
            issues.extend(self.check_contract(text, unit))
        if issues:
            logger.debug(f"Gate rejected output for {unit.path}: {len(issues)} issues")
        return issues

    # =========================================================================
    # Syntax gate
    # =========================================================================

    def check_syntax(
        self, text: str, masked: str, chunked: bool = False, source_text: str | None = None
    ) -> list[ValidationIssue]:
        issues = []

        # A chunk cut through a declaration cannot balance; only hold it to
        # balance when its source slice was balanced
        check_brackets = True
        if chunked and source_text is not None:
            check_brackets = find_bracket_problem(self.source_plugin.mask(source_text)) is None

        if check_brackets:
            problem = find_bracket_problem(masked)
            if problem:
                issues.append(
                    ValidationIssue(
                        category=ErrorCategory.SYNTAX,
                        gate="syntax",
                        message=f"Unbalanced brackets: {problem.message}",
                        line=problem.line,
                    )
                )

        if not same_family(self.source_plugin, self.target_plugin):
            for pattern, description in self.source_plugin.leakage_patterns():
                match = pattern.search(masked)
                if match:
                    issues.append(
                        ValidationIssue(
                            category=ErrorCategory.SYNTAX,
                            gate="syntax",
                            message=f"{self.source_plugin.language_name} syntax leaked into output: {description}",
                            line=line_number(masked, match.start()),
                        )
                    )
        return issues

    # =========================================================================
    # Semantic gate
    # =========================================================================

    def check_semantics(self, text: str, masked: str) -> list[ValidationIssue]:
        issues = []
        declarations = self.target_plugin.top_level_declarations(text)
        counts = Counter(name for name, _ in declarations)
        reported = set()
        for name, line in declarations:
            if counts[name] > 1 and name not in reported:
                reported.add(name)
                issues.append(
                    ValidationIssue(
                        category=ErrorCategory.SYNTAX,
                        gate="semantic",
                        message=f"Duplicate top-level declaration '{name}' ({counts[name]} definitions)",
                        line=line,
                    )
                )

        issues.extend(self.check_math_imports(text, masked, {name for name, _ in declarations}))
        return issues

    def check_math_imports(self, text: str, masked: str, declared: set[str]) -> list[ValidationIssue]:
        functions = self.target_plugin.math_functions
        if not functions or self.target_plugin.imports_math_unqualified(text):
            return []

        declared = declared | set(DECLARED_CALLABLE.findall(masked)) | set(TYPED_DECLARATION.findall(masked))
        import_lines = [m.group(0) for m in self.target_plugin.import_line_pattern.finditer(text)]

        issues = []
        for name in functions:
            if name in declared or any(word_pattern(name).search(line) for line in import_lines):
                continue
            match = re.search(rf"(?<![\w.$]){re.escape(name)}\s*\(", masked)
            if match:
                issues.append(
                    ValidationIssue(
                        category=ErrorCategory.IMPORT,
                        gate="semantic",
                        message=f"Call to {name}() without the math import ({self.target_plugin.math_qualified_import})",
                        line=line_number(masked, match.start()),
                    )
                )
        return issues

    # =========================================================================
    # Import gate
    # =========================================================================

    def check_imports(self, text: str, unit: SourceUnit) -> list[ValidationIssue]:
        current = self.mapper.target_path(unit)
        known = self.mapper.index.target_paths
        issues = []
        for reference in self.target_plugin.parse_imports(text, current, self.mapper.package_name):
            exists = any(candidate in known for candidate in reference.candidates)
            if reference.foreign and exists:
                issues.append(
                    ValidationIssue(
                        category=ErrorCategory.IMPORT,
                        gate="import",
                        message=f"Invalid package import: {reference.statement}",
                        line=line_number(text, reference.start),
                    )
                )
            elif reference.is_internal and not reference.foreign and not exists:
                issues.append(
                    ValidationIssue(
                        category=ErrorCategory.IMPORT,
                        gate="import",
                        message=f"Import of nonexistent project file: {reference.statement}",
                        line=line_number(text, reference.start),
                    )
                )
        return issues

    # =========================================================================
    # Contract gate
    # =========================================================================

    def check_contract(self, text: str, unit: SourceUnit) -> list[ValidationIssue]:
        rules = self.contract_rules.get(unit.path)
        if not rules:
            return []

        issues = []
        for declaration, members in rules.items():
            body = self.target_plugin.declaration_body(text, declaration)
            if body is None:
                issues.append(
                    ValidationIssue(
                        category=ErrorCategory.CONTRACT,
                        gate="contract",
                        message=f"Required declaration '{declaration}' is missing",
                    )
                )
                continue
            masked_body = self.target_plugin.mask(body)
            for member in members:
                variants = {member, to_snake_case(member)}
                if not any(word_pattern(name).search(masked_body) for name in variants):
                    issues.append(
                        ValidationIssue(
                            category=ErrorCategory.CONTRACT,
                            gate="contract",
                            message=f"'{declaration}' is missing required member '{member}'",
                        )
                    )
        return issues
