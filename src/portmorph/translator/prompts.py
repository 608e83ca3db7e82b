"""
Prompt construction for the porting oracle.

Three detail levels are supported. ``full`` carries every rule and the
project import context, ``reduced`` keeps the context but drops the long
dialect rules, and ``minimal`` is a few lines plus the context. Retries
step down through the levels when the oracle keeps failing.
"""

from dataclasses import dataclass

from portmorph.analyzer.import_mapping import ImportMapper
from portmorph.config.models import PromptMode, SourceUnit, SymbolKind
from portmorph.languages.base.lexing import word_pattern
from portmorph.languages.base.plugin import LanguagePlugin

CHECKLIST_GROUPS = [
    (SymbolKind.ENUM, "Enums"),
    (SymbolKind.INTERFACE, "Interfaces"),
    (SymbolKind.TYPE, "Types"),
    (SymbolKind.CLASS, "Classes"),
    (SymbolKind.FUNCTION, "Functions"),
    (SymbolKind.CONSTANT, "Constants"),
    (SymbolKind.VARIABLE, "Variables"),
]

CORRECTION_HEADER = "## Import Correction (CRITICAL)\nYou MUST include the exact import statements below:"


@dataclass
class ChunkRequest:
    """A slice of a source file ported on its own."""

    index: int  # Zero based
    total: int
    content: str

    @property
    def suppress_imports(self) -> bool:
        return self.index > 0


def build_understanding_prompt(source_path: str, source_language: str, target_language: str) -> str:
    """Prompt asking the oracle to characterise a porting task as JSON."""
    return f"""You are an expert code porting agent. Analyze this porting task:

SOURCE: {source_path}
FROM: {source_language}
TO: {target_language}

Think step-by-step about:
1. What type of project is this likely to be? (library, application, framework, utility, etc.)
2. What are the key challenges in porting from {source_language} to {target_language}?
3. What language features will need special attention?
4. What are the main risks and potential issues?
5. What's the best strategy for this port?
6. What's the complexity level? (low, medium, high)

Provide your analysis in JSON format:
{{
  "project_type": "library|application|framework|utility|other",
  "challenges": ["challenge1", "challenge2"],
  "critical_features": ["feature1", "feature2"],
  "risks": ["risk1", "risk2"],
  "recommended_strategy": "description of recommended approach",
  "complexity": "low|medium|high"
}}

Respond with ONLY the JSON object."""


class PromptBuilder:
    """
    Builds porting prompts for one project.

    Usage:
        builder = PromptBuilder(source_plugin, target_plugin, mapper)
        prompt = builder.build(unit, PromptMode.FULL)
        chunk_prompt = builder.build(unit, PromptMode.MINIMAL, chunk=ChunkRequest(1, 3, text))
    """

    def __init__(
        self,
        source_plugin: LanguagePlugin,
        target_plugin: LanguagePlugin,
        mapper: ImportMapper,
    ):
        self.source_plugin = source_plugin
        self.target_plugin = target_plugin
        self.mapper = mapper
        self.source_name = source_plugin.language_name
        self.target_name = target_plugin.language_name

    def build(
        self,
        unit: SourceUnit,
        mode: PromptMode,
        chunk: ChunkRequest | None = None,
        correction: list[str] | None = None,
        issues: list[str] | None = None,
    ) -> str:
        """
        Build the prompt for a unit or one of its chunks.

        Args:
            unit: Source unit being ported
            mode: Prompt detail level
            chunk: Chunk to port instead of the whole file
            correction: Exact import lines the previous attempt failed to include
            issues: Problems found in the previous attempt

        Returns:
            Prompt text
        """
        content = chunk.content if chunk else unit.content
        suppress_imports = chunk.suppress_imports if chunk else False
        import_context = "" if suppress_imports else self.import_context(unit)
        checklist = self.symbol_checklist(unit, content)
        feedback = self._feedback(correction, issues)

        if mode == PromptMode.MINIMAL:
            return self._minimal(unit, content, chunk, checklist, import_context, feedback)
        if mode == PromptMode.REDUCED:
            return self._reduced(unit, content, chunk, checklist, import_context, feedback)
        return self._full(unit, content, chunk, checklist, import_context, feedback)

    # =========================================================================
    # Sections
    # =========================================================================

    def symbol_checklist(self, unit: SourceUnit, content: str) -> str:
        """Exports declared in ``content`` that the output must define, grouped by kind."""
        present = [s for s in unit.exports if word_pattern(s.name).search(content)]
        if not present:
            return ""

        lines = [
            "### Symbols defined in THIS file (MUST be included in the output - DO NOT import these):",
            f"**MANDATORY exports to include: {', '.join(s.flattened_name for s in present)}**",
            "",
            "**MANDATORY CHECKLIST - Your output MUST include ALL of these**:",
        ]
        for kind, label in CHECKLIST_GROUPS:
            names = [s.flattened_name for s in present if s.kind == kind]
            if names:
                lines.append(f"- {label}: {', '.join(names)}")
        return "\n".join(lines)

    def import_context(self, unit: SourceUnit) -> str:
        """Import mapping, nested types, ambiguous names and symbol locations for ``unit``."""
        index = self.mapper.index
        current = self.mapper.target_path(unit)
        lines = [
            "## Import Path Mapping (CRITICAL)",
            f"Package name: `{self.mapper.package_name}`",
            f"Current file: `{current}`",
            "",
            "### Import Rules:",
            "1. NEVER import the current file itself",
            "2. NEVER invent package names or file names - only use paths listed below",
            "3. Keep every definition of the source file in this target file",
            "",
        ]

        required = self.mapper.required_imports(unit)
        if required:
            lines.append("### Required imports for this file:")
            for entry in required:
                lines.append(f"- `{entry.spec}` → `{entry.statement}`")
            lines.append("")

        nested = index.nested_symbols(unit)
        if nested:
            lines.append("### Nested Types (IMPORTANT - EXTRACT to top-level):")
            lines.append("These types are declared INSIDE another declaration. Extract them to top level and rename them:")
            for symbol in nested:
                lines.append(f"- `{symbol.qualified_name}` → extract as `{symbol.flattened_name}` (Top-level)")
            lines.append("")

        ambiguous = index.ambiguous_symbols(unit)
        if ambiguous:
            lines.append("### Ambiguous Symbols (Multiple definitions exist):")
            lines.append("These symbol names exist in multiple places. Use the CORRECT one based on context:")
            for name, locations in ambiguous.items():
                lines.append(f"- `{name}`:")
                for location in locations:
                    scope = f"nested in {location.symbol.parent}" if location.symbol.parent else "top-level"
                    lines.append(f"  - `{location.symbol.qualified_name}` in `{location.target_path}` ({scope})")
            lines.append("")

        hints = {}
        for location in index.referenced_symbols(unit):
            symbol = location.symbol
            key = symbol.qualified_name
            if key in hints:
                continue
            statement = self.target_plugin.build_import(
                location.target_path, current, self.mapper.package_name, [symbol.flattened_name]
            )
            if symbol.is_nested:
                hints[key] = f"- `{key}` → {statement} then use `{symbol.flattened_name}` (Top-level)"
            else:
                hints[key] = f"- `{symbol.name}` → {statement}"
        if hints:
            lines.append("### Symbol locations (use these exact imports):")
            lines.extend(hints.values())
            lines.append("")

        return "\n".join(lines).rstrip()

    def chunk_notice(self, chunk: ChunkRequest | None, mode: PromptMode) -> str:
        if chunk is None:
            return ""
        if mode == PromptMode.MINIMAL:
            imports = (
                "Do NOT include imports."
                if chunk.suppress_imports
                else "Include imports only if appropriate at top of file."
            )
            return f"Chunk {chunk.index + 1} of {chunk.total}. {imports}"
        imports = (
            "Do NOT include any import statements in this chunk."
            if chunk.suppress_imports
            else "Include necessary import statements only if they belong at the top of the file."
        )
        return (
            "## Chunked Porting (CRITICAL)\n"
            f"You are porting chunk {chunk.index + 1} of {chunk.total} from a larger file.\n"
            "- Output ONLY the code for this chunk, in correct order.\n"
            "- Do NOT repeat declarations from other chunks and do NOT add extra commentary.\n"
            f"- {imports}"
        )

    @staticmethod
    def _feedback(correction: list[str] | None, issues: list[str] | None) -> str:
        parts = []
        if correction:
            parts.append(CORRECTION_HEADER + "\n" + "\n".join(correction))
        if issues:
            parts.append(
                "## Problems In The Previous Attempt\nFix all of these:\n"
                + "\n".join(f"{i}. {issue}" for i, issue in enumerate(issues, 1))
            )
        return "\n\n".join(parts)

    # =========================================================================
    # Prompt bodies
    # =========================================================================

    @staticmethod
    def _join(*sections: str) -> str:
        return "\n\n".join(section for section in sections if section)

    def _source_block(self, unit: SourceUnit, content: str) -> str:
        return f"## Source Code ({unit.path})\n```{self.source_name}\n{content}\n```"

    def _full(self, unit, content, chunk, checklist, import_context, feedback) -> str:
        header = (
            f"You are an expert software engineer performing a 1:1 code port from "
            f"{self.source_name} to {self.target_name}.\n\n"
            "## Task\n"
            f"Convert the following {self.source_name} code to idiomatic {self.target_name} code while preserving:\n"
            "- Exact functionality and behavior\n"
            "- Code structure and organization (methods inside a class stay inside the class)\n"
            "- Function/method signatures (adapted to target language conventions)\n"
            "- Comments and documentation\n"
            "- ALL methods, including private methods\n"
            "Do NOT add organizational comments such as section dividers or \"Ported from\" notes."
        )
        features = (
            f"## Source Language Features\n{self.source_plugin.feature_summary}\n\n"
            f"## Target Language Features\n{self.target_plugin.feature_summary}"
        )
        guidelines = (
            "## Guidelines\n"
            "1. Maintain the same logic and algorithm\n"
            "2. Use equivalent data structures in the target language\n"
            "3. Handle error cases the same way (adapted to target language patterns)\n"
            "4. Preserve any TODO comments or notes\n"
            "5. Use idiomatic patterns for the target language\n"
            "6. Include necessary imports/dependencies\n"
            "7. **CRITICAL: NEVER import the current file itself**\n"
            "8. **CRITICAL: Keep all definitions in the same file** - never move a type to another file\n"
            "9. **CRITICAL: Include non-exported interfaces/types that the file uses**\n"
            "10. **CRITICAL: Type aliases are NOT enums**"
        )
        output = (
            "## Ported Code\n"
            f"Provide ONLY the ported code in {self.target_name}, wrapped in a single code block.\n"
            "Before answering, check that every definition and every method of the source appears in your output.\n"
            "Do not include explanations or example code from these instructions."
        )
        return self._join(
            header,
            features,
            guidelines,
            checklist,
            import_context,
            self.chunk_notice(chunk, PromptMode.FULL),
            self.target_plugin.porting_rules,
            feedback,
            self._source_block(unit, content),
            output,
        )

    def _reduced(self, unit, content, chunk, checklist, import_context, feedback) -> str:
        header = (
            f"You are an expert software engineer performing a 1:1 code port from "
            f"{self.source_name} to {self.target_name}.\n\n"
            "## Task\n"
            f"Convert the following {self.source_name} code to idiomatic {self.target_name} code while preserving "
            "behavior, structure, signatures and comments. Include ALL methods, including private methods. "
            "Do NOT add organizational comments."
        )
        guidelines = (
            "## Guidelines\n"
            "1. NEVER import the current file itself\n"
            "2. Keep all definitions in the same file\n"
            "3. Include non-exported interfaces/types\n"
            "4. Type aliases are NOT enums"
        )
        return self._join(
            header,
            guidelines,
            checklist,
            import_context,
            self.chunk_notice(chunk, PromptMode.REDUCED),
            feedback,
            self._source_block(unit, content),
            f"## Output\nProvide ONLY the ported code in {self.target_name}, wrapped in a code block.",
        )

    def _minimal(self, unit, content, chunk, checklist, import_context, feedback) -> str:
        header = (
            f"Port this {self.source_name} code to {self.target_name}.\n"
            "Preserve behavior, structure, signatures, and comments.\n"
            "Include all definitions and methods (including private).\n"
            "Do not add extra commentary. Output only code in a code block."
        )
        return self._join(
            header,
            checklist,
            import_context,
            self.chunk_notice(chunk, PromptMode.MINIMAL),
            feedback,
            f"Source:\n```{self.source_name}\n{content}\n```",
        )
