"""
Target-side import mapping.

Turns the relative imports of a source unit into the import statements its
target file needs, using the project index for resolution and the target
dialect plugin for rendering.
"""

from dataclasses import dataclass, field

from portmorph.analyzer.symbol_index import ImportIndex
from portmorph.config.models import SourceUnit
from portmorph.languages.base.plugin import LanguagePlugin, dedupe


@dataclass
class RequiredImport:
    """An import the target file must carry."""

    spec: str  # Import path as written in the source
    target_path: str
    statement: str
    symbols: list[str] = field(default_factory=list)


class ImportMapper:
    """
    Computes required imports for target files.

    Usage:
        mapper = ImportMapper(index, source_plugin, target_plugin, "my_app")
        for required in mapper.required_imports(unit):
            print(required.spec, "->", required.statement)
    """

    def __init__(
        self,
        index: ImportIndex,
        source_plugin: LanguagePlugin,
        target_plugin: LanguagePlugin,
        package_name: str,
    ):
        self.index = index
        self.source_plugin = source_plugin
        self.target_plugin = target_plugin
        self.package_name = package_name

    def target_path(self, unit: SourceUnit) -> str:
        return self.index.target_path_for(unit.path) or self.target_plugin.convert_path(
            unit.path, self.source_plugin.language
        )

    def required_imports(self, unit: SourceUnit) -> list[RequiredImport]:
        """
        Resolve every relative import of ``unit`` to a target import statement.

        Imports that resolve to nothing (or to the unit itself) are dropped.
        Several source imports of the same target file are merged.
        """
        current = self.target_path(unit)
        by_target: dict[str, RequiredImport] = {}

        for spec, names in self.source_plugin.extract_imported_names(unit.content).items():
            target = self.index.resolve_import(spec, unit.path)
            if target is None or target == current:
                continue
            symbols = self._symbols_for(target, names)
            if target in by_target:
                by_target[target].symbols = dedupe(by_target[target].symbols + symbols)
            else:
                by_target[target] = RequiredImport(spec=spec, target_path=target, statement="", symbols=symbols)

        required = []
        for target, entry in by_target.items():
            entry.statement = self.target_plugin.build_import(
                target, current, self.package_name, entry.symbols or None
            )
            required.append(entry)
        return required

    def _symbols_for(self, target: str, names: list[str]) -> list[str]:
        available = self.index.symbols_in(target)
        if names:
            chosen = [s.flattened_name for s in available if s.name in names and not s.is_nested]
            if chosen:
                return dedupe(chosen)
        return dedupe([s.flattened_name for s in available])
