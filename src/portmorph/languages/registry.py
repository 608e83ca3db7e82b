"""
Dialect plugin registry.

Central registry for all dialect plugins. Handles plugin lookup and instantiation.
"""

from typing import Type

from portmorph.config.models import LanguageType
from portmorph.languages.base.plugin import LanguagePlugin
from portmorph.languages.dart.plugin import DartPlugin
from portmorph.languages.python.plugin import PythonPlugin
from portmorph.languages.typescript.plugin import JavaScriptPlugin, TypeScriptPlugin


class LanguagePluginRegistry:
    """Registry for dialect plugins."""

    _plugins: dict[LanguageType, Type[LanguagePlugin]] = {
        LanguageType.TYPESCRIPT: TypeScriptPlugin,
        LanguageType.JAVASCRIPT: JavaScriptPlugin,
        LanguageType.PYTHON: PythonPlugin,
        LanguageType.DART: DartPlugin,
    }

    @classmethod
    def get_plugin(cls, language: LanguageType) -> LanguagePlugin:
        """
        Get a dialect plugin instance.

        Raises:
            ValueError: If language is not supported
        """
        if language not in cls._plugins:
            raise ValueError(
                f"Unsupported language: {language}. "
                f"Supported languages: {cls.list_supported_languages()}"
            )
        return cls._plugins[language]()

    @classmethod
    def register_plugin(cls, language: LanguageType, plugin_class: Type[LanguagePlugin]):
        """Register a new dialect plugin."""
        if not issubclass(plugin_class, LanguagePlugin):
            raise TypeError(f"{plugin_class} must extend LanguagePlugin")
        cls._plugins[language] = plugin_class

    @classmethod
    def list_supported_languages(cls) -> list[str]:
        return [lang.value for lang in cls._plugins.keys()]

    @classmethod
    def is_supported(cls, language: LanguageType) -> bool:
        return language in cls._plugins


def get_plugin(language: LanguageType | str) -> LanguagePlugin:
    """Convenience function to get a dialect plugin."""
    return LanguagePluginRegistry.get_plugin(LanguageType(language))


def language_for_extension(extension: str) -> LanguageType | None:
    """Return the registered dialect that owns a file extension."""
    for language in LanguagePluginRegistry._plugins:
        if extension in get_plugin(language).file_extensions:
            return language
    return None
