from __future__ import annotations

import importlib
import logging
import pkgutil

from boleto_importer.plugins.base import FileParserPlugin

logger = logging.getLogger(__name__)

_parsers: dict[str, FileParserPlugin] = {}


def register(parser: FileParserPlugin) -> None:
    _parsers[parser.name] = parser


def get(name: str) -> FileParserPlugin | None:
    return _parsers.get(name)


def get_all() -> dict[str, FileParserPlugin]:
    return _parsers


def discover() -> None:
    """Import every module under boleto_importer.plugins.parsers and register its parser."""
    import boleto_importer.plugins.parsers as parsers_pkg

    for _importer, modname, _ispkg in pkgutil.iter_modules(parsers_pkg.__path__):
        module = importlib.import_module(f"boleto_importer.plugins.parsers.{modname}")
        if hasattr(module, "register_plugin"):
            module.register_plugin()
    logger.debug("Registered file parsers: %s", ", ".join(sorted(_parsers)))


def find_parser(file_content: bytes, filename: str) -> FileParserPlugin | None:
    """Return the first registered parser accepting ``filename``."""
    if not _parsers:
        discover()
    for parser in _parsers.values():
        if parser.detect(file_content, filename):
            return parser
    return None
