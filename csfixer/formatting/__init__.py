from .code_formatting import FormatResult, FormatterState
from .controller import FormattingController
from .document_formatter import DocumentFormatter
from .editor_host import DocumentRef, EditorHost, Position, TextEdit, TextLine, TextRange
from .fixer_config import FixerConfig, PlatformFacts, resolve_fixer_config

__all__ = [
    "DocumentFormatter",
    "DocumentRef",
    "EditorHost",
    "FixerConfig",
    "FormatResult",
    "FormatterState",
    "FormattingController",
    "PlatformFacts",
    "Position",
    "TextEdit",
    "TextLine",
    "TextRange",
    "resolve_fixer_config",
]
