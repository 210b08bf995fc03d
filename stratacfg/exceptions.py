"""
Unified exception hierarchy for stratacfg.

Every failure raised while describing, loading or watching a configuration
derives from StrataError, so callers can catch all library errors with a
single except clause and still tell the stages apart.
"""

from typing import Any


class StrataError(Exception):
    """
    Base exception for all stratacfg errors.

    Example:
        try:
            cfg = Loader(options).load(AppConfig)
        except StrataError as e:
            lg.error(f"config error: {e}")
    """

    def __init__(self, message: str, **context: Any) -> None:
        """
        Initialize the exception with a message and optional context.

        Args:
            message: Human-readable error message
            **context: Additional context information (stored in self.context)
        """
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        """String representation with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class OptionsError(StrataError):
    """
    Invalid loader or watcher options.

    Raised once, when LoaderOptions is constructed.
    """

    pass


class SchemaError(StrataError):
    """
    Invalid field declarations on a configuration class.

    Raised by describe() before any source is read.

    Examples:
        - A field declares both a default and a DSN template
        - A DSN template references an unknown field
        - Two fields share the same source key
    """

    pass


class DsnSyntaxError(SchemaError):
    """A template has an unterminated or empty placeholder, or a schemeless ref."""

    pass


class SourceError(StrataError):
    """
    A configuration source could not be read.

    Examples:
        - Required config file not found
        - Config file unreadable or too large
    """

    pass


class FileFormatError(SourceError):
    """The structured file parser rejected the document."""

    pass


class TemplateError(StrataError):
    """Rendering the raw document through the template collaborator failed."""

    pass


class ParseError(StrataError):
    """
    A raw value cannot be converted to the field's type.

    Context always names the offending field and the layer it came from.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        source: str | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, field=field, value=value, source=source, **context)
        self.field = field
        self.value = value
        self.source = source


class ResolutionError(StrataError):
    """
    A DSN placeholder could not be resolved.

    Context names the offending field and placeholder.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        placeholder: str | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, field=field, placeholder=placeholder, **context)
        self.field = field
        self.placeholder = placeholder


class UnresolvedReferenceError(ResolutionError):
    """A field reference names a field that does not exist."""

    pass


class UnknownSchemeError(ResolutionError):
    """A ref: placeholder uses a scheme with no registered resolver."""

    pass


class ValidationError(StrataError):
    """
    Aggregate of every field violation reported by the validator.

    Attributes:
        violations: All violations, in the order the validator reported them
    """

    def __init__(self, violations: list[Any], target: str | None = None) -> None:
        self.violations = list(violations)
        lines = [f"  - {v}" for v in self.violations]
        message = f"validation failed with {len(self.violations)} violation(s)"
        if lines:
            message += ":\n" + "\n".join(lines)
        super().__init__(message, target=target)


class WatcherError(StrataError):
    """Watcher misuse, such as watching twice or after stop."""

    pass


class StreamClosedError(WatcherError):
    """The snapshot stream was closed and fully drained."""

    pass
