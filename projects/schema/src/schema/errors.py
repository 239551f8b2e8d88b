"""Error types raised by the schema model and its collaborators."""


class SchemaError(ValueError):
    """Base class for schema editing errors."""


class InvalidIntent(SchemaError):
    """An edit refers to something that does not exist or cannot be applied."""


class InvariantViolation(SchemaError):
    """A snapshot breaks one of the model invariants."""

    def __init__(self, violations: list[str]) -> None:
        """Collect every violation found in the snapshot."""
        self.violations = violations
        super().__init__("; ".join(violations))


class SynthesisFailure(SchemaError):
    """A junction table could not be synthesized for a many-to-many join."""


class ImportFormatError(SchemaError):
    """A persisted document is malformed."""


class CompilerError(SchemaError):
    """Serializing a snapshot or parsing source text failed."""


class ValidationError(CompilerError):
    """Source text was rejected before it could be parsed back."""
