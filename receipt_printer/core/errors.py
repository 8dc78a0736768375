"""
Error taxonomy for the receipt pipeline.

Recoverable errors (``recoverable = True``) make the pipeline fall through to the
next strategy. ``ExhaustedStrategies`` is terminal and carries the ordered
per-strategy failure history. ``ProtocolInvariantError`` signals a programming
defect in command construction and is never used for fallback.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from receipt_printer.printing.pipeline import AttemptFailure


class PrintError(Exception):
    """Base class for all receipt printing failures."""

    recoverable = False
    code = "print_error"

    def describe(self) -> str:
        return f"{self.code}: {self}"


class UnsupportedGlyph(PrintError):
    """A code point has no byte in the selected legacy codepage."""

    recoverable = True
    code = "unsupported_glyph"

    def __init__(self, char: str, index: int, codepage: str, message: Optional[str] = None):
        self.char = char
        self.index = index
        self.codepage = codepage
        super().__init__(message or f"U+{ord(char):04X} at position {index} is not in codepage {codepage}")


class ScriptRequiresShaping(UnsupportedGlyph):
    """The text needs contextual shaping or right-to-left ordering."""

    code = "script_requires_shaping"

    def __init__(self, char: str, index: int, codepage: str):
        super().__init__(
            char,
            index,
            codepage,
            f"U+{ord(char):04X} at position {index} needs shaping/RTL ordering; codepage {codepage} cannot express it",
        )


class OversizedBitmap(PrintError):
    """A bitmap exceeds the configured maximum height (paper-waste guard)."""

    recoverable = True
    code = "oversized_bitmap"

    def __init__(self, height: int, max_height: int):
        self.height = height
        self.max_height = max_height
        super().__init__(f"bitmap height {height}px exceeds maximum {max_height}px")


class TransportError(PrintError):
    """Base class for channel failures. Fatal for the channel, recoverable for the pipeline."""

    recoverable = True
    code = "transport_error"

    def __init__(self, message: str, target: object = None):
        self.target = target
        super().__init__(message)


class TransportUnavailable(TransportError):
    code = "transport_unavailable"


class TargetBusy(TransportUnavailable):
    """Another attempt holds the target and the lock mode is 'reject'."""

    code = "target_busy"


class TransportTimeout(TransportError):
    code = "transport_timeout"


class TransportRejected(TransportError):
    code = "transport_rejected"


class PrintCancelled(PrintError):
    """The caller cancelled the run before transmission started."""

    code = "cancelled"


class ExhaustedStrategies(PrintError):
    """Every listed strategy failed. ``history`` keeps the failures in attempt order."""

    code = "exhausted_strategies"

    def __init__(self, history: Sequence["AttemptFailure"], trace: Sequence[object] = ()):
        self.history = list(history)
        self.trace = list(trace)
        tried = ", ".join(f"{f.strategy.kind}->{f.error.code}" for f in self.history) or "none"
        super().__init__(f"all strategies failed ({tried})")


class ProtocolInvariantError(ValueError):
    """A command would desynchronize the device parser. Always a bug."""


__all__ = [
    "ExhaustedStrategies",
    "OversizedBitmap",
    "PrintCancelled",
    "PrintError",
    "ProtocolInvariantError",
    "ScriptRequiresShaping",
    "TargetBusy",
    "TransportError",
    "TransportRejected",
    "TransportTimeout",
    "TransportUnavailable",
    "UnsupportedGlyph",
]
