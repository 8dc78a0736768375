"""
Render strategy pipeline.

Runs an ordered attempt list through SELECTING -> ENCODING -> TRANSMITTING. A
recoverable failure in any stage moves to RETRYING and the next attempt; once every
attempt has failed the run ends in FAILED with ``ExhaustedStrategies`` carrying the
failure history. SUCCEEDED means the channel accepted the payload, not that paper
came out.

Cancellation is checked while selecting and encoding only. Once transmission starts
the run completes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from receipt_printer.core.config import Settings
from receipt_printer.core.errors import (
    ExhaustedStrategies,
    OversizedBitmap,
    PrintCancelled,
    PrintError,
    TransportError,
    UnsupportedGlyph,
)

from .host import HostSurface, UiContext
from .layout import layout_receipt, profile_text
from .receipt import Receipt
from .strategies import Attempt, InteractiveDialog, RenderStrategy, default_attempts, encode_attempt, select_next
from .transport import (
    TARGET_LOCKS,
    Channel,
    DeviceFactory,
    TargetLocks,
    TransportTarget,
    channel_session,
    describe_target,
    open_channel,
)

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    SELECTING = "selecting"
    ENCODING = "encoding"
    TRANSMITTING = "transmitting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptFailure:
    strategy: RenderStrategy
    target: TransportTarget
    stage: PipelineState
    error: PrintError

    def as_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.kind,
            "target": describe_target(self.target),
            "stage": self.stage.value,
            "error": self.error.code,
            "reason": str(self.error),
        }


@dataclass(frozen=True)
class PrintResult:
    strategy: RenderStrategy
    target: TransportTarget
    bytes_sent: int
    failures: Tuple[AttemptFailure, ...] = ()
    trace: Tuple[PipelineState, ...] = ()
    commands: Tuple[Any, ...] = field(default=(), repr=False)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.kind,
            "target": describe_target(self.target),
            "bytes_sent": self.bytes_sent,
            "failures": [f.as_dict() for f in self.failures],
            "trace": [s.value for s in self.trace],
        }


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


ChannelFactory = Callable[..., Channel]


class PrintPipeline:
    """
    Drive attempts for one receipt at a time. Instances hold no per-run state and may be
    shared between threads; the target locks serialize access to each printer.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        locks: Optional[TargetLocks] = None,
        device_factory: Optional[DeviceFactory] = None,
        surface: Optional[HostSurface] = None,
        ui: Optional[UiContext] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ):
        self.settings = settings or Settings()
        self.locks = locks or TARGET_LOCKS.with_policy(self.settings.lock_mode, self.settings.lock_timeout)
        self.device_factory = device_factory
        self.surface = surface
        self.ui = ui
        self.channel_factory = channel_factory or open_channel

    def _channel(self, attempt: Attempt) -> Channel:
        return self.channel_factory(
            attempt.target,
            timeout=self.settings.connect_timeout,
            device_factory=self.device_factory,
            surface=self.surface,
            ui=self.ui,
            interactive=isinstance(attempt.strategy, InteractiveDialog),
        )

    def _enter(self, trace: List[PipelineState], state: PipelineState, attempt: Optional[Attempt] = None) -> None:
        trace.append(state)
        if attempt is None:
            logger.info("pipeline -> %s", state.value)
        else:
            logger.info("pipeline -> %s [%s via %s]", state.value, attempt.strategy.kind, describe_target(attempt.target))

    @staticmethod
    def _check_cancel(cancel: Optional[CancelToken], state: PipelineState) -> None:
        if cancel is not None and cancel.cancelled:
            logger.info("print cancelled while %s", state.value)
            raise PrintCancelled(f"cancelled while {state.value}")

    def _record(
        self,
        failures: List[AttemptFailure],
        trace: List[PipelineState],
        attempts: Sequence[Attempt],
        attempt: Attempt,
        stage: PipelineState,
        error: PrintError,
    ) -> None:
        failures.append(AttemptFailure(attempt.strategy, attempt.target, stage, error))
        if len(failures) < len(attempts):
            logger.warning(
                "%s failed while %s (%s); falling back to %s",
                attempt.strategy.kind,
                stage.value,
                error.describe(),
                attempts[len(failures)].strategy.kind,
            )
            self._enter(trace, PipelineState.RETRYING)
            return
        self._enter(trace, PipelineState.FAILED)
        logger.error("all %d print attempts failed", len(attempts))
        raise ExhaustedStrategies(failures, trace)

    def run(
        self,
        receipt: Receipt,
        attempts: Optional[Sequence[Attempt]] = None,
        *,
        target: Optional[TransportTarget] = None,
        cancel: Optional[CancelToken] = None,
    ) -> PrintResult:
        """
        Print ``receipt`` using ``attempts`` (or the default list built for ``target``).

        Raises:
            ExhaustedStrategies when every attempt failed
            PrintCancelled when ``cancel`` fired before transmission
        """
        if attempts is None:
            if target is None:
                raise ValueError("either attempts or target is required")
            attempts = default_attempts(target, self.settings)
        attempts = list(attempts)

        lines = layout_receipt(receipt, self.settings.receipt_columns)
        profile = profile_text(receipt.text_fragments())
        title = receipt.header.store_name
        failures: List[AttemptFailure] = []
        trace: List[PipelineState] = []

        if not attempts:
            self._enter(trace, PipelineState.FAILED)
            raise ExhaustedStrategies(failures, trace)

        while True:
            self._enter(trace, PipelineState.SELECTING)
            self._check_cancel(cancel, PipelineState.SELECTING)
            selected = select_next(attempts, len(failures), profile)
            if selected is None:
                self._enter(trace, PipelineState.FAILED)
                raise ExhaustedStrategies(failures, trace)
            attempt, skipped = selected
            if skipped is not None:
                self._record(failures, trace, attempts, attempt, PipelineState.SELECTING, skipped)
                continue

            self._enter(trace, PipelineState.ENCODING, attempt)
            self._check_cancel(cancel, PipelineState.ENCODING)
            try:
                encoded = encode_attempt(attempt, lines, self.settings, title)
            except (UnsupportedGlyph, OversizedBitmap) as e:
                self._record(failures, trace, attempts, attempt, PipelineState.ENCODING, e)
                continue
            self._check_cancel(cancel, PipelineState.ENCODING)

            self._enter(trace, PipelineState.TRANSMITTING, attempt)
            try:
                with channel_session(self._channel(attempt), self.locks) as channel:
                    channel.send(encoded.payload)
            except TransportError as e:
                self._record(failures, trace, attempts, attempt, PipelineState.TRANSMITTING, e)
                continue

            self._enter(trace, PipelineState.SUCCEEDED, attempt)
            sent = len(encoded.payload) if isinstance(encoded.payload, bytes) else 0
            return PrintResult(
                strategy=attempt.strategy,
                target=attempt.target,
                bytes_sent=sent,
                failures=tuple(failures),
                trace=tuple(trace),
                commands=encoded.commands,
            )


def print_receipt(
    receipt: Receipt,
    settings: Optional[Settings] = None,
    *,
    target: Optional[TransportTarget] = None,
    strategies: Optional[Sequence[str]] = None,
    cancel: Optional[CancelToken] = None,
    **pipeline_kwargs: Any,
) -> PrintResult:
    """Convenience wrapper: resolve the target from settings when not given and run once."""
    s = settings or Settings()
    if target is None:
        from .discovery import resolve_target

        target = resolve_target(s)
    pipeline = PrintPipeline(s, **pipeline_kwargs)
    return pipeline.run(receipt, default_attempts(target, s, strategies), cancel=cancel)


__all__ = [
    "AttemptFailure",
    "CancelToken",
    "PipelineState",
    "PrintPipeline",
    "PrintResult",
    "print_receipt",
]
