"""Signal delivery and escalation state machine."""

import asyncio
import logging
import os
import signal
import time
from collections.abc import Awaitable, Callable

from procwarden.identity import Identity, IdentityVerifier
from procwarden.inspector import ProcessInspector
from procwarden.models import EscalationState, KillRequest, KillResult, Outcome, ProcessRecord, Stage

_logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 1.0
DEFAULT_POLL_INTERVAL = 0.5


class SignalEscalator:
    """
    Send signals and decide, from fresh observations, whether they worked.

    Every request follows the same strict order: capture the fingerprint,
    send, wait, verify. ``deliver`` stops there. ``shutdown`` keeps
    verifying on a fixed cadence until its budget runs out, then sends
    exactly one SIGKILL and verifies once more.
    """

    def __init__(
        self,
        inspector: ProcessInspector,
        verifier: IdentityVerifier,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        send_signal: Callable[[int, int], None] = os.kill,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._inspector = inspector
        self._verifier = verifier
        self._settle_delay = settle_delay
        self._poll_interval = poll_interval
        self._send_signal = send_signal
        self._sleep = sleep
        self._clock = clock

    async def deliver(
        self,
        pid: int,
        sig: signal.Signals = signal.SIGTERM,
        observed: ProcessRecord | None = None,
    ) -> KillResult:
        """
        Send ``sig`` once and verify once. Never escalates.

        When ``observed`` is given, the signal is only sent if ``pid`` still
        belongs to that process; otherwise the request resolves unsent.
        """
        stage = Stage.FORCED if sig == signal.SIGKILL else Stage.GRACEFUL
        request = await self._capture(pid, sig, stage, observed)
        if isinstance(request, KillResult):
            return request

        failure = self._send(request)
        if failure is not None:
            return failure
        await self._sleep(self._settle_delay)
        return await self._verify(request)

    async def shutdown(self, pid: int, timeout: float, observed: ProcessRecord | None = None) -> KillResult:
        """SIGTERM, poll until ``timeout`` seconds have passed, then SIGKILL once."""
        started = self._clock()
        request = await self._capture(pid, signal.SIGTERM, Stage.GRACEFUL, observed)
        if isinstance(request, KillResult):
            return request

        failure = self._send(request)
        if failure is not None:
            return failure
        await self._sleep(min(self._settle_delay, max(timeout, 0.0)))
        result = await self._verify(request)

        while result.outcome is Outcome.STILL_RUNNING:
            remaining = timeout - (self._clock() - started)
            if remaining <= 0:
                break
            await self._sleep(min(self._poll_interval, remaining))
            result = await self._verify(request)

        if result.outcome is not Outcome.STILL_RUNNING:
            return result

        _logger.info("pid %d outlived its %.1fs grace period, escalating to SIGKILL", pid, timeout)
        request.signal = signal.SIGKILL
        request.stage = Stage.FORCED
        failure = self._send(request)
        if failure is not None:
            return failure
        await self._sleep(self._settle_delay)
        result = await self._verify(request)

        if result.outcome is Outcome.STILL_RUNNING:
            self._transition(request, EscalationState.FAILED)
            return KillResult(
                pid,
                signal.SIGKILL,
                Outcome.FAILED,
                stage=Stage.FORCED,
                reason="still running after SIGKILL; needs operator attention",
            )
        return result

    async def _capture(
        self,
        pid: int,
        sig: signal.Signals,
        stage: Stage,
        observed: ProcessRecord | None,
    ) -> KillRequest | KillResult:
        """
        Fingerprint ``pid`` right before signalling, or resolve the request unsent.

        Unsent results carry no stage. With ``observed``, a pid that provably no
        longer holds the observed process is never signalled; an unknown
        fingerprint on either side does not block the send.
        """
        record = await self._inspector.get_process_info(pid)
        if observed is None:
            if record is None or record.is_zombie:
                return KillResult(pid, sig, Outcome.NOT_FOUND, reason="no such process")
        else:
            identity = self._verifier.compare(record, observed.start_fingerprint)
            if identity is Identity.GONE:
                return KillResult(pid, sig, Outcome.TERMINATED, reason="exited before its turn")
            if identity is Identity.REUSED:
                return KillResult(
                    pid,
                    sig,
                    Outcome.TERMINATED,
                    reason="pid reused by another process; not signalled",
                    pid_reused=True,
                )
        return KillRequest(
            pid=pid,
            signal=sig,
            issued_at=time.time(),
            captured_fingerprint=record.start_fingerprint,
            stage=stage,
        )

    def _send(self, request: KillRequest) -> KillResult | None:
        """Deliver the request's signal. Returns a final result if delivery resolved it."""
        try:
            self._send_signal(request.pid, request.signal)
        except ProcessLookupError:
            self._transition(request, EscalationState.TERMINATED)
            return KillResult(
                request.pid,
                request.signal,
                Outcome.TERMINATED,
                stage=request.stage,
                reason="exited before the signal arrived",
            )
        except PermissionError as e:
            self._transition(request, EscalationState.FAILED)
            return KillResult(
                request.pid,
                request.signal,
                Outcome.PERMISSION_DENIED,
                stage=request.stage,
                reason=f"permission denied: {e.strerror or e}",
            )
        except OSError as e:
            self._transition(request, EscalationState.FAILED)
            return KillResult(request.pid, request.signal, Outcome.FAILED, stage=request.stage, reason=str(e))
        self._transition(request, EscalationState.SIGNAL_SENT)
        return None

    async def _verify(self, request: KillRequest) -> KillResult:
        self._transition(request, EscalationState.VERIFYING)
        record = await self._inspector.get_process_info(request.pid)
        if record is None or record.is_zombie:
            self._transition(request, EscalationState.TERMINATED)
            return KillResult(request.pid, request.signal, Outcome.TERMINATED, stage=request.stage)

        identity = await self._verifier.check(request.pid, request.captured_fingerprint)
        if identity is Identity.SAME:
            self._transition(request, EscalationState.STILL_RUNNING)
            return KillResult(
                request.pid,
                request.signal,
                Outcome.STILL_RUNNING,
                stage=request.stage,
                reason=f"still running after {request.signal.name}",
            )

        self._transition(request, EscalationState.TERMINATED)
        if identity is Identity.REUSED:
            return KillResult(
                request.pid,
                request.signal,
                Outcome.TERMINATED,
                stage=request.stage,
                reason="pid reused by another process",
                pid_reused=True,
            )
        if identity is Identity.UNVERIFIABLE:
            return KillResult(
                request.pid,
                request.signal,
                Outcome.UNVERIFIABLE,
                stage=request.stage,
                reason="identity could not be confirmed; treated as gone",
            )
        return KillResult(request.pid, request.signal, Outcome.TERMINATED, stage=request.stage)

    @staticmethod
    def _transition(request: KillRequest, state: EscalationState) -> None:
        _logger.debug("pid %d: %s -> %s (%s)", request.pid, request.state.value, state.value, request.signal.name)
        request.state = state
