"""Admission control for expensive generation calls.

Requests are deduplicated by fingerprint, serialized per user, and, while the
model is being throttled, funneled through a single FIFO queue drained one at a
time. Queue mode is entered only through ``signal_throttle`` and left once the
queue is empty and no throttle has been seen for the cooldown window.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from lexflow.admission.state import AdmissionState, GenerationRequest, RequestState, UserLock
from lexflow.config import settings
from lexflow.errors import AdmissionError, QueueTimeoutError, UserBusyError
from lexflow.models.generation import EvidenceChunk, GenerationResult, QueuedTicket, QueueStatus

logger = logging.getLogger(__name__)

GenerateFn = Callable[[GenerationRequest], Awaitable[str]]
Outcome = Union[GenerationResult, QueuedTicket]


def _consume_exception(future: "asyncio.Future[str]") -> None:
    if not future.cancelled():
        future.exception()


class RequestAdmissionController:
    def __init__(
        self,
        generate: GenerateFn,
        state: Optional[AdmissionState] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        lock_stale_seconds: Optional[float] = None,
        queue_max_wait_seconds: Optional[float] = None,
        cooldown_seconds: Optional[float] = None,
        item_delay_seconds: Optional[float] = None,
        queue_mode_item_delay_seconds: Optional[float] = None,
        wait_estimate_seconds: Optional[int] = None,
    ) -> None:
        self._generate = generate
        self.state = state or AdmissionState()
        self._clock = clock
        self._sleep = sleep
        self.lock_stale_seconds = lock_stale_seconds or settings.lock_stale_seconds
        self.queue_max_wait_seconds = queue_max_wait_seconds or settings.queue_max_wait_seconds
        self.cooldown_seconds = cooldown_seconds or settings.queue_cooldown_seconds
        self.item_delay_seconds = (
            settings.queue_item_delay_seconds if item_delay_seconds is None else item_delay_seconds
        )
        self.queue_mode_item_delay_seconds = (
            settings.queue_mode_item_delay_seconds
            if queue_mode_item_delay_seconds is None
            else queue_mode_item_delay_seconds
        )
        self.wait_estimate_seconds = wait_estimate_seconds or settings.queue_wait_estimate_seconds
        self._drain_task: Optional[asyncio.Task] = None
        self._deactivation: Optional[asyncio.TimerHandle] = None

    @property
    def queue_mode_active(self) -> bool:
        return self.state.queue.throttle_detected

    async def submit(
        self,
        user_id: str,
        resource_id: str,
        query_text: str,
        evidence: Sequence[EvidenceChunk] = (),
    ) -> Outcome:
        """Run, join or queue a generation request.

        Returns a GenerationResult when the request ran (or joined an identical
        running request) and a QueuedTicket when it waits in the queue. Raises
        UserBusyError when the user already has a generation running.
        """
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[str]" = loop.create_future()
        future.add_done_callback(_consume_exception)
        request = GenerationRequest(
            request_id=str(uuid.uuid4()),
            user_id=user_id,
            resource_id=resource_id,
            query_text=query_text,
            evidence=list(evidence),
            created_at=self._clock(),
            future=future,
        )
        self._prune_tracked()

        existing = self.state.in_flight.get(request.fingerprint)
        if existing is not None and not existing.future.done():
            request.state = RequestState.DEDUPED
            if existing.state == RequestState.QUEUED:
                logger.info("Request for %s matches queued request %s", user_id, existing.request_id)
                return self._ticket(existing)
            logger.info("Request for %s joins running request %s", user_id, existing.request_id)
            try:
                text = await asyncio.shield(existing.future)
                return GenerationResult(request_id=existing.request_id, text=text)
            except Exception as exc:
                logger.info("Joined request %s failed (%s); admitting on its own", existing.request_id, exc)
                request.state = RequestState.ARRIVED

        lock = self.state.lock_for(user_id)
        if self._lock_held(user_id, lock):
            request.state = RequestState.LOCK_REJECTED
            raise UserBusyError(user_id, self._retry_after(lock))

        if self.queue_mode_active:
            return self._enqueue(request)
        return await self._admit(request)

    async def wait_for(self, request_id: str) -> str:
        request = self.state.tracked[request_id]
        return await asyncio.shield(request.future)

    def lookup(self, request_id: str) -> Optional[GenerationRequest]:
        return self.state.tracked.get(request_id)

    def signal_throttle(self) -> None:
        queue = self.state.queue
        if not queue.throttle_detected:
            logger.warning("Model throttling detected; entering queue mode")
        queue.throttle_detected = True
        queue.throttle_detected_at = self._clock()
        self._schedule_deactivation(self.cooldown_seconds)

    def queue_status(self, user_id: str) -> QueueStatus:
        pending = list(self.state.queue.pending)
        position = next(
            (index for index, request in enumerate(pending, start=1) if request.user_id == user_id),
            None,
        )
        return QueueStatus(
            in_queue=position is not None,
            queue_position=position,
            estimated_wait_seconds=self._estimate(position) if position else 0,
            queue_mode_active=self.queue_mode_active,
            total_queue_length=len(pending),
        )

    async def aclose(self) -> None:
        if self._deactivation is not None:
            self._deactivation.cancel()
            self._deactivation = None
        if self._drain_task is not None:
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
            self._drain_task = None
        pending = self.state.queue.pending
        while pending:
            request = pending.popleft()
            if request.expiry is not None:
                request.expiry.cancel()
                request.expiry = None
            if self.state.in_flight.get(request.fingerprint) is request:
                del self.state.in_flight[request.fingerprint]
            self._reject(request, AdmissionError("Admission controller is shutting down"))

    def _lock_held(self, user_id: str, lock: UserLock) -> bool:
        if not lock.busy:
            return False
        age = self._clock() - lock.started_at
        if age >= self.lock_stale_seconds:
            logger.warning("Clearing stale generation lock for %s held for %.0fs", user_id, age)
            lock.busy = False
            lock.owner = None
            return False
        return True

    def _retry_after(self, lock: UserLock) -> int:
        return max(1, math.ceil(self.lock_stale_seconds - (self._clock() - lock.started_at)))

    def _acquire(self, request: GenerationRequest) -> None:
        lock = self.state.lock_for(request.user_id)
        lock.busy = True
        lock.started_at = self._clock()
        lock.owner = request.request_id
        request.state = RequestState.ADMITTED
        self.state.in_flight[request.fingerprint] = request

    def _release(self, request: GenerationRequest) -> None:
        lock = self.state.lock_for(request.user_id)
        # a stale lock may have been handed to a newer request
        if lock.owner == request.request_id:
            lock.busy = False
            lock.owner = None
        if not request.future.done():
            self._reject(request, AdmissionError(f"Generation request {request.request_id} was cancelled"))
        if self.state.in_flight.get(request.fingerprint) is request:
            del self.state.in_flight[request.fingerprint]

    def _resolve(self, request: GenerationRequest, text: str) -> None:
        if request.future.done():
            return
        request.future.set_result(text)
        request.state = RequestState.COMPLETED
        request.finished_at = self._clock()

    def _reject(self, request: GenerationRequest, error: BaseException, state: RequestState = RequestState.FAILED) -> None:
        if request.future.done():
            return
        request.future.set_exception(error)
        request.state = state
        request.finished_at = self._clock()

    async def _admit(self, request: GenerationRequest) -> GenerationResult:
        self._acquire(request)
        try:
            text = await self._generate(request)
        except Exception as exc:
            self._reject(request, exc)
            raise
        else:
            self._resolve(request, text)
        finally:
            self._release(request)
        return GenerationResult(request_id=request.request_id, text=text)

    def _estimate(self, position: int) -> int:
        return (position - 1) * self.wait_estimate_seconds

    def _ticket(self, request: GenerationRequest) -> QueuedTicket:
        pending = self.state.queue.pending
        position = next((i for i, item in enumerate(pending, start=1) if item is request), len(pending))
        return QueuedTicket(
            request_id=request.request_id,
            queue_position=position,
            estimated_wait_seconds=self._estimate(position),
        )

    def _enqueue(self, request: GenerationRequest) -> QueuedTicket:
        loop = asyncio.get_running_loop()
        request.state = RequestState.QUEUED
        request.queued_at = self._clock()
        self.state.queue.pending.append(request)
        self.state.in_flight[request.fingerprint] = request
        self.state.tracked[request.request_id] = request
        request.expiry = loop.call_later(self.queue_max_wait_seconds, self._expire, request)
        ticket = self._ticket(request)
        logger.info(
            "Queued request %s for %s at position %s", request.request_id, request.user_id, ticket.queue_position
        )
        self._ensure_drain()
        return ticket

    def _expire(self, request: GenerationRequest) -> None:
        request.expiry = None
        if request.future.done() or request.state != RequestState.QUEUED:
            return
        try:
            self.state.queue.pending.remove(request)
        except ValueError:
            pass
        if self.state.in_flight.get(request.fingerprint) is request:
            del self.state.in_flight[request.fingerprint]
        waited = self._clock() - (request.queued_at or request.created_at)
        logger.warning("Queued request %s timed out after %.0fs", request.request_id, waited)
        self._reject(request, QueueTimeoutError(request.request_id, waited))

    def _ensure_drain(self) -> None:
        queue = self.state.queue
        if queue.draining:
            return
        queue.draining = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        queue = self.state.queue
        try:
            while queue.pending:
                request = queue.pending.popleft()
                if request.expiry is not None:
                    request.expiry.cancel()
                    request.expiry = None
                if request.future.done():
                    continue
                lock = self.state.lock_for(request.user_id)
                if self._lock_held(request.user_id, lock):
                    if self.state.in_flight.get(request.fingerprint) is request:
                        del self.state.in_flight[request.fingerprint]
                    logger.info("Dropping queued request %s: user %s is busy", request.request_id, request.user_id)
                    self._reject(
                        request, UserBusyError(request.user_id, self._retry_after(lock)), RequestState.LOCK_REJECTED
                    )
                    continue

                self._acquire(request)
                try:
                    text = await self._generate(request)
                except Exception as exc:
                    logger.warning("Queued request %s failed: %s", request.request_id, exc)
                    self._reject(request, exc)
                else:
                    self._resolve(request, text)
                finally:
                    self._release(request)

                delay = self.queue_mode_item_delay_seconds if self.queue_mode_active else self.item_delay_seconds
                await self._sleep(delay)
        finally:
            queue.draining = False
            self._drain_task = None
        if queue.throttle_detected:
            self._schedule_deactivation(self.cooldown_seconds)

    def _schedule_deactivation(self, delay: float) -> None:
        if self._deactivation is not None:
            self._deactivation.cancel()
        loop = asyncio.get_running_loop()
        self._deactivation = loop.call_later(delay, self._maybe_deactivate)

    def _maybe_deactivate(self) -> None:
        self._deactivation = None
        queue = self.state.queue
        if not queue.throttle_detected:
            return
        quiet_for = self._clock() - (queue.throttle_detected_at or 0.0)
        if queue.pending or queue.draining or quiet_for < self.cooldown_seconds:
            self._schedule_deactivation(max(self.cooldown_seconds - quiet_for, 0.0) or self.cooldown_seconds)
            return
        queue.throttle_detected = False
        logger.info("No throttling for %.0fs and queue empty; leaving queue mode", quiet_for)

    def _prune_tracked(self) -> None:
        horizon = self._clock() - self.queue_max_wait_seconds
        finished: List[str] = [
            request_id
            for request_id, request in self.state.tracked.items()
            if request.finished_at is not None and request.finished_at < horizon
        ]
        for request_id in finished:
            del self.state.tracked[request_id]
