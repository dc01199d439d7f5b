"""Process-local admission state for generation requests."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional

from lexflow.models.generation import EvidenceChunk

FINGERPRINT_QUERY_CHARS = 100


class RequestState(str, Enum):
    ARRIVED = "arrived"
    DEDUPED = "deduped"
    LOCK_REJECTED = "lock_rejected"
    QUEUED = "queued"
    ADMITTED = "admitted"
    COMPLETED = "completed"
    FAILED = "failed"


def fingerprint(owner_id: str, resource_id: str, query_text: str, evidence_count: int) -> str:
    """Key identifying duplicate requests: same owner, resource, query prefix and evidence count."""
    return f"{owner_id}:{resource_id}:{query_text[:FINGERPRINT_QUERY_CHARS]}:{evidence_count}"


@dataclass
class GenerationRequest:
    """One generation request and the future its callers wait on."""

    request_id: str
    user_id: str
    resource_id: str
    query_text: str
    evidence: List[EvidenceChunk]
    created_at: float
    future: "asyncio.Future[str]"
    state: RequestState = RequestState.ARRIVED
    queued_at: Optional[float] = None
    finished_at: Optional[float] = None
    expiry: Optional[asyncio.TimerHandle] = None

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.user_id, self.resource_id, self.query_text, len(self.evidence))


@dataclass
class UserLock:
    busy: bool = False
    started_at: float = 0.0
    owner: Optional[str] = None


@dataclass
class QueueState:
    pending: Deque[GenerationRequest] = field(default_factory=deque)
    throttle_detected: bool = False
    throttle_detected_at: Optional[float] = None
    draining: bool = False


@dataclass
class AdmissionState:
    """Everything the admission controller mutates.

    Only touched from the event loop thread, so no locking is needed.
    """

    locks: Dict[str, UserLock] = field(default_factory=dict)
    queue: QueueState = field(default_factory=QueueState)
    in_flight: Dict[str, GenerationRequest] = field(default_factory=dict)
    tracked: Dict[str, GenerationRequest] = field(default_factory=dict)

    def lock_for(self, user_id: str) -> UserLock:
        return self.locks.setdefault(user_id, UserLock())
