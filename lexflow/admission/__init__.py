"""Per-user single-flight and throttle-adaptive queueing for generation."""

from .controller import RequestAdmissionController
from .state import AdmissionState, GenerationRequest, QueueState, RequestState, UserLock, fingerprint

__all__ = [
    "AdmissionState",
    "GenerationRequest",
    "QueueState",
    "RequestAdmissionController",
    "RequestState",
    "UserLock",
    "fingerprint",
]
