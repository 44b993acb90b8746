"""
Error taxonomy for the provisioning pipeline.

Retry policy lives in the job queue; everything below only says whether a
failure may succeed on a later attempt.
"""
from typing import Optional


class ProvisioningError(Exception):
    """Base class for provisioning failures"""

    retryable = False

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PermanentError(ProvisioningError):
    """Will never succeed on retry"""


class TransientError(ProvisioningError):
    """May succeed on a later attempt"""

    retryable = True


class OwnerValidationError(PermanentError):
    """Owner or application name fails sanitization"""


class PermanentRemoteError(PermanentError):
    """4xx or missing required fields from a remote service"""


class TransientRemoteError(TransientError):
    """Network error, timeout, 429 or 5xx from a remote service"""


class StoreUnavailableError(TransientError):
    """The provisioning store could not be reached"""


class InvalidTransitionError(Exception):
    """A job state transition was attempted from the wrong status"""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"job {job_id}: cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobOwnershipLostError(InvalidTransitionError):
    """The worker's job was reclaimed by another worker mid-run"""

    def __init__(self, job_id: str, worker_id: str):
        Exception.__init__(self, f"job {job_id} is no longer active for {worker_id}")
        self.job_id = job_id
        self.current = "reclaimed"
        self.target = "active"
        self.worker_id = worker_id


def is_retryable(exc: BaseException) -> bool:
    """Unclassified exceptions are retried like transient ones"""
    if isinstance(exc, ProvisioningError):
        return exc.retryable
    return True
