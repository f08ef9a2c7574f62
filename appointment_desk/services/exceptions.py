class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when the backend returns an error response or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class RateLimitedError(DownstreamServiceError):
    """Raised when the backend throttles the caller (HTTP 429)."""

    def __init__(self, message: str = "Too many requests", *, cause: Exception | None = None):
        super().__init__(message, status_code=429, cause=cause)


class AppointmentValidationError(ServiceError):
    """Raised before any network call when an appointment payload is incomplete."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = list(missing or [])


class AppointmentNotFoundError(ServiceError):
    """Raised when neither the backend nor the cached collection knows an id."""

    def __init__(self, appointment_id: str, *, cause: Exception | None = None):
        super().__init__(f"Appointment '{appointment_id}' not found", cause=cause)
        self.appointment_id = appointment_id


class IllegalTransitionError(ServiceError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: str, target: str, allowed: list[str]):
        allowed_text = ", ".join(allowed) if allowed else "none"
        super().__init__(
            f"Cannot change status from '{current}' to '{target}'. "
            f"Allowed transitions from '{current}': {allowed_text}"
        )
        self.current = current
        self.target = target
        self.allowed = allowed


class MutationInProgressError(ServiceError):
    """Raised when another change to the same appointment has not finished yet."""

    def __init__(self, appointment_id: str, action: str = "change"):
        super().__init__(f"A {action} is already in progress for appointment '{appointment_id}'")
        self.appointment_id = appointment_id


class TransitionInProgressError(MutationInProgressError):
    """Raised when a status change is requested while the appointment is busy."""

    def __init__(self, appointment_id: str):
        super().__init__(appointment_id, "status change")


def is_rate_limited(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitedError):
        return True
    if isinstance(exc, DownstreamServiceError) and exc.status_code == 429:
        return True
    return "too many requests" in str(exc).lower()
