"""
cronkit exception hierarchy.

Every error in the system inherits from CronkitError.
Each subsystem has its own error class for targeted catching.

Usage:
    try:
        await manager.add_job("backup", text, "tar czf ...")
    except ParseError as e:
        # Bad cron expression — tell the user which field
    except CronkitError as e:
        # Handle any cronkit error
"""


class CronkitError(Exception):
    """Base exception for all cronkit errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Schedule Errors ━━━


class ParseError(CronkitError):
    """Malformed cron expression — field count, domain, range or step."""

    def __init__(
        self,
        message: str,
        field: str = "",
        token: str = "",
        details: dict | None = None,
    ):
        self.field = field
        self.token = token
        super().__init__(message, details)


class ScheduleExhaustedError(CronkitError):
    """Schedule never fires within the forward-scan bound."""

    pass


class TranslationError(CronkitError):
    """Natural-language schedule text was not recognised."""

    pass


# ━━━ Job Errors ━━━


class JobNotFoundError(CronkitError):
    """Operation referenced an unknown job id."""

    def __init__(self, job_id: str, details: dict | None = None):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}", details)


class AlreadyRunningError(CronkitError):
    """Manual run requested while an execution is in flight."""

    def __init__(self, job_id: str, details: dict | None = None):
        self.job_id = job_id
        super().__init__(f"Job already running: {job_id}", details)


class ConfigurationError(CronkitError):
    """Configuration is invalid, missing, or malformed."""

    pass


# ━━━ Backend Errors ━━━


class StoreError(CronkitError):
    """Store backend failure — I/O errors, corrupt document, etc."""

    pass


class ShellError(CronkitError):
    """Shell process could not be spawned."""

    pass


class AgentError(CronkitError):
    """Agent executor failure — API errors, bad responses, etc."""

    def __init__(
        self,
        message: str,
        model: str = "",
        retryable: bool = False,
        details: dict | None = None,
    ):
        self.model = model
        self.retryable = retryable
        super().__init__(message, details)


class DispatchError(CronkitError):
    """
    Payload failure captured inside an execution record.

    Never raised out of CronManager.run_job — the record's status and
    error fields carry it instead.
    """

    pass
