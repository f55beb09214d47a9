class BlindSolveError(Exception):
    """Base exception for blindsolve errors."""


class ConfigurationError(BlindSolveError):
    """Raised when a required credential or path is not configured."""


class MissingCredentials(ConfigurationError):
    """Raised when the remote path is needed but no API key is set."""


class SolveCancelled(BlindSolveError):
    """Raised at a suspension point once the caller has cancelled the attempt."""


class PollExhausted(BlindSolveError):
    """Raised when a poll loop used every attempt without a usable response."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        detail = f"no usable response after {attempts} attempts"
        if last_error is not None:
            detail += f" (last error: {last_error})"
        super().__init__(detail)


# Local solver (ASTAP)


class LocalSolveError(BlindSolveError):
    """Local solver failure. Never fatal to the overall attempt."""


class ExecutableNotFound(LocalSolveError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"ASTAP executable not found at: {path}")


class LocalTimeout(LocalSolveError):
    """ASTAP did not finish, or produced no artifact, within its budget."""


class SolverReportedFailure(LocalSolveError):
    """ASTAP wrote PLTSOLVD=F to its .ini file."""


# Header parsing


class HeaderParseError(BlindSolveError):
    """Raised when a header block cannot yield calibration fields."""


class MissingRequiredField(HeaderParseError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"required header keyword missing or not numeric: {key}")


# Remote decoding


class DecodeError(BlindSolveError):
    """Raised when a JSON response does not have the expected shape."""


class MissingField(DecodeError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"missing field '{field}'")


class WrongType(DecodeError):
    def __init__(self, field: str, expected: str, got: object):
        self.field = field
        self.expected = expected
        self.got = got
        super().__init__(
            f"field '{field}' expected {expected}, got {type(got).__name__} ({got!r})"
        )


# Remote solver (astrometry.net)


class RemoteSolveError(BlindSolveError):
    """Remote solver failure. Always terminal for the orchestration."""


class RemoteTransportError(RemoteSolveError):
    """Network, HTTP or JSON failure of a single request."""


class RemoteAuthFailed(RemoteSolveError):
    """Login did not yield a session."""


class RemoteUploadFailed(RemoteSolveError):
    """Upload did not yield a submission id."""


class RemoteTimedOut(RemoteSolveError):
    def __init__(self, stage: str, attempts: int):
        self.stage = stage
        self.attempts = attempts
        super().__init__(f"timed out polling {stage} after {attempts} attempts")


class RemoteParseFailed(RemoteSolveError):
    def __init__(self, reason: DecodeError):
        self.reason = reason
        super().__init__(f"calibration payload rejected: {reason}")
