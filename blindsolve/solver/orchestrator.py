"""Local-first, remote-fallback plate solving.

ASTAP is tried when a path is configured. Any local failure falls back to
astrometry.net. Remote failures are terminal. ``attempt_solve`` is the only
place where solver exceptions are interpreted; it always returns a
SolveAttemptOutcome.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Optional

from blindsolve.errors import (
    ExecutableNotFound,
    HeaderParseError,
    LocalSolveError,
    LocalTimeout,
    MissingCredentials,
    RemoteAuthFailed,
    RemoteParseFailed,
    RemoteTimedOut,
    RemoteUploadFailed,
    SolveCancelled,
    SolverReportedFailure,
)
from .astap import AstapSolver
from .astrometry_net import STAGE_CALIBRATION, AstrometryNetClient
from .header import derive_calibration
from .normalize import normalize
from .polling import CancellationToken
from .types import OutcomeKind, SolveAttemptOutcome

logger = logging.getLogger(__name__)


class SolveState(enum.Enum):
    IDLE = "idle"
    TRYING_LOCAL = "trying_local"
    TRYING_REMOTE_LOGIN = "trying_remote_login"
    TRYING_REMOTE_UPLOAD = "trying_remote_upload"
    POLLING_SUBMISSION = "polling_submission"
    POLLING_CALIBRATION = "polling_calibration"
    DONE = "done"


MESSAGES = {
    OutcomeKind.MISSING_CREDENTIALS: "API key is required.",
    OutcomeKind.REMOTE_AUTH_FAILED: "Error obtaining session key.",
    OutcomeKind.REMOTE_UPLOAD_FAILED: "Error uploading image.",
    OutcomeKind.REMOTE_PARSE_FAILED: "Calibration data from astrometry.net is incomplete.",
    OutcomeKind.CANCELLED: "Solve cancelled.",
}
TIMEOUT_MESSAGES = {
    "submission": "Timeout waiting for submission status.",
    "calibration": "Timeout waiting for calibration data.",
}


def _classify_local_failure(exc: Exception) -> OutcomeKind:
    if isinstance(exc, ExecutableNotFound):
        return OutcomeKind.LOCAL_UNAVAILABLE
    if isinstance(exc, LocalTimeout):
        return OutcomeKind.LOCAL_TIMED_OUT
    if isinstance(exc, SolverReportedFailure):
        return OutcomeKind.LOCAL_SOLVE_FAILED
    if isinstance(exc, (HeaderParseError, ValueError)):
        return OutcomeKind.LOCAL_PARSE_FAILED
    return OutcomeKind.LOCAL_UNAVAILABLE


class SolveOrchestrator:
    def __init__(
        self,
        remote: AstrometryNetClient,
        *,
        local: Optional[AstapSolver] = None,
        api_key: Optional[str] = None,
    ):
        self._remote = remote
        self._local = local
        self._api_key = (api_key or "").strip()
        self.state = SolveState.IDLE
        self._states: list[str] = []

    def _enter(self, state: SolveState) -> None:
        logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state
        self._states.append(state.value)

    def _done(self, kind: OutcomeKind, **kwargs) -> SolveAttemptOutcome:
        self._enter(SolveState.DONE)
        if kind is not OutcomeKind.SUCCESS and "message" not in kwargs:
            kwargs["message"] = MESSAGES.get(kind)
        return SolveAttemptOutcome(kind=kind, states=list(self._states), **kwargs)

    def attempt_solve(
        self, image_path: str | Path, cancel: Optional[CancellationToken] = None
    ) -> SolveAttemptOutcome:
        cancel = cancel or CancellationToken()
        self.state = SolveState.IDLE
        self._states = [SolveState.IDLE.value]
        image_path = Path(image_path)
        local_failure: Optional[OutcomeKind] = None

        try:
            if self._local is not None:
                self._enter(SolveState.TRYING_LOCAL)
                outcome, local_failure = self._try_local(image_path, cancel)
                if outcome is not None:
                    return outcome
            return self._try_remote(image_path, cancel, local_failure)
        except SolveCancelled as e:
            logger.warning(f"Solve of {image_path.name} cancelled in state {self.state.value}: {e}")
            return self._done(
                OutcomeKind.CANCELLED, detail=str(e), local_failure=local_failure
            )

    def _try_local(self, image_path: Path, cancel: CancellationToken):
        logger.info("Attempting ASTAP plate solve...")
        try:
            block = self._local.solve(image_path, cancel)
            calibration = derive_calibration(block)
            result = normalize(calibration)
        except (LocalSolveError, HeaderParseError, ValueError, OSError) as e:
            kind = _classify_local_failure(e)
            logger.warning(f"ASTAP plate solve failed ({kind.value}): {e}. Falling back to astrometry.net.")
            return None, kind

        if calibration.orientation_is_default:
            logger.info("ASTAP .wcs gives no orientation/parity; reporting 0 deg, normal parity")
        logger.info(f"Plate solve completed using ASTAP: {result}")
        return self._done(OutcomeKind.SUCCESS, result=result, source="local"), None

    def _try_remote(
        self,
        image_path: Path,
        cancel: CancellationToken,
        local_failure: Optional[OutcomeKind],
    ) -> SolveAttemptOutcome:
        self._enter(SolveState.TRYING_REMOTE_LOGIN)
        remote = self._remote
        try:
            if not self._api_key:
                raise MissingCredentials("no astrometry.net API key configured")
            cancel.raise_if_cancelled()
            session = remote.login(self._api_key)

            self._enter(SolveState.TRYING_REMOTE_UPLOAD)
            cancel.raise_if_cancelled()
            submission = remote.upload(session, image_path)

            self._enter(SolveState.POLLING_SUBMISSION)
            job = remote.wait_for_job(submission, cancel)

            self._enter(SolveState.POLLING_CALIBRATION)
            payload = remote.wait_for_calibration(job, cancel)
            result = normalize(payload)
        except MissingCredentials as e:
            logger.error(f"Cannot fall back to astrometry.net: {e}")
            return self._done(
                OutcomeKind.MISSING_CREDENTIALS, detail=str(e), local_failure=local_failure
            )
        except RemoteAuthFailed as e:
            logger.error(f"astrometry.net login failed: {e}")
            return self._done(
                OutcomeKind.REMOTE_AUTH_FAILED, detail=str(e), local_failure=local_failure
            )
        except RemoteUploadFailed as e:
            logger.error(f"astrometry.net upload failed: {e}")
            return self._done(
                OutcomeKind.REMOTE_UPLOAD_FAILED, detail=str(e), local_failure=local_failure
            )
        except RemoteTimedOut as e:
            logger.error(f"astrometry.net {e.stage} polling timed out: {e}")
            return self._done(
                OutcomeKind.REMOTE_TIMED_OUT,
                message=TIMEOUT_MESSAGES.get(e.stage, TIMEOUT_MESSAGES[STAGE_CALIBRATION]),
                detail=str(e),
                stage=e.stage,
                local_failure=local_failure,
            )
        except RemoteParseFailed as e:
            logger.error(f"astrometry.net calibration payload rejected: {e}")
            return self._done(
                OutcomeKind.REMOTE_PARSE_FAILED, detail=str(e), local_failure=local_failure
            )

        logger.info(f"Plate solve completed using astrometry.net: {result}")
        return self._done(
            OutcomeKind.SUCCESS, result=result, source="remote", local_failure=local_failure
        )
