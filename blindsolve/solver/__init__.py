from pathlib import Path
from typing import Optional

from .astap import AstapSolver
from .astrometry_net import AstrometryNetClient
from .orchestrator import SolveOrchestrator, SolveState
from .polling import CancellationToken
from .types import CalibrationResult, OutcomeKind, Parity, SolveAttemptOutcome


def get_local_solver(config) -> Optional[AstapSolver]:
    executable = config.astap_executable
    if not executable:
        return None
    return AstapSolver(
        executable,
        platform=config.platform,
        timeout_s=config.astap_timeout_s,
        artifact_wait_s=config.astap_artifact_wait_s,
        artifact_poll_s=config.astap_artifact_poll_s,
        search_radius_deg=config.astap_search_radius_deg,
        fov_deg=config.astap_fov_deg,
        downsample=config.astap_downsample,
    )


def get_remote_client(config) -> AstrometryNetClient:
    return AstrometryNetClient(
        config.astrometry_api_url,
        request_timeout_s=config.astrometry_request_timeout_s,
        upload_timeout_s=config.astrometry_upload_timeout_s,
        poll_interval_s=config.astrometry_poll_interval_s,
        max_poll_attempts=config.astrometry_max_poll_attempts,
    )


def get_orchestrator(config) -> SolveOrchestrator:
    return SolveOrchestrator(
        get_remote_client(config),
        local=get_local_solver(config),
        api_key=config.astrometry_api_key,
    )


def attempt_solve(
    image_path: str | Path, config, cancel: Optional[CancellationToken] = None
) -> SolveAttemptOutcome:
    return get_orchestrator(config).attempt_solve(image_path, cancel)


__all__ = [
    "AstapSolver",
    "AstrometryNetClient",
    "CalibrationResult",
    "CancellationToken",
    "OutcomeKind",
    "Parity",
    "SolveAttemptOutcome",
    "SolveOrchestrator",
    "SolveState",
    "attempt_solve",
    "get_local_solver",
    "get_orchestrator",
    "get_remote_client",
]
