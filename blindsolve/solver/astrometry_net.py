"""Client for the astrometry.net web API (nova.astrometry.net or a local copy).

The protocol is four strictly ordered stages: login, upload, poll the
submission until a job is assigned, poll the job until its calibration is
ready. Each call is one HTTP request with a ``request-json`` form field.
"""

from __future__ import annotations

import json
import logging
import math
import socket
import uuid
from http.client import HTTPException
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode, urljoin, urlparse
from urllib.request import Request, urlopen

from blindsolve.errors import (
    DecodeError,
    MissingCredentials,
    MissingField,
    PollExhausted,
    RemoteAuthFailed,
    RemoteTimedOut,
    RemoteTransportError,
    RemoteUploadFailed,
    WrongType,
)
from .polling import CancellationToken, poll_until
from .types import JobHandle, RemoteSession, SubmissionHandle

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://nova.astrometry.net/api/"
DEFAULT_REQUEST_TIMEOUT_S = 15.0
DEFAULT_UPLOAD_TIMEOUT_S = 60.0
DEFAULT_POLL_INTERVAL_S = 10.0
DEFAULT_MAX_POLL_ATTEMPTS = 90

# Sent with every upload.
UPLOAD_POLICY = {
    "publicly_visible": "y",
    "allow_modifications": "d",
    "allow_commercial_use": "d",
}

STAGE_SUBMISSION = "submission"
STAGE_CALIBRATION = "calibration"


def normalize_api_url(base: str) -> str:
    base = (base or "").strip()
    if not base:
        raise ValueError("empty API URL")
    base = base.rstrip("/")
    if not base.lower().endswith("/api"):
        base = base + "/api"
    return base + "/"


def require_field(payload: Mapping[str, Any], name: str, kind: type | tuple) -> Any:
    """Return ``payload[name]`` if present and of the given JSON type."""
    if not isinstance(payload, Mapping):
        raise WrongType("<response>", "object", payload)
    if name not in payload or payload[name] is None:
        raise MissingField(name)
    value = payload[name]
    kinds = kind if isinstance(kind, tuple) else (kind,)
    if isinstance(value, bool) and bool not in kinds:
        raise WrongType(name, "/".join(k.__name__ for k in kinds), value)
    if not isinstance(value, kinds):
        raise WrongType(name, "/".join(k.__name__ for k in kinds), value)
    return value


def require_number(payload: Mapping[str, Any], name: str) -> float:
    value = float(require_field(payload, name, (int, float)))
    if not math.isfinite(value):
        raise WrongType(name, "finite number", value)
    return value


def _identifier(payload: Mapping[str, Any], name: str) -> str:
    value = require_field(payload, name, (int, str))
    text = str(value).strip()
    if not text:
        raise MissingField(name)
    return text


def _json_loads(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        preview = raw[:200].decode("utf-8", errors="replace")
        raise RemoteTransportError(f"invalid JSON response: {preview!r}") from e


def _encode_multipart(fields: dict[str, str], file_field: str, file_path: Path) -> tuple[bytes, str]:
    boundary = "----blindsolve" + uuid.uuid4().hex
    parts: list[bytes] = []
    for name, value in fields.items():
        parts.append(
            (
                f"--{boundary}\r\n"
                "Content-Type: text/plain\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            ).encode("utf-8")
        )
    parts.append(
        (
            f"--{boundary}\r\n"
            "Content-Type: application/octet-stream\r\n"
            f'Content-Disposition: form-data; name="{file_field}"; filename="{file_path.name}"\r\n\r\n'
        ).encode("utf-8")
    )
    parts.append(file_path.read_bytes())
    parts.append(f"\r\n--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


class AstrometryNetClient:
    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        *,
        request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
        upload_timeout_s: float = DEFAULT_UPLOAD_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ):
        self.api_url = normalize_api_url(api_url)
        self.request_timeout_s = request_timeout_s
        self.upload_timeout_s = upload_timeout_s
        self.poll_interval_s = poll_interval_s
        self.max_poll_attempts = max_poll_attempts

    def _url(self, service: str) -> str:
        return urljoin(self.api_url, service)

    def _send_request(
        self,
        service: str,
        *,
        args: Optional[dict[str, Any]] = None,
        file_path: Optional[Path] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        """One HTTP exchange. GET when there is nothing to send."""
        url = self._url(service)
        timeout_s = timeout_s if timeout_s is not None else self.request_timeout_s
        headers: dict[str, str] = {}
        data: Optional[bytes] = None
        if file_path is not None:
            try:
                data, content_type = _encode_multipart(
                    {"request-json": json.dumps(args or {})}, "file", Path(file_path)
                )
            except OSError as e:
                raise RemoteTransportError(f"unable to read file {file_path}: {e}") from e
            headers["Content-Type"] = content_type
        elif args is not None:
            data = urlencode({"request-json": json.dumps(args)}).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        request = Request(url=url, data=data, headers=headers)
        logger.debug(f"{'POST' if data is not None else 'GET'} {url}")
        try:
            with urlopen(request, timeout=timeout_s) as resp:
                body = resp.read()
        except HTTPError as e:
            raise RemoteTransportError(f"HTTP {e.code} {e.reason} - URL: {url}") from e
        except (URLError, HTTPException, socket.timeout, OSError) as e:
            raise RemoteTransportError(f"Network error calling {url}: {e}") from e
        payload = _json_loads(body)
        logger.debug(f"Raw JSON response from {service}: {payload}")
        return payload

    # --- protocol stages ------------------------------------------------------

    def login(self, api_key: str) -> RemoteSession:
        if not (api_key or "").strip():
            raise MissingCredentials("astrometry.net API key is empty")
        try:
            payload = self._send_request("login", args={"apikey": api_key})
        except RemoteTransportError as e:
            raise RemoteAuthFailed(f"login request failed: {e}") from e
        status = payload.get("status") if isinstance(payload, Mapping) else None
        if status != "success":
            message = payload.get("errormessage") if isinstance(payload, Mapping) else None
            raise RemoteAuthFailed(f"login failed: status={status!r} {message or ''}".strip())
        try:
            token = _identifier(payload, "session")
        except DecodeError as e:
            raise RemoteAuthFailed(f"login failed: {e}") from e
        logger.info("Login successful")
        return RemoteSession(token)

    def upload(self, session: RemoteSession, image_path: str | Path) -> SubmissionHandle:
        args = dict(UPLOAD_POLICY)
        args["session"] = session.token
        try:
            payload = self._send_request(
                "upload",
                args=args,
                file_path=Path(image_path),
                timeout_s=self.upload_timeout_s,
            )
        except RemoteTransportError as e:
            raise RemoteUploadFailed(f"upload request failed: {e}") from e
        status = payload.get("status") if isinstance(payload, Mapping) else None
        if status != "success":
            message = payload.get("errormessage") if isinstance(payload, Mapping) else None
            raise RemoteUploadFailed(f"upload failed: status={status!r} {message or ''}".strip())
        try:
            subid = _identifier(payload, "subid")
        except DecodeError as e:
            raise RemoteUploadFailed(f"upload failed: {e}") from e
        logger.info(f"Submission successful, subid: {subid}")
        return SubmissionHandle(subid)

    def fetch_job(self, submission: SubmissionHandle) -> Optional[JobHandle]:
        """One submission status request; None until a job is assigned."""
        payload = self._send_request(f"submissions/{submission.subid}")
        try:
            jobs = require_field(payload, "jobs", list)
        except DecodeError as e:
            logger.info(f"Submission {submission.subid} has no job list yet ({e})")
            return None
        for job in jobs:
            if job is not None:
                return JobHandle(str(job))
        return None

    def fetch_calibration(self, job: JobHandle) -> Optional[dict]:
        """One calibration request; None until the payload carries ``ra``."""
        payload = self._send_request(f"jobs/{job.job_id}/calibration/")
        try:
            require_number(payload, "ra")
        except DecodeError as e:
            logger.info(f"Calibration for job {job.job_id} not available yet ({e})")
            return None
        return dict(payload)

    def wait_for_job(
        self, submission: SubmissionHandle, cancel: Optional[CancellationToken] = None
    ) -> JobHandle:
        try:
            job = poll_until(
                lambda attempt: self.fetch_job(submission),
                interval_s=self.poll_interval_s,
                max_attempts=self.max_poll_attempts,
                cancel=cancel,
                retry_on=(RemoteTransportError,),
                describe=f"submission {submission.subid}",
            )
        except PollExhausted as e:
            raise RemoteTimedOut(STAGE_SUBMISSION, e.attempts) from e
        logger.info(f"Job ID found: {job.job_id}")
        return job

    def wait_for_calibration(
        self, job: JobHandle, cancel: Optional[CancellationToken] = None
    ) -> dict:
        try:
            payload = poll_until(
                lambda attempt: self.fetch_calibration(job),
                interval_s=self.poll_interval_s,
                max_attempts=self.max_poll_attempts,
                cancel=cancel,
                retry_on=(RemoteTransportError,),
                describe=f"job {job.job_id} calibration",
            )
        except PollExhausted as e:
            raise RemoteTimedOut(STAGE_CALIBRATION, e.attempts) from e
        logger.info("Calibration data retrieved successfully")
        return payload

    def is_available(self) -> dict:
        parsed = urlparse(self.api_url)
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        try:
            with socket.create_connection((parsed.hostname, port), timeout=2):
                return {"ok": True, "detail": f"{parsed.hostname}:{port} reachable"}
        except OSError:
            return {"ok": False, "detail": f"{parsed.hostname}:{port} not reachable"}
