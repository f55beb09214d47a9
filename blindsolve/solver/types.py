import enum
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


class Parity(enum.Enum):
    NORMAL = "normal"
    FLIPPED = "flipped"


@dataclass(frozen=True)
class CalibrationResult:
    ra_deg: float
    dec_deg: float
    pixel_scale_arcsec: float  # arcsec per pixel
    orientation_deg: float
    parity: Parity

    def __post_init__(self):
        for name in ("ra_deg", "dec_deg", "pixel_scale_arcsec", "orientation_deg"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value!r}")
        if not isinstance(self.parity, Parity):
            raise ValueError(f"parity must be a Parity, got {self.parity!r}")

    def to_dict(self) -> dict:
        return {
            "ra_deg": self.ra_deg,
            "dec_deg": self.dec_deg,
            "pixel_scale_arcsec": self.pixel_scale_arcsec,
            "orientation_deg": self.orientation_deg,
            "parity": self.parity.value,
        }


@dataclass(frozen=True)
class HeaderCard:
    key: str
    value: str
    comment: Optional[str] = None


@dataclass(frozen=True)
class HeaderBlock:
    cards: Tuple[HeaderCard, ...] = ()
    values: Dict[str, str] = field(default_factory=dict)

    def __contains__(self, key: str) -> bool:
        return key.upper() in self.values

    def __getitem__(self, key: str) -> str:
        return self.values[key.upper()]

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key.upper(), default)

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class LocalCalibration:
    """Calibration fields derived from an ASTAP .wcs header."""

    ra_deg: float
    dec_deg: float
    pixel_scale_arcsec: float
    orientation_deg: float = 0.0
    parity: Parity = Parity.NORMAL
    # The .wcs form handled here never yields orientation or parity.
    orientation_is_default: bool = True


@dataclass(frozen=True)
class RemoteSession:
    token: str


@dataclass(frozen=True)
class SubmissionHandle:
    subid: str


@dataclass(frozen=True)
class JobHandle:
    job_id: str


class OutcomeKind(enum.Enum):
    SUCCESS = "success"
    LOCAL_UNAVAILABLE = "local_unavailable"
    LOCAL_TIMED_OUT = "local_timed_out"
    LOCAL_SOLVE_FAILED = "local_solve_failed"
    LOCAL_PARSE_FAILED = "local_parse_failed"
    MISSING_CREDENTIALS = "missing_credentials"
    REMOTE_AUTH_FAILED = "remote_auth_failed"
    REMOTE_UPLOAD_FAILED = "remote_upload_failed"
    REMOTE_TIMED_OUT = "remote_timed_out"
    REMOTE_PARSE_FAILED = "remote_parse_failed"
    CANCELLED = "cancelled"


@dataclass
class SolveAttemptOutcome:
    kind: OutcomeKind
    result: Optional[CalibrationResult] = None
    source: Optional[str] = None
    message: Optional[str] = None
    detail: Optional[str] = None
    stage: Optional[str] = None
    local_failure: Optional[OutcomeKind] = None
    states: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "result": self.result.to_dict() if self.result is not None else None,
            "source": self.source,
            "message": self.message,
            "detail": self.detail,
            "stage": self.stage,
            "local_failure": self.local_failure.value if self.local_failure else None,
            "states": list(self.states),
        }
