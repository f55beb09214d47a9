import math
from collections.abc import Mapping
from typing import Any, Union

from blindsolve.errors import DecodeError, RemoteParseFailed, WrongType
from .astrometry_net import require_field, require_number
from .types import CalibrationResult, LocalCalibration, Parity

_NORMAL_PARITY = {"pos", "positive", "normal"}
_FLIPPED_PARITY = {"neg", "negative", "flipped"}


def _decode_parity(payload: Mapping) -> Parity:
    value = require_field(payload, "parity", (str, int, float))
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _NORMAL_PARITY:
            return Parity.NORMAL
        if text in _FLIPPED_PARITY:
            return Parity.FLIPPED
        raise WrongType("parity", "pos/neg or a signed number", value)
    if not math.isfinite(value):
        raise WrongType("parity", "finite number", value)
    return Parity.FLIPPED if value < 0 else Parity.NORMAL


def normalize_remote(payload: Mapping[str, Any]) -> CalibrationResult:
    """Decode an astrometry.net ``jobs/<id>/calibration/`` payload.

    ``pixscale`` is already arcsec/pixel, so no unit conversion happens.
    """
    try:
        ra = require_number(payload, "ra")
        dec = require_number(payload, "dec")
        pixscale = require_number(payload, "pixscale")
        orientation = require_number(payload, "orientation")
        parity = _decode_parity(payload)
    except DecodeError as e:
        raise RemoteParseFailed(e) from e
    return CalibrationResult(
        ra_deg=ra,
        dec_deg=dec,
        pixel_scale_arcsec=pixscale,
        orientation_deg=orientation,
        parity=parity,
    )


def normalize_local(calibration: LocalCalibration) -> CalibrationResult:
    return CalibrationResult(
        ra_deg=calibration.ra_deg,
        dec_deg=calibration.dec_deg,
        pixel_scale_arcsec=calibration.pixel_scale_arcsec,
        orientation_deg=calibration.orientation_deg,
        parity=calibration.parity,
    )


def normalize(raw: Union[LocalCalibration, Mapping[str, Any]]) -> CalibrationResult:
    if isinstance(raw, LocalCalibration):
        return normalize_local(raw)
    if isinstance(raw, Mapping):
        return normalize_remote(raw)
    raise TypeError(f"cannot normalize {type(raw).__name__}")
