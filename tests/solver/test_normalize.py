import math

import pytest

from blindsolve.errors import MissingField, RemoteParseFailed, WrongType
from blindsolve.solver.normalize import normalize, normalize_local, normalize_remote
from blindsolve.solver.types import CalibrationResult, LocalCalibration, Parity

CALIBRATION = {
    "ra": 83.8221,
    "dec": -5.3911,
    "pixscale": 1.0234,
    "orientation": 179.62,
    "parity": 1.0,
    "radius": 0.5,
}


def test_normalize_remote_passes_values_through():
    result = normalize_remote(CALIBRATION)
    assert result == CalibrationResult(
        ra_deg=83.8221,
        dec_deg=-5.3911,
        pixel_scale_arcsec=1.0234,
        orientation_deg=179.62,
        parity=Parity.NORMAL,
    )


@pytest.mark.parametrize(
    "parity,expected",
    [
        (1.0, Parity.NORMAL),
        (0, Parity.NORMAL),
        (-1.0, Parity.FLIPPED),
        ("pos", Parity.NORMAL),
        ("NEG", Parity.FLIPPED),
        ("flipped", Parity.FLIPPED),
    ],
)
def test_parity_decoding(parity, expected):
    payload = dict(CALIBRATION, parity=parity)
    assert normalize_remote(payload).parity is expected


@pytest.mark.parametrize("field", ["ra", "dec", "pixscale", "orientation", "parity"])
def test_missing_field_is_parse_failure(field):
    payload = dict(CALIBRATION)
    del payload[field]
    with pytest.raises(RemoteParseFailed) as excinfo:
        normalize_remote(payload)
    assert isinstance(excinfo.value.reason, MissingField)
    assert excinfo.value.reason.field == field


@pytest.mark.parametrize(
    "field,value",
    [
        ("ra", "83.8"),
        ("dec", None),
        ("pixscale", float("nan")),
        ("orientation", [1]),
        ("parity", "sideways"),
        ("parity", True),
        ("parity", math.inf),
    ],
)
def test_wrong_type_is_parse_failure(field, value):
    payload = dict(CALIBRATION, **{field: value})
    with pytest.raises(RemoteParseFailed) as excinfo:
        normalize_remote(payload)
    assert isinstance(excinfo.value.reason, (MissingField, WrongType))


def test_normalize_local_keeps_defaults():
    local = LocalCalibration(ra_deg=10.0, dec_deg=20.0, pixel_scale_arcsec=1.5)
    result = normalize_local(local)
    assert result.orientation_deg == 0.0
    assert result.parity is Parity.NORMAL
    assert result.pixel_scale_arcsec == 1.5


def test_normalize_dispatches_on_input_type():
    local = LocalCalibration(ra_deg=10.0, dec_deg=20.0, pixel_scale_arcsec=1.5)
    assert normalize(local).ra_deg == 10.0
    assert normalize(CALIBRATION).ra_deg == 83.8221
    with pytest.raises(TypeError):
        normalize("CRVAL1 = 10")


def test_calibration_result_rejects_non_finite_values():
    with pytest.raises(ValueError):
        CalibrationResult(
            ra_deg=math.nan,
            dec_deg=0.0,
            pixel_scale_arcsec=1.0,
            orientation_deg=0.0,
            parity=Parity.NORMAL,
        )
