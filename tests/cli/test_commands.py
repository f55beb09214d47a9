import json
from unittest.mock import patch

import pytest

from blindsolve.cli.main import main
from blindsolve.solver.types import (
    CalibrationResult,
    OutcomeKind,
    Parity,
    SolveAttemptOutcome,
)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[astrometry]\napi_key = "KEY"\n')
    return path


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "frame.jpg"
    path.write_bytes(b"\xff\xd8\xff")
    return path


def success_outcome():
    return SolveAttemptOutcome(
        kind=OutcomeKind.SUCCESS,
        result=CalibrationResult(
            ra_deg=83.8221,
            dec_deg=-5.3911,
            pixel_scale_arcsec=1.02,
            orientation_deg=179.5,
            parity=Parity.NORMAL,
        ),
        source="remote",
        local_failure=OutcomeKind.LOCAL_UNAVAILABLE,
    )


def test_version(capsys):
    assert main(["--version"]) == 0
    assert capsys.readouterr().out.startswith("blindsolve ")


def test_solve_json_success(capsys, config_file, image):
    with patch("blindsolve.cli.commands.attempt_solve", return_value=success_outcome()) as mock_solve:
        code = main(["solve", "--in", str(image), "--config", str(config_file), "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is True
    assert payload["command"] == "solve"
    assert payload["data"]["result"]["ra_deg"] == 83.8221
    assert payload["data"]["local_failure"] == "local_unavailable"
    config = mock_solve.call_args[0][1]
    assert config.astrometry_api_key == "KEY"


def test_solve_text_output(capsys, config_file, image):
    with patch("blindsolve.cli.commands.attempt_solve", return_value=success_outcome()):
        code = main(["solve", "--in", str(image), "--config", str(config_file)])
    out = capsys.readouterr().out
    assert code == 0
    assert "RA: 05:35:17.30" in out
    assert "Parity: normal" in out
    assert "fell back to astrometry.net" in out


def test_solve_missing_credentials_exit_code(capsys, tmp_path, image):
    config_path = tmp_path / "empty.toml"
    config_path.write_text("")
    outcome = SolveAttemptOutcome(
        kind=OutcomeKind.MISSING_CREDENTIALS, message="API key is required."
    )
    with patch("blindsolve.cli.commands.attempt_solve", return_value=outcome):
        code = main(["solve", "--in", str(image), "--config", str(config_path), "--json"])
    assert code == 2
    payload = json.loads(capsys.readouterr().out)
    assert payload["error"]["code"] == "missing_credentials"
    assert payload["error"]["message"] == "API key is required."


def test_solve_api_key_flag_overrides_config(config_file, image):
    with patch("blindsolve.cli.commands.attempt_solve", return_value=success_outcome()) as mock_solve:
        main(["solve", "--in", str(image), "--config", str(config_file), "--api-key", "OTHER"])
    assert mock_solve.call_args[0][1].astrometry_api_key == "OTHER"


def test_solve_missing_input(capsys, config_file, tmp_path):
    code = main(["solve", "--in", str(tmp_path / "nope.fits"), "--config", str(config_file), "--json"])
    assert code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["error"]["code"] == "file_not_found"


def test_solve_missing_config(tmp_path, image):
    assert main(["solve", "--in", str(image), "--config", str(tmp_path / "nope.toml")]) == 2


def test_doctor_json_reports_checks(capsys, config_file):
    with patch(
        "blindsolve.solver.astrometry_net.AstrometryNetClient.is_available",
        return_value={"ok": True, "detail": "reachable"},
    ):
        code = main(["doctor", "--config", str(config_file), "--json"])
    payload = json.loads(capsys.readouterr().out)
    checks = payload["data"]["checks"]
    assert code == 0
    assert checks["astap"]["detail"] == "not configured (remote only)"
    assert checks["astrometry_api_key"]["ok"] is True
    assert checks["astrometry_api"]["ok"] is True
