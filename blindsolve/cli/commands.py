import datetime
import json
import logging
import os
import sys
from pathlib import Path

from blindsolve.config import load_config
from blindsolve.sink import FitsWcsSink, LoggingSink
from blindsolve.solver import attempt_solve, get_local_solver, get_remote_client
from blindsolve.solver.types import OutcomeKind
from blindsolve.util.format import deg_to_dms, deg_to_hms

FITS_SUFFIXES = {".fits", ".fit", ".fts"}


def _json_envelope(command: str, ok: bool, data=None, error=None) -> dict:
    return {
        "ok": ok,
        "command": command,
        "timestamp_utc": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "data": data,
        "error": error,
    }


def _init_logging(level: str | None) -> None:
    if not level:
        return
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "error": logging.ERROR,
    }
    logging.basicConfig(level=level_map.get(level, logging.INFO))


def _config_path_from_args(args) -> Path | None:
    if args is None:
        return None
    path = getattr(args, "config", None)
    return Path(path) if path else None


def _load_config_from_args(args):
    config = load_config(_config_path_from_args(args))
    return config.with_overrides(
        api_key=getattr(args, "api_key", None),
        astap_executable=getattr(args, "astap", None),
    )


def run_doctor(args=None) -> int:
    _init_logging(getattr(args, "log_level", None))

    # TOMLDecodeError is a ValueError.
    try:
        config = _load_config_from_args(args)
        config_check = {"ok": True, "detail": "loaded (defaults applied if missing)"}
    except (OSError, ValueError) as e:
        config = None
        config_check = {"ok": False, "detail": f"invalid config: {e}"}

    def check_astap():
        local = get_local_solver(config)
        if local is None:
            return {"ok": True, "detail": "not configured (remote only)"}
        return local.is_available()

    def check_api_key():
        if config.astrometry_api_key:
            return {"ok": True, "detail": "configured"}
        return {"ok": False, "detail": "missing"}

    checks = {"config": config_check}
    if config is not None:
        checks["astap"] = check_astap()
        checks["astrometry_api_key"] = check_api_key()
        checks["astrometry_api"] = get_remote_client(config).is_available()

    ok = all(c["ok"] for c in checks.values())

    if args is not None and getattr(args, "json", False):
        payload = _json_envelope(
            command="doctor",
            ok=ok,
            data={"checks": checks},
            error=None
            if ok
            else {
                "code": "doctor_failed",
                "message": "one or more checks failed",
                "details": None,
            },
        )
        print(json.dumps(payload, indent=2))
    else:
        print("Blindsolve Doctor Report")
        print("========================")

        for name, result in checks.items():
            status = "OK" if result["ok"] else "MISSING"
            print(f"{name:20} : {status} ({result['detail']})")

        if ok:
            print("\nSystem ready.")
        else:
            print("\nSome components are missing or not configured.")

    return 0 if ok else 1


def run_solve(args) -> int:
    _init_logging(getattr(args, "log_level", None))
    try:
        config = _load_config_from_args(args)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 2

    image_path = args.input_image
    if not os.path.isfile(image_path):
        message = f"Input file not found: {image_path}"
        if getattr(args, "json", False):
            payload = _json_envelope(
                command="solve",
                ok=False,
                data=None,
                error={"code": "file_not_found", "message": message, "details": None},
            )
            print(json.dumps(payload, indent=2))
        else:
            print(message, file=sys.stderr)
        return 1

    outcome = attempt_solve(image_path, config)

    LoggingSink().accept(Path(image_path), outcome)
    if getattr(args, "write_wcs", False):
        if Path(image_path).suffix.lower() in FITS_SUFFIXES:
            FitsWcsSink().accept(Path(image_path), outcome)
        else:
            print("--write-wcs only applies to FITS images; header not written.", file=sys.stderr)

    if getattr(args, "json", False):
        if outcome.success:
            payload = _json_envelope(
                command="solve",
                ok=True,
                data=outcome.to_dict(),
                error=None,
            )
        else:
            details = outcome.to_dict() if getattr(args, "verbose", False) else None
            payload = _json_envelope(
                command="solve",
                ok=False,
                data=None,
                error={
                    "code": outcome.kind.value,
                    "message": outcome.message or "solve failed",
                    "details": details,
                },
            )
        print(json.dumps(payload, indent=2))
    else:
        print(f"Success: {outcome.success}")
        result = outcome.result
        if result is not None:
            print(f"Solver: {outcome.source}")
            print(f"RA: {deg_to_hms(result.ra_deg)} ({result.ra_deg:.6f}°)")
            print(f"Dec: {deg_to_dms(result.dec_deg)} ({result.dec_deg:.6f}°)")
            print(f"Pixel scale: {result.pixel_scale_arcsec:.4f}\"/px")
            print(f"Orientation: {result.orientation_deg:.3f}°")
            print(f"Parity: {result.parity.value}")
        else:
            print(f"Message: {outcome.message}")
            if getattr(args, "verbose", False) and outcome.detail:
                print(f"Detail: {outcome.detail}")
        if outcome.local_failure is not None:
            print(f"ASTAP: {outcome.local_failure.value} (fell back to astrometry.net)")

    if outcome.kind is OutcomeKind.MISSING_CREDENTIALS:
        return 2
    if not outcome.success:
        return 1
    return 0
