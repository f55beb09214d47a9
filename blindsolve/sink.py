"""Where a finished solve attempt goes.

The FITS sink writes a TAN WCS built from the calibration into the image's
primary header and then hands the image to an optional refinement step.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Callable, Optional, Protocol

from astropy.io import fits

from blindsolve.solver.types import CalibrationResult, Parity, SolveAttemptOutcome

logger = logging.getLogger(__name__)

RefineHook = Callable[[Path, CalibrationResult], None]


class ResultSink(Protocol):
    def accept(self, image_path: Path, outcome: SolveAttemptOutcome) -> None:
        ...


def calibration_to_header(
    result: CalibrationResult, width_px: int, height_px: int
) -> fits.Header:
    """CD-matrix TAN header centred on the image.

    Orientation is degrees east of north; FLIPPED parity mirrors the x axis.
    """
    scale_deg = result.pixel_scale_arcsec / 3600.0
    theta = math.radians(result.orientation_deg)
    cd1_1 = -scale_deg * math.cos(theta)
    cd1_2 = scale_deg * math.sin(theta)
    cd2_1 = -scale_deg * math.sin(theta)
    cd2_2 = -scale_deg * math.cos(theta)
    if result.parity is Parity.FLIPPED:
        cd1_1, cd2_1 = -cd1_1, -cd2_1

    header = fits.Header()
    header["WCSAXES"] = (2, "Number of WCS axes")
    header["CTYPE1"] = ("RA---TAN", "Coordinate type for axis 1")
    header["CTYPE2"] = ("DEC--TAN", "Coordinate type for axis 2")
    header["CRVAL1"] = (result.ra_deg, "Reference value for axis 1")
    header["CRVAL2"] = (result.dec_deg, "Reference value for axis 2")
    header["CRPIX1"] = (width_px / 2 + 0.5, "Reference pixel for axis 1")
    header["CRPIX2"] = (height_px / 2 + 0.5, "Reference pixel for axis 2")
    header["CD1_1"] = (cd1_1, "Transformation matrix element 1_1")
    header["CD1_2"] = (cd1_2, "Transformation matrix element 1_2")
    header["CD2_1"] = (cd2_1, "Transformation matrix element 2_1")
    header["CD2_2"] = (cd2_2, "Transformation matrix element 2_2")
    header["RADESYS"] = ("ICRS", "Coordinate reference system")
    return header


class LoggingSink:
    def accept(self, image_path: Path, outcome: SolveAttemptOutcome) -> None:
        if outcome.success:
            logger.info(f"{Path(image_path).name}: solved via {outcome.source}: {outcome.result}")
        else:
            logger.warning(
                f"{Path(image_path).name}: {outcome.message} ({outcome.kind.value}; {outcome.detail})"
            )


class FitsWcsSink:
    def __init__(self, refine: Optional[RefineHook] = None, backend_label: str = "blindsolve"):
        self.refine = refine
        self.backend_label = backend_label

    def accept(self, image_path: Path, outcome: SolveAttemptOutcome) -> None:
        image_path = Path(image_path)
        if not outcome.success or outcome.result is None:
            logger.warning(f"Not writing WCS to {image_path.name}: {outcome.message}")
            return

        with fits.open(image_path, mode="update", memmap=False) as hdul:
            hdr = hdul[0].header
            width = int(hdr.get("NAXIS1", 0))
            height = int(hdr.get("NAXIS2", 0))
            for card in calibration_to_header(outcome.result, width, height).cards:
                hdr[card.keyword] = (card.value, card.comment)
            hdr["PLTSOLVD"] = (True, "Plate solved")
            hdr["SOLVER"] = (f"{self.backend_label}/{outcome.source}", "WCS backend")
            hdul.flush()
        logger.info(f"Astrometric solution written to {image_path}")

        if self.refine is not None:
            self.refine(image_path, outcome.result)
