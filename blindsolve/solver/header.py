"""Fixed-width FITS-style header cards, as written by ASTAP's ``-wcs`` output.

Only the subset needed to recover a calibration is handled here: key/value
cards, ``/`` comments, quoted strings and the ``END`` sentinel. This is not a
general FITS header reader; astropy covers that when a full header is needed.
"""

import logging
import math
from typing import Iterator, List, Optional, Tuple, Union

from blindsolve.errors import HeaderParseError, MissingRequiredField
from .types import HeaderBlock, HeaderCard, LocalCalibration

logger = logging.getLogger(__name__)

CARD_LENGTH = 80
KEY_LENGTH = 8
VALUE_INDICATOR_COLUMN = 8
END_SENTINEL = "END"
REQUIRED_KEYS = ("CRVAL1", "CRVAL2", "CD1_1", "CD1_2")


def _iter_card_slices(text: str) -> Iterator[str]:
    # Only lines up to END decide the layout; whatever follows is ignored.
    head = []
    for line in text.splitlines():
        head.append(line)
        if line.strip().startswith(END_SENTINEL):
            break
    if len(head) > 1 and all(len(line) <= CARD_LENGTH for line in head):
        yield from head
        return
    flat = text.replace("\r", "").replace("\n", "")
    for start in range(0, len(flat), CARD_LENGTH):
        yield flat[start:start + CARD_LENGTH]


def _split_value_comment(raw: str) -> Tuple[str, Optional[str]]:
    # A '/' inside a quoted string is part of the value.
    quote = None
    for i, ch in enumerate(raw):
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "/":
            comment = raw[i + 1:].strip()
            return raw[:i], comment or None
    return raw, None


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1].rstrip()
    return value


def parse_card(card: str) -> Optional[HeaderCard]:
    """Parse one card, or return None when it is not a ``KEY = value`` card."""
    if len(card) <= VALUE_INDICATOR_COLUMN or card[VALUE_INDICATOR_COLUMN] != "=":
        return None
    key = card[:KEY_LENGTH].strip().upper()
    if not key:
        return None
    raw_value, comment = _split_value_comment(card[VALUE_INDICATOR_COLUMN + 1:])
    value = _strip_quotes(raw_value.strip())
    return HeaderCard(key=key, value=value, comment=comment)


def parse_header_block(blob: Union[str, bytes]) -> HeaderBlock:
    if isinstance(blob, bytes):
        text = blob.decode("ascii", errors="replace")
    else:
        text = blob

    cards: List[HeaderCard] = []
    values = {}
    skipped = 0
    for raw in _iter_card_slices(text):
        stripped = raw.strip()
        if not stripped:
            continue
        if stripped.startswith(END_SENTINEL):
            break
        card = parse_card(raw.rstrip())
        if card is None:
            skipped += 1
            continue
        cards.append(card)
        values[card.key] = card.value

    logger.debug("Parsed %d header cards (%d skipped)", len(cards), skipped)
    return HeaderBlock(cards=tuple(cards), values=values)


def parse_number(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    text = value.strip().upper().replace("D", "E")
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def derive_calibration(block: HeaderBlock) -> LocalCalibration:
    """Compute RA, Dec and pixel scale from a parsed block.

    Orientation and parity cannot be recovered from this header form and
    are reported as 0 degrees and normal parity.
    """
    numbers = {}
    for key in REQUIRED_KEYS:
        number = parse_number(block.get(key))
        if number is None:
            raise MissingRequiredField(key)
        numbers[key] = number

    scale_arcsec = math.hypot(numbers["CD1_1"], numbers["CD1_2"]) * 3600.0
    if not math.isfinite(scale_arcsec):
        raise HeaderParseError(
            f"pixel scale from CD1_1={numbers['CD1_1']!r}, CD1_2={numbers['CD1_2']!r} is not finite"
        )
    return LocalCalibration(
        ra_deg=numbers["CRVAL1"],
        dec_deg=numbers["CRVAL2"],
        pixel_scale_arcsec=scale_arcsec,
    )
