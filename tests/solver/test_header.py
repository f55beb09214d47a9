import math

import pytest

from blindsolve.errors import HeaderParseError, MissingRequiredField
from blindsolve.solver.header import (
    derive_calibration,
    parse_card,
    parse_header_block,
    parse_number,
)
from blindsolve.solver.types import Parity


def card(text: str) -> str:
    assert len(text) <= 80
    return text.ljust(80)


def value_card(key: str, value: str, comment: str | None = None) -> str:
    text = f"{key:<8}= {value:>20}"
    if comment:
        text += f" / {comment}"
    return card(text)


def wcs_blob(**values) -> str:
    cards = [value_card("SIMPLE", "T")]
    for key, value in values.items():
        cards.append(value_card(key, value, "some comment"))
    cards.append(card("END"))
    return "".join(cards)


def test_parse_card_value_and_comment():
    parsed = parse_card(value_card("CRVAL1", "10.0", "RA of reference"))
    assert parsed.key == "CRVAL1"
    assert parsed.value == "10.0"
    assert parsed.comment == "RA of reference"


def test_parse_card_strips_quotes_and_keeps_slash_in_string():
    parsed = parse_card(card("CTYPE1  = 'RA---TAN'           / first axis"))
    assert parsed.value == "RA---TAN"
    parsed = parse_card(card("DATE-OBS= '2024/01/02'         / date"))
    assert parsed.value == "2024/01/02"
    assert parsed.comment == "date"


def test_parse_card_without_value_indicator_is_skipped():
    assert parse_card(card("COMMENT solved by ASTAP")) is None
    assert parse_card(card("OBJECT   = 'M31'")) is None


def test_parse_block_stops_at_end_and_skips_unparsable_cards():
    blob = "".join(
        [
            value_card("CRVAL1", "10.0"),
            card("COMMENT 7 stars, 3 quads"),
            value_card("crval2", "20.0"),
            card("END"),
            value_card("CD1_1", "1.0"),
        ]
    )
    block = parse_header_block(blob)
    assert block["CRVAL1"] == "10.0"
    assert block["CRVAL2"] == "20.0"
    assert "CD1_1" not in block
    assert len(block.cards) == 2


def test_last_occurrence_wins():
    blob = value_card("CRVAL1", "1.0") + value_card("CRVAL1", "2.0") + card("END")
    assert parse_header_block(blob)["CRVAL1"] == "2.0"


def test_parse_block_accepts_bytes_and_newline_separated_cards():
    text = "\n".join(
        [
            "CRVAL1  =                 10.0 / ra",
            "CRVAL2  =                 20.0 / dec",
            "END",
        ]
    )
    block = parse_header_block(text.encode("ascii"))
    assert block["CRVAL1"] == "10.0"
    assert block["CRVAL2"] == "20.0"


def test_garbage_after_end_does_not_change_result():
    blob = wcs_blob(CRVAL1="10.0", CRVAL2="20.0", CD1_1="-0.0002", CD1_2="0.0001")
    base = parse_header_block(blob)
    for garbage in ["x" * 37, value_card("CRVAL1", "99.0"), "\x00" * 160, "=" * 80]:
        extended = parse_header_block(blob + garbage)
        assert extended.values == base.values


@pytest.mark.parametrize(
    "garbage",
    ["x" * 100, "CRVAL2  =                 99.0", value_card("CD1_1", "1.0") * 2, "\x00" * 81],
)
def test_garbage_after_end_does_not_change_line_mode_result(garbage):
    text = "CRVAL1  = 10.0 / ra\nCRVAL2  = 20.0 / dec\nEND"
    base = parse_header_block(text)
    assert base.values == {"CRVAL1": "10.0", "CRVAL2": "20.0"}
    assert parse_header_block(text + "\n" + garbage).values == base.values


def test_flat_stream_with_trailing_line_is_still_sliced():
    blob = value_card("CRVAL1", "10.0") + value_card("CRVAL2", "20.0") + card("END")
    block = parse_header_block(blob + "\n" + "y" * 20)
    assert block.values == {"CRVAL1": "10.0", "CRVAL2": "20.0"}


def test_overflowing_cd_matrix_is_rejected():
    blob = wcs_blob(CRVAL1="10.0", CRVAL2="20.0", CD1_1="1e306", CD1_2="1e306")
    with pytest.raises(HeaderParseError):
        derive_calibration(parse_header_block(blob))


@pytest.mark.parametrize(
    "cd1_1,cd1_2",
    [(-0.0002, 0.0001), (0.000277, 0.0), (0.0, -0.001), (1.5e-4, 2.5e-4)],
)
def test_pixel_scale_from_cd_matrix(cd1_1, cd1_2):
    blob = wcs_blob(
        CRVAL1="10.0", CRVAL2="-20.0", CD1_1=repr(cd1_1), CD1_2=repr(cd1_2)
    )
    calibration = derive_calibration(parse_header_block(blob))
    assert calibration.ra_deg == 10.0
    assert calibration.dec_deg == -20.0
    expected = 3600.0 * math.sqrt(cd1_1**2 + cd1_2**2)
    assert calibration.pixel_scale_arcsec == pytest.approx(expected, rel=1e-12)


def test_orientation_and_parity_are_defaults():
    blob = wcs_blob(CRVAL1="10.0", CRVAL2="20.0", CD1_1="-0.0002", CD1_2="0.0001")
    calibration = derive_calibration(parse_header_block(blob))
    assert calibration.orientation_deg == 0.0
    assert calibration.parity is Parity.NORMAL
    assert calibration.orientation_is_default is True


@pytest.mark.parametrize(
    "values,missing",
    [
        ({"CRVAL2": "20", "CD1_1": "1e-4", "CD1_2": "0"}, "CRVAL1"),
        ({"CRVAL1": "10", "CD1_1": "1e-4", "CD1_2": "0"}, "CRVAL2"),
        ({"CRVAL1": "10", "CRVAL2": "20", "CD1_2": "0"}, "CD1_1"),
        ({"CRVAL1": "10", "CRVAL2": "20", "CD1_1": "1e-4"}, "CD1_2"),
        ({"CD1_1": "1e-4"}, "CRVAL1"),
        ({"CRVAL1": "10", "CRVAL2": "'north'", "CD1_1": "1e-4", "CD1_2": "0"}, "CRVAL2"),
    ],
)
def test_missing_required_field_names_first_missing_key(values, missing):
    block = parse_header_block(wcs_blob(**values))
    with pytest.raises(MissingRequiredField) as excinfo:
        derive_calibration(block)
    assert excinfo.value.key == missing


def test_parse_number_accepts_fits_d_exponent():
    assert parse_number("1.5D-04") == pytest.approx(1.5e-4)
    assert parse_number("nan") is None
    assert parse_number("T") is None
    assert parse_number(None) is None
