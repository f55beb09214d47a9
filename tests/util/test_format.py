from blindsolve.util.format import deg_to_dms, deg_to_hms


def test_deg_to_hms_zero():
    assert deg_to_hms(0.0) == "00:00:00.00"


def test_deg_to_hms_wrap():
    # 360 degrees -> 24h -> wrapped to 00
    assert deg_to_hms(360.0) == "00:00:00.00"


def test_deg_to_hms_precision():
    # 15 degrees = 1 hour
    assert deg_to_hms(15.0, precision=1) == "01:00:00.0"


def test_deg_to_hms_orion():
    assert deg_to_hms(83.8221, precision=1) == "05:35:17.3"


def test_deg_to_hms_whole_seconds():
    assert deg_to_hms(83.8221, precision=0) == "05:35:17"


def test_deg_to_dms_positive():
    assert deg_to_dms(10.0) == "+10:00:00.00"


def test_deg_to_dms_negative():
    assert deg_to_dms(-10.0) == "-10:00:00.00"


def test_deg_to_hms_rounding_carry():
    # 23:59:59.96 with 1 decimal should round to 00:00:00.0
    seconds = (24 * 3600) - 0.04
    assert deg_to_hms(seconds / 240.0, precision=1) == "00:00:00.0"


def test_deg_to_dms_rounding_carry():
    # 41:59:59.999 rounds up to a whole degree
    assert deg_to_dms(42.0 - 0.001 / 3600.0, precision=2) == "+42:00:00.00"


def test_deg_to_dms_small_negative():
    assert deg_to_dms(-0.0001, precision=2).startswith("-00:00:")
