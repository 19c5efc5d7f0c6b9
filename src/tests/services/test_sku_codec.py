"""
Tests for the SKU codec.

Tests cover:
- encode() field width, character and version validation
- decode() pattern matching
- increment_version() including the V99 limit
- Helper functions (base SKU, same product, version string)
"""

import pytest

from src.services import sku_codec
from src.services.exceptions import (
    InvalidFieldLength,
    MalformedSKU,
    SKUError,
    VersionLimitReached,
    VersionOutOfRange,
)


class TestEncode:
    def test_encode_builds_fixed_format(self):
        assert sku_codec.encode("TPC", "PUMP", "A01", 1) == "TPC-PUMP-A01-V01"

    def test_encode_pads_version(self):
        assert sku_codec.encode("TPC", "MOTR", "M07", 12) == "TPC-MOTR-M07-V12"

    @pytest.mark.parametrize(
        "prefix,category,code,field",
        [
            ("TP", "PUMP", "A01", "prefix"),
            ("TPCX", "PUMP", "A01", "prefix"),
            ("TPC", "PMP", "A01", "category"),
            ("TPC", "PUMPS", "A01", "category"),
            ("TPC", "PUMP", "A1", "code"),
            ("TPC", "PUMP", "A001", "code"),
        ],
    )
    def test_encode_rejects_wrong_width(self, prefix, category, code, field):
        with pytest.raises(InvalidFieldLength) as exc_info:
            sku_codec.encode(prefix, category, code, 1)
        assert exc_info.value.field == field

    def test_encode_rejects_lowercase(self):
        with pytest.raises(MalformedSKU):
            sku_codec.encode("tpc", "PUMP", "A01", 1)

    def test_encode_rejects_digits_in_category(self):
        with pytest.raises(MalformedSKU):
            sku_codec.encode("TPC", "PUM1", "A01", 1)

    @pytest.mark.parametrize("version", [0, 100, -1])
    def test_encode_rejects_version_out_of_range(self, version):
        with pytest.raises(VersionOutOfRange):
            sku_codec.encode("TPC", "PUMP", "A01", version)

    def test_encode_rejects_non_integer_version(self):
        with pytest.raises(VersionOutOfRange):
            sku_codec.encode("TPC", "PUMP", "A01", "1")

    def test_encode_rejects_none_field(self):
        with pytest.raises(InvalidFieldLength):
            sku_codec.encode("TPC", None, "A01", 1)

    def test_encode_rejects_trailing_newline_in_field(self):
        with pytest.raises(MalformedSKU):
            sku_codec.encode("TPC", "PUMP", "A0\n", 1)


class TestDecode:
    def test_decode_returns_parts(self):
        parts = sku_codec.decode("TPC-RADI-R02-V03")
        assert parts == sku_codec.SKUParts("TPC", "RADI", "R02", 3)
        assert parts.version == 3

    def test_decode_inverts_encode(self):
        for args in [("TPC", "PUMP", "A01", 1), ("ABC", "CLNT", "9Z9", 99), ("XYZ", "KITS", "K10", 42)]:
            assert tuple(sku_codec.decode(sku_codec.encode(*args))) == args

    @pytest.mark.parametrize(
        "sku",
        [
            "",
            "TPC-PUMP-A01",
            "TPC-PUMP-A01-01",
            "TPC-PUMP-A01-V1",
            "TPC_PUMP_A01_V01",
            "tpc-pump-a01-v01",
            "TPC-PUMP-A01-V01-X",
            " TPC-PUMP-A01-V01",
            "TPC-PUMP-A01-V01\n",
            "TPC-PUMP-A01-V\u0661\u0662",
        ],
    )
    def test_decode_rejects_malformed(self, sku):
        with pytest.raises(MalformedSKU):
            sku_codec.decode(sku)

    def test_decode_rejects_version_zero(self):
        with pytest.raises(MalformedSKU):
            sku_codec.decode("TPC-PUMP-A01-V00")

    def test_decode_rejects_non_string(self):
        with pytest.raises(MalformedSKU):
            sku_codec.decode(None)


class TestIncrementVersion:
    def test_increment_bumps_only_version(self):
        assert sku_codec.increment_version("TPC-PUMP-A01-V01") == "TPC-PUMP-A01-V02"

    def test_increment_crosses_ten(self):
        assert sku_codec.increment_version("TPC-PUMP-A01-V09") == "TPC-PUMP-A01-V10"

    def test_increment_at_limit_raises(self):
        with pytest.raises(VersionLimitReached) as exc_info:
            sku_codec.increment_version("TPC-PUMP-A01-V99")
        assert exc_info.value.sku == "TPC-PUMP-A01-V99"

    def test_increment_malformed_raises(self):
        with pytest.raises(MalformedSKU):
            sku_codec.increment_version("not-a-sku")

    def test_all_sku_errors_share_base(self):
        with pytest.raises(SKUError):
            sku_codec.increment_version("TPC-PUMP-A01-V99")


class TestHelpers:
    def test_get_base_sku(self):
        assert sku_codec.get_base_sku("TPC-PUMP-A01-V07") == "TPC-PUMP-A01"

    def test_is_same_product(self):
        assert sku_codec.is_same_product("TPC-PUMP-A01-V01", "TPC-PUMP-A01-V05")
        assert not sku_codec.is_same_product("TPC-PUMP-A01-V01", "TPC-PUMP-A02-V01")

    def test_is_same_product_false_on_malformed(self):
        assert not sku_codec.is_same_product("TPC-PUMP-A01-V01", "garbage")

    def test_is_valid_sku(self):
        assert sku_codec.is_valid_sku("TPC-PUMP-A01-V01")
        assert not sku_codec.is_valid_sku("TPC-PUMP-A01-V00")

    def test_version_string_and_number(self):
        assert sku_codec.get_version_string("TPC-PUMP-A01-V04") == "V04"
        assert sku_codec.get_version_number("TPC-PUMP-A01-V04") == 4

    def test_format_version(self):
        assert sku_codec.format_version(7) == "V07"
