"""Tests for phone canonicalization and privacy id detection."""

import pytest

from app.core.phone import (
    canonicalize_phone,
    format_phone_for_display,
    phone_variants,
    same_line,
    strip_chat_id,
    trailing_match_length,
    validate_domestic_number,
)
from app.core.privacy_id import extract_embedded_phone, is_privacy_id, privacy_id_digits


class TestStripChatId:
    def test_strips_suffix_and_device(self):
        assert strip_chat_id("5511999998888@c.us") == "5511999998888"
        assert strip_chat_id("5511999998888:12@s.whatsapp.net") == "5511999998888"

    def test_strips_formatting(self):
        assert strip_chat_id("+55 (11) 99999-8888") == "5511999998888"

    def test_empty(self):
        assert strip_chat_id(None) == ""
        assert strip_chat_id("") == ""


class TestCanonicalizePhone:
    def test_full_domestic_number(self):
        phone = canonicalize_phone("5511999999999@c.us")
        assert phone.country_code == "55"
        assert phone.local_number == "11999999999"
        assert phone.full_number == "5511999999999"

    def test_local_domestic_number(self):
        phone = canonicalize_phone("11999998888")
        assert phone.country_code == "55"
        assert phone.local_number == "11999998888"
        assert phone.full_number == "5511999998888"

    def test_ten_digit_landline(self):
        phone = canonicalize_phone("1133334444")
        assert phone.local_number == "1133334444"
        assert phone.is_valid

    def test_three_digit_code_not_shadowed(self):
        phone = canonicalize_phone("351912345678")
        assert phone.country_code == "351"
        assert phone.local_number == "912345678"

    def test_one_digit_code(self):
        phone = canonicalize_phone("+1 (415) 555-2671")
        assert phone.country_code == "1"
        assert phone.local_number == "4155552671"

    def test_two_digit_code(self):
        phone = canonicalize_phone("4915112345678")
        assert phone.country_code == "49"
        assert phone.local_number == "15112345678"

    def test_unknown_code_keeps_last_ten_digits(self):
        phone = canonicalize_phone("999123456789012")
        assert phone.local_number == "3456789012"
        assert phone.country_code == "99912"


class TestValidateDomesticNumber:
    @pytest.mark.parametrize("number", ["11999998888", "2133334444", "8598765432"])
    def test_valid(self, number):
        assert validate_domestic_number(number)

    @pytest.mark.parametrize(
        "number",
        [
            "20999998888",  # area code not in service
            "11899998888",  # 9-digit subscriber not starting with 9
            "1199999999",   # all identical digits
            "119999",       # too short
        ],
    )
    def test_invalid(self, number):
        assert not validate_domestic_number(number)

    def test_invalid_number_still_canonicalizes(self):
        phone = canonicalize_phone("5511899998888")
        assert phone.local_number == "11899998888"
        assert not phone.is_valid


class TestPhoneVariants:
    def test_full_mobile_includes_legacy_forms(self):
        variants = phone_variants("5511999998888")
        assert "5511999998888" in variants
        assert "11999998888" in variants
        assert "1199998888" in variants
        assert "551199998888" in variants

    def test_ten_digit_includes_ninth_digit_form(self):
        variants = phone_variants("1199998888")
        assert "11999998888" in variants
        assert "5511999998888" in variants

    def test_no_duplicates(self):
        variants = phone_variants("11999998888")
        assert len(variants) == len(set(variants))


def test_format_phone_for_display():
    assert format_phone_for_display(canonicalize_phone("5511999998888")) == "(11) 99999-8888"
    assert format_phone_for_display(canonicalize_phone("1133334444")) == "(11) 3333-4444"
    assert format_phone_for_display(canonicalize_phone("351912345678")) == "+351 912345678"


def test_trailing_match_length():
    assert trailing_match_length("11999998888", "5511999998888") == 11
    assert trailing_match_length("123", "456") == 0


def test_same_line():
    assert same_line("5511988887777@c.us", "11988887777")
    assert not same_line("5511988887777", "5511999998888")
    assert not same_line(None, "5511999998888")


class TestPrivacyId:
    def test_lid_suffix(self):
        assert is_privacy_id("123456789012345@lid")

    def test_long_bare_digits(self):
        assert is_privacy_id("123456789012345678")

    def test_phone_chat_ids_are_not_privacy_ids(self):
        assert not is_privacy_id("5511999998888@c.us")
        assert not is_privacy_id("5511999998888")
        assert not is_privacy_id(None)

    def test_digits(self):
        assert privacy_id_digits("123456789012345@lid") == "123456789012345"

    def test_embedded_phone_from_serialized_sender(self):
        payload = {"from": "123456789012345@lid", "_data": {"from": {"_serialized": "5511999998888@c.us"}}}
        assert extract_embedded_phone(payload) == "5511999998888@c.us"

    def test_embedded_bare_digits(self):
        payload = {"_data": {"chatId": "5511999998888"}}
        assert extract_embedded_phone(payload) == "5511999998888"

    def test_no_embedded_phone(self):
        payload = {"from": "123456789012345@lid", "_data": {"from": "123456789012345@lid"}}
        assert extract_embedded_phone(payload) is None
