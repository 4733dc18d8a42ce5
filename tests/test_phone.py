from hypothesis import given, settings, strategies as st

from chatledger.services.phone import canonical_phone, phone_variants

digits = st.text(alphabet="0123456789", min_size=0, max_size=16)


class TestCanonicalPhone:
    def test_country_code_is_dropped(self):
        """A 13-digit Brazilian number loses its country code."""
        assert canonical_phone("5511987654321") == "11987654321"

    def test_legacy_mobile_gets_ninth_digit(self):
        """A 12-digit number without the mobile 9 maps to the same key."""
        assert canonical_phone("551187654321") == "11987654321"

    def test_formatting_is_ignored(self):
        assert canonical_phone("+55 (11) 98765-4321") == "11987654321"
        assert canonical_phone("whatsapp:+5511987654321") == "11987654321"

    def test_other_numbers_keep_their_digits(self):
        assert canonical_phone("+1 415 555 2671") == "14155552671"
        assert canonical_phone("") == ""
        assert canonical_phone(None) == ""

    @given(raw=digits)
    @settings(max_examples=100)
    def test_canonicalization_is_idempotent(self, raw: str):
        """Property: canonicalizing a key again never changes it."""
        key = canonical_phone(raw)
        assert canonical_phone(key) == key

    @given(
        area=st.integers(min_value=11, max_value=99),
        number=st.text(alphabet="0123456789", min_size=8, max_size=8),
    )
    @settings(max_examples=100)
    def test_both_mobile_shapes_share_a_key(self, area: int, number: str):
        """Property: with and without the mobile 9 the key is identical."""
        modern = canonical_phone(f"55{area}9{number}")
        legacy = canonical_phone(f"55{area}{number}")
        assert modern == legacy == f"{area}9{number}"


class TestPhoneVariants:
    def test_variants_cover_stored_shapes(self):
        assert phone_variants("11987654321") == [
            "11987654321",
            "5511987654321",
            "551187654321",
        ]

    def test_foreign_key_has_single_variant(self):
        assert phone_variants("4155552671") == ["4155552671"]

    @given(
        area=st.integers(min_value=11, max_value=99),
        number=st.text(alphabet="0123456789", min_size=8, max_size=8),
    )
    @settings(max_examples=100)
    def test_every_variant_canonicalizes_back(self, area: int, number: str):
        """Property: each stored shape maps back onto the lookup key."""
        key = f"{area}9{number}"
        assert {canonical_phone(variant) for variant in phone_variants(key)} == {key}
