"""Unit tests for address normalization, query cleaning and cache-key hashing."""

import hashlib

from facility_geocoder.lib.geocoder.address import (
    NormalizedAddress,
    clean_postal_code,
    clean_query_text,
    hash_normalized,
    join_address_parts,
    normalize_address,
    strip_diacritics,
)


class TestNormalizeAddress:
    """Tests for the strict normalization that feeds the cache key."""

    def test_lowercases_and_strips_diacritics(self) -> None:
        assert normalize_address("Rua São João, 45").value == "rua sao joao, 45"

    def test_collapses_whitespace(self) -> None:
        assert normalize_address("  Rua   Teste,    123  ").value == "rua teste, 123"

    def test_expands_dotted_abbreviation(self) -> None:
        assert normalize_address("R. Teste, 123").value == "rua teste, 123"
        assert normalize_address("Av. Paulista, 1000").value == "avenida paulista, 1000"

    def test_expands_leading_bare_abbreviation(self) -> None:
        assert normalize_address("Av Paulista, 1000").value == "avenida paulista, 1000"

    def test_state_code_pr_is_kept(self) -> None:
        """A bare "PR" is the state of Paraná, not "praça"."""
        assert normalize_address("Rua XV de Novembro, Curitiba, PR").value == "rua xv de novembro, curitiba, pr"

    def test_dotted_pr_is_expanded(self) -> None:
        assert normalize_address("Pr. da Sé, 1").value == "praca da se, 1"

    def test_drops_trailing_country(self) -> None:
        assert normalize_address("Rua Teste, 123, Brasil").value == "rua teste, 123"
        assert normalize_address("Rua Teste, 123 - Brazil.").value == "rua teste, 123"

    def test_keeps_country_inside_street_name(self) -> None:
        assert normalize_address("Avenida Brasil, 500").value == "avenida brasil, 500"
        assert normalize_address("Avenida Brasil").value == "avenida brasil"

    def test_country_only_is_empty(self) -> None:
        assert normalize_address("Brasil").value == ""
        assert normalize_address(", Brasil").value == ""

    def test_empty_input(self) -> None:
        assert normalize_address("").value == ""
        assert normalize_address("   ").value == ""

    def test_deterministic(self) -> None:
        text = "Av. Brig. Faria Lima, 3477 - Itaim Bibi, São Paulo - SP"
        assert normalize_address(text) == normalize_address(text)


class TestCacheKey:
    """Tests for the SHA-256 cache key derived from normalized text."""

    def test_key_is_sha256_of_normalized_value(self) -> None:
        normalized = normalize_address("Rua Teste, 123")
        expected = hashlib.sha256(b"rua teste, 123").hexdigest()
        assert normalized.cache_key == expected
        assert hash_normalized("rua teste, 123") == expected

    def test_key_is_64_hex_chars(self) -> None:
        key = normalize_address("Rua Teste, 123").cache_key
        assert len(key) == 64
        int(key, 16)

    def test_abbreviation_variants_share_key(self) -> None:
        assert normalize_address("Rua Teste, 123").cache_key == normalize_address("R. Teste, 123").cache_key

    def test_accent_case_and_country_variants_share_key(self) -> None:
        a = normalize_address("Avenida Paulista, 1000 - São Paulo, SP, Brasil")
        b = normalize_address("av. paulista,  1000 - SAO PAULO, SP")
        assert a.cache_key == b.cache_key

    def test_different_addresses_differ(self) -> None:
        assert normalize_address("Rua Teste, 123").cache_key != normalize_address("Rua Teste, 124").cache_key

    def test_str_returns_value(self) -> None:
        assert str(NormalizedAddress("rua a")) == "rua a"


class TestCleanQueryText:
    """Tests for the light cleaning applied to provider queries."""

    def test_preserves_case_and_accents(self) -> None:
        assert clean_query_text("Rua São João, 10") == "Rua São João, 10"

    def test_collapses_whitespace_and_commas(self) -> None:
        assert clean_query_text("  Rua  São João ,  10 ") == "Rua São João, 10"
        assert clean_query_text("Rua A,, , 10") == "Rua A, 10"

    def test_does_not_expand_abbreviations(self) -> None:
        assert clean_query_text("Av. Paulista") == "Av. Paulista"

    def test_composes_decomposed_unicode(self) -> None:
        decomposed = "Sa\u0303o Paulo"
        assert clean_query_text(decomposed) == "São Paulo"

    def test_none_and_blank(self) -> None:
        assert clean_query_text(None) == ""
        assert clean_query_text("  ,  ") == ""


class TestHelpers:
    """Tests for small address helpers."""

    def test_strip_diacritics(self) -> None:
        assert strip_diacritics("Goiânia, Paraná") == "Goiania, Parana"

    def test_clean_postal_code(self) -> None:
        assert clean_postal_code("01310-100") == "01310100"
        assert clean_postal_code(" 01.310-100 ") == "01310100"
        assert clean_postal_code(None) == ""

    def test_join_address_parts_skips_blanks(self) -> None:
        assert join_address_parts("Rua A", None, " ", "SP", country="Brasil") == "Rua A, SP, Brasil"

    def test_join_address_parts_no_country_when_empty(self) -> None:
        assert join_address_parts(None, "", country="Brasil") == ""

    def test_join_address_parts_without_country(self) -> None:
        assert join_address_parts("Rua A", "10") == "Rua A, 10"
