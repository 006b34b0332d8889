import pytest

from clipboard_sync.id_utils import (
    ALPHABET,
    DEFAULT_CODE_LENGTH,
    DEFAULT_TOKEN_LENGTH,
    build_share_link,
    derive_secret,
    generate_link_token,
    generate_session_code,
    is_valid_identifier,
    parse_link_token,
)


class TestGenerateIdentifiers:
    def test_code_default_length(self):
        assert len(generate_session_code()) == DEFAULT_CODE_LENGTH == 5

    def test_token_default_length(self):
        assert len(generate_link_token()) == DEFAULT_TOKEN_LENGTH == 16

    def test_alphabet(self):
        token = generate_link_token(200)
        assert set(token) <= set(ALPHABET)

    def test_custom_length(self):
        assert len(generate_session_code(8)) == 8

    def test_zero_length_raises(self):
        with pytest.raises(ValueError):
            generate_session_code(0)

    def test_tokens_vary(self):
        assert len({generate_link_token() for _ in range(50)}) == 50


class TestIsValidIdentifier:
    def test_generated_code(self):
        assert is_valid_identifier(generate_session_code(), DEFAULT_CODE_LENGTH)

    def test_wrong_length(self):
        assert not is_valid_identifier("AB12", 5)

    def test_bad_characters(self):
        assert not is_valid_identifier("AB-12")

    def test_non_string(self):
        assert not is_valid_identifier(12345)
        assert not is_valid_identifier("")


class TestDeriveSecret:
    def test_joins_code_and_token(self):
        assert derive_secret("AB12C", "Q1W2E3R4T5Y6U7I8") == "AB12C:Q1W2E3R4T5Y6U7I8"


class TestShareLinks:
    def test_build(self):
        assert build_share_link("https://clip.example/", "tok") == "https://clip.example/join/tok"

    def test_parse_full_link(self):
        assert parse_link_token("https://clip.example/join/Q1W2E3R4T5Y6U7I8") == "Q1W2E3R4T5Y6U7I8"

    def test_parse_bare_token(self):
        assert parse_link_token("  Q1W2E3R4T5Y6U7I8 ") == "Q1W2E3R4T5Y6U7I8"

    def test_parse_strips_query_and_fragment(self):
        assert parse_link_token("https://clip.example/join/abc?utm=x") == "abc"
        assert parse_link_token("/join/abc#frag") == "abc"

    def test_parse_trailing_slash(self):
        assert parse_link_token("https://clip.example/join/abc/") == "abc"

    def test_parse_empty_raises(self):
        with pytest.raises(ValueError):
            parse_link_token("   ")

    def test_round_trip_with_build(self):
        token = generate_link_token()
        assert parse_link_token(build_share_link("http://localhost:4000", token)) == token
