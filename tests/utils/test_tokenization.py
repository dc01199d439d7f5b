"""Tests for tiktoken loading and the whitespace fallback."""

import pytest

from lexflow.config import settings
from lexflow.utils import tokenization
from lexflow.utils.tokenization import get_encoding, truncate_to_tokens


@pytest.fixture(autouse=True)
def fresh_cache():
    get_encoding.cache_clear()
    yield
    get_encoding.cache_clear()


def broken_loader(name):
    raise OSError("network unreachable")


class TestWhitespaceFallback:
    def test_truncate_without_encoding(self):
        assert truncate_to_tokens("one two three four five", 3, None) == "one two three"

    def test_short_text_is_untouched(self):
        assert truncate_to_tokens("one two", 5, None) == "one two"


class TestEncodingLoad:
    def test_fallback_allowed(self, monkeypatch):
        monkeypatch.setattr(tokenization.tiktoken, "get_encoding", broken_loader)
        monkeypatch.setattr(settings, "allow_tiktoken_fallback", True)

        assert get_encoding() is None

    def test_fallback_refused(self, monkeypatch):
        monkeypatch.setattr(tokenization.tiktoken, "get_encoding", broken_loader)
        monkeypatch.setattr(settings, "allow_tiktoken_fallback", False)

        with pytest.raises(RuntimeError, match="ALLOW_TIKTOKEN_FALLBACK"):
            get_encoding()

    def test_encoding_is_used_when_present(self):
        class CharEncoding:
            def encode(self, text):
                return list(text)

            def decode(self, tokens):
                return "".join(tokens)

        encoding = CharEncoding()

        assert truncate_to_tokens("abcdef", 4, encoding) == "abcd"
