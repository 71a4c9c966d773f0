import pytest

from app.utils.security import generate_link_token, validate_signature_url


def test_generate_link_token_is_unique_and_url_safe():
    tokens = {generate_link_token() for _ in range(50)}
    assert len(tokens) == 50
    for token in tokens:
        assert len(token) >= 43
        assert "/" not in token and "+" not in token


def test_validate_signature_url_accepts_https():
    url = "https://files.example.com/signatures/abc.png"
    assert validate_signature_url(url) == url
    assert validate_signature_url("  " + url + "  ") == url


def test_validate_signature_url_empty_is_none():
    assert validate_signature_url(None) is None
    assert validate_signature_url("   ") is None


@pytest.mark.parametrize(
    "url",
    [
        "http://files.example.com/sig.png",
        "javascript:alert(1)",
        "https:///no-host",
        "https://example.com/" + "a" * 1100,
    ],
)
def test_validate_signature_url_rejects(url):
    with pytest.raises(ValueError):
        validate_signature_url(url)
