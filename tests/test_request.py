from urllib.parse import parse_qsl, urlsplit

import pytest

from ndstream.config import StreamConfig
from ndstream.request import ConfigError, build_request


def test_plain_url_is_trimmed() -> None:
    request = build_request(StreamConfig(url="  http://h/stream  "))
    assert request.url == "http://h/stream"
    assert request.headers == {}
    assert request.warnings == []


@pytest.mark.parametrize("url", ["", "   ", "ftp://h/stream", "h/stream", "http:///stream"])
def test_unusable_url_raises(url: str) -> None:
    with pytest.raises(ConfigError):
        build_request(StreamConfig(url=url))


def test_query_string_appended_with_question_mark() -> None:
    request = build_request(StreamConfig(url="http://h/stream", query="a=1&b=two words"))
    assert request.url == "http://h/stream?a=1&b=two+words"


def test_query_merged_after_existing_params_keeping_duplicates() -> None:
    request = build_request(
        StreamConfig(url="https://h/stream?a=0&keep=yes", query={"a": "1", "tag": ["x", "y"]})
    )
    params = parse_qsl(urlsplit(request.url).query)
    assert params == [("a", "0"), ("keep", "yes"), ("a", "1"), ("tag", "x"), ("tag", "y")]


def test_query_keeps_fragment_last() -> None:
    request = build_request(StreamConfig(url="http://h/stream#live", query="a=1"))
    assert request.url == "http://h/stream?a=1#live"


def test_query_string_keeps_keys_without_values() -> None:
    request = build_request(StreamConfig(url="http://h/stream", query="a=1&flag"))
    assert request.url == "http://h/stream?a=1&flag="
    assert request.warnings == []


def test_query_string_ignores_empty_pairs() -> None:
    request = build_request(StreamConfig(url="http://h/stream", query="a=1&&b=2&"))
    assert request.url == "http://h/stream?a=1&b=2"
    assert request.warnings == []


def test_token_sets_bearer_header() -> None:
    request = build_request(StreamConfig(url="http://h/s", token="secret"))
    assert request.headers == {"Authorization": "Bearer secret"}


def test_extra_headers_from_json() -> None:
    request = build_request(
        StreamConfig(url="http://h/s", token="secret", headers='{"X-Tenant": "blue", "X-Retry": 3}')
    )
    assert request.headers == {
        "Authorization": "Bearer secret",
        "X-Tenant": "blue",
        "X-Retry": "3",
    }


def test_explicit_authorization_header_overrides_token() -> None:
    request = build_request(
        StreamConfig(url="http://h/s", token="secret", headers={"authorization": "Basic abc"})
    )
    assert request.headers == {"authorization": "Basic abc"}


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"', "null"])
def test_bad_headers_fall_back_to_token_only(raw: str) -> None:
    request = build_request(StreamConfig(url="http://h/s", token="secret", headers=raw))
    assert request.headers == {"Authorization": "Bearer secret"}
    assert len(request.warnings) == 1


def test_nested_header_values_are_skipped() -> None:
    request = build_request(StreamConfig(url="http://h/s", headers={"X-A": "1", "X-B": {"c": 1}}))
    assert request.headers == {"X-A": "1"}
    assert "X-B" in request.warnings[0]


def test_build_is_pure() -> None:
    config = StreamConfig(url="http://h/s?x=1", token="t", headers='{"X-A": "1"}', query="y=2")
    assert build_request(config) == build_request(config)
    assert config.query == "y=2"


def test_non_ascii_header_values_are_skipped() -> None:
    request = build_request(
        StreamConfig(url="http://h/s", token="t", headers={"X-A": "1", "X-Name": "żółw"})
    )
    assert request.headers == {"Authorization": "Bearer t", "X-A": "1"}
    assert len(request.warnings) == 1
    assert "X-Name" in request.warnings[0]
    assert "not ASCII" in request.warnings[0]
