import pytest

from pkgpatches.errors import TransportError
from pkgpatches.fetcher import RemoteContentCache, UrllibTransport, is_remote, origin_of


def test_origin_and_remote_detection():
    assert origin_of("https://example.org/a/b.patch") == "example.org"
    assert origin_of("/tmp/x.patch") == ""
    assert is_remote("http://example.org/x")
    assert not is_remote("file:///tmp/x")
    assert not is_remote("patches/x.patch")


def test_same_url_is_fetched_once(cache, transport):
    transport.files["https://x/p1.patch"] = "diff"
    first = cache.get_bytes("https://x/p1.patch")
    second = cache.get_bytes("https://x/p1.patch")
    assert first == second == b"diff"
    assert transport.count("https://x/p1.patch") == 1
    assert transport.calls[0][0] == "x"
    assert cache.get_metrics() == {"fetch.total": 1, "cache.hits": 1}
    assert "https://x/p1.patch" in cache


def test_json_reuses_fetched_bytes(cache, transport):
    transport.files["https://x/doc.json"] = {"foo": ["a.patch"]}
    raw = cache.get_bytes("https://x/doc.json")
    assert cache.get_json("https://x/doc.json") == {"foo": ["a.patch"]}
    assert cache.get_json("https://x/doc.json") == {"foo": ["a.patch"]}
    assert transport.count("https://x/doc.json") == 1
    assert raw.startswith(b"{")


def test_invalid_json_is_a_transport_error(cache, transport):
    transport.files["https://x/bad.json"] = "{not json"
    with pytest.raises(TransportError) as exc:
        cache.get_json("https://x/bad.json")
    assert exc.value.url == "https://x/bad.json"


def test_cache_keeps_every_entry_for_the_run(cache, transport):
    for i in range(20):
        transport.files[f"https://x/{i}.patch"] = str(i)
        cache.get_bytes(f"https://x/{i}.patch")
    for i in range(20):
        assert cache.get_bytes(f"https://x/{i}.patch") == str(i).encode()
    assert len(transport.calls) == 20
    assert not hasattr(cache, "clear")


def test_failures_are_not_cached(cache, transport):
    with pytest.raises(TransportError):
        cache.get_bytes("https://x/missing.patch")
    transport.files["https://x/missing.patch"] = "now here"
    assert cache.get_bytes("https://x/missing.patch") == b"now here"
    assert transport.count("https://x/missing.patch") == 2


def test_unexpected_transport_exceptions_are_wrapped():
    class Exploding:
        def fetch(self, origin, url):
            raise RuntimeError("boom")

    cache = RemoteContentCache(Exploding())
    with pytest.raises(TransportError, match="boom"):
        cache.get_bytes("https://x/y")


def test_urllib_transport_reads_local_files(tmp_path):
    target = tmp_path / "local.patch"
    target.write_bytes(b"local diff")
    t = UrllibTransport(retries=1, retry_backoff=0)
    assert t.fetch("", str(target)) == b"local diff"
    assert t.fetch("", target.as_uri()) == b"local diff"


def test_urllib_transport_missing_local_file(tmp_path):
    t = UrllibTransport(retries=1, retry_backoff=0)
    with pytest.raises(TransportError):
        t.fetch("", str(tmp_path / "nope.patch"))


def test_urllib_transport_takes_defaults_from_config():
    t = UrllibTransport()
    assert t.timeout == 30.0
    assert t.retries == 3
    assert t.user_agent == "pkgpatches"
