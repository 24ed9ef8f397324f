import random
import socket
from unittest import mock

import pytest

from apibench.status import ApibError, StatusCode
from apibench.url import Address, URLInfo


@pytest.fixture(autouse=True)
def _reset_urls():
    URLInfo.reset()
    yield
    URLInfo.reset()


@pytest.fixture
def no_dns():
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror(-2, "Name or service not known")):
        yield


def _fake_dns(host, port, *args, **kwargs):
    return [
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.1", 0)),
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.2", 0)),
    ]


def test_parse_good_1(no_dns):
    URLInfo.init_one("http://notfound.notfound:1234/bar?baz=yes")
    u = URLInfo.get_next(None)
    assert u.is_ssl is False
    assert u.port == 1234
    assert u.path == "/bar?baz=yes"
    assert u.host_header == "notfound.notfound:1234"
    assert u.host_name == "notfound.notfound"
    assert u.path_only == "/bar"
    assert u.query == "baz=yes"
    assert not u.address(0).valid
    assert u.address(0).family == socket.AF_UNSPEC
    assert u.lookup_status.code is StatusCode.DNS_ERROR


def test_parse_good_2(no_dns):
    URLInfo.init_one("http://notfound.notfound/bar?baz=yes")
    u = URLInfo.get_next(None)
    assert not u.is_ssl
    assert u.port == 80
    assert u.host_header == "notfound.notfound"
    assert u.path == "/bar?baz=yes"


def test_parse_good_3(no_dns):
    URLInfo.init_one("http://notfound.notfound:80/bar?baz=yes")
    u = URLInfo.get_next(None)
    assert not u.is_ssl
    assert u.port == 80
    assert u.host_header == "notfound.notfound"
    assert u.path == "/bar?baz=yes"


def test_parse_good_4(no_dns):
    URLInfo.init_one("http://notfound.notfound/")
    u = URLInfo.get_next(None)
    assert not u.is_ssl
    assert u.port == 80
    assert u.path == "/"
    assert u.path_only == "/"
    assert u.query == ""


def test_parse_good_5(no_dns):
    URLInfo.init_one("http://notfound.notfound:1000")
    u = URLInfo.get_next(None)
    assert not u.is_ssl
    assert u.port == 1000
    assert u.host_name == "notfound.notfound"
    assert u.path == "/"


def test_parse_good_6(no_dns):
    URLInfo.init_one("http://notfound.notfound/bar?baz=yes")
    u = URLInfo.get_next(None)
    assert not u.is_ssl
    assert u.port == 80
    assert u.path == "/bar?baz=yes"


def test_parse_good_7(no_dns):
    URLInfo.init_one("https://notfound.notfound:1234/bar/baz")
    u = URLInfo.get_next(None)
    assert u.is_ssl
    assert u.port == 1234
    assert u.path == "/bar/baz"
    assert u.path_only == "/bar/baz"
    assert u.query == ""


def test_parse_good_8(no_dns):
    URLInfo.init_one("https://notfound.notfound/bar?baz=yes")
    u = URLInfo.get_next(None)
    assert u.is_ssl
    assert u.port == 443
    assert u.host_header == "notfound.notfound"
    assert u.path == "/bar?baz=yes"


def test_parse_good_9(no_dns):
    URLInfo.init_one("https://notfound.notfound:443/bar?baz=yes")
    u = URLInfo.get_next(None)
    assert u.is_ssl
    assert u.port == 443
    assert u.host_header == "notfound.notfound"
    assert u.host_name == "notfound.notfound"
    assert u.path == "/bar?baz=yes"


def test_parse_rfc5849_1(no_dns):
    URLInfo.init_one("http://example.com/r%20v/X?id=123")
    u = URLInfo.get_next(None)
    assert not u.is_ssl
    assert u.port == 80
    assert u.host_header == "example.com"
    assert u.host_name == "example.com"
    assert u.path == "/r%20v/X?id=123"
    assert u.path_only == "/r%20v/X"
    assert u.query == "id=123"


def test_parse_rfc5849_2(no_dns):
    URLInfo.init_one("http://example.net:8080/?q=1")
    u = URLInfo.get_next(None)
    assert u.is_ssl is False
    assert u.port == 8080
    assert u.host_header == "example.net:8080"
    assert u.host_name == "example.net"
    assert u.path == "/?q=1"
    assert u.path_only == "/"
    assert u.query == "q=1"


def test_parse_fragment(no_dns):
    u = URLInfo.parse("http://example.com/p?q=1#frag")
    assert u.path == "/p?q=1#frag"
    assert u.path_only == "/p"
    assert u.query == "q=1"


def test_parse_localhost():
    URLInfo.init_one("http://localhost")
    u = URLInfo.get_next(None)
    assert u is not None
    assert not u.is_ssl
    assert u.port == 80
    assert u.path == "/"
    assert u.address_count >= 1
    assert u.lookup_status.ok
    assert u.address(0).valid
    assert u.address(0).port == 80


@pytest.mark.parametrize(
    "bad",
    ["notaurl", "http://", "http://host:abc/", "http://host:99999/", "http://a b/"],
)
def test_parse_invalid(no_dns, bad):
    with pytest.raises(ApibError) as info:
        URLInfo.parse(bad)
    assert info.value.code is StatusCode.INVALID_URL


def test_parse_invalid_scheme(no_dns):
    with pytest.raises(ApibError) as info:
        URLInfo.init_one("ftp://example.com/")
    assert info.value.code is StatusCode.INVALID_URL
    assert info.value.status.message == "Invalid scheme"
    assert URLInfo.get_next(None) is None


def test_init_one_twice_rejected(no_dns):
    URLInfo.init_one("http://example.com/")
    with pytest.raises(ApibError) as info:
        URLInfo.init_one("http://example.com/")
    assert info.value.code is StatusCode.INTERNAL_ERROR


def test_get_next_empty():
    assert URLInfo.get_next(random.Random(1)) is None


def test_parse_file(no_dns, tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text(
        "http://notfound.notfound/one\n"
        "http://notfound.notfound/two\r\n"
        "\n"
        "https://notfound.notfound:8443/three\n"
    )
    urls = URLInfo.init_file(str(path))
    assert [u.path for u in urls] == ["/one", "/two", "/three"]
    rand = random.Random(42)
    seen = set()
    for _ in range(10000):
        u = URLInfo.get_next(rand)
        assert u is not None
        seen.add(u.path)
    assert seen == {"/one", "/two", "/three"}


def test_parse_file_missing(tmp_path):
    with pytest.raises(ApibError) as info:
        URLInfo.init_file(str(tmp_path / "missing.txt"))
    assert info.value.code is StatusCode.IO_ERROR


def test_parse_file_bad_line(no_dns, tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text("http://example.com/\nftp://example.com/\n")
    with pytest.raises(ApibError) as info:
        URLInfo.init_file(str(path))
    assert info.value.code is StatusCode.INVALID_URL


def test_addresses_rotate_by_sequence():
    with mock.patch("socket.getaddrinfo", side_effect=_fake_dns):
        u = URLInfo.parse("http://example.com:8080/")
    assert u.address_count == 2
    assert u.address(0) == Address(socket.AF_INET, "192.0.2.1", 8080)
    assert u.address(1) == Address(socket.AF_INET, "192.0.2.2", 8080)
    assert u.address(2) == u.address(0)


def test_is_same_server():
    with mock.patch("socket.getaddrinfo", side_effect=_fake_dns):
        a = URLInfo.parse("http://example.com/a")
        b = URLInfo.parse("http://example.com/b")
        c = URLInfo.parse("http://example.com:81/c")
    assert URLInfo.is_same_server(a, b, 0)
    assert URLInfo.is_same_server(a, b, 1)
    assert not URLInfo.is_same_server(a, c, 0)