"""Unit tests for subscription and share-link parsing."""

import base64
import json

import pytest

from errors import EmptyProxyListError
from models.proxy_model import ShadowsocksParams, TrojanParams, VlessParams, VmessParams
from parser.parser import ProxyParser, b64decode_text


def _b64(text, urlsafe=False):
    encoder = base64.urlsafe_b64encode if urlsafe else base64.b64encode
    return encoder(text.encode()).decode()


@pytest.fixture
def parser():
    return ProxyParser()


class TestB64:
    def test_accepts_missing_padding_and_urlsafe_alphabet(self):
        encoded = _b64("a?b>c~", urlsafe=True).rstrip("=")
        assert b64decode_text(encoded) == "a?b>c~"


class TestParseLink:
    def test_ss_sip002_base64_userinfo(self, parser):
        link = f"ss://{_b64('aes-256-gcm:secret')}@1.2.3.4:8388#%E6%97%A5%E6%9C%AC"
        proxy = parser.parse_link(link)
        assert proxy.type == "ss"
        assert (proxy.server, proxy.port, proxy.name) == ("1.2.3.4", 8388, "日本")
        assert proxy.params == ShadowsocksParams(password="secret", method="aes-256-gcm")

    def test_ss_legacy_fully_encoded(self, parser):
        proxy = parser.parse_link("ss://" + _b64("chacha20-ietf-poly1305:pw@ss.example.com:443"))
        assert proxy.server == "ss.example.com"
        assert proxy.params.method == "chacha20-ietf-poly1305"
        assert proxy.params.password == "pw"

    def test_ss_plugin(self, parser):
        link = (f"ss://{_b64('aes-128-gcm:pw')}@1.2.3.4:8388/"
                "?plugin=obfs-local%3Bobfs%3Dhttp%3Bobfs-host%3Dcdn.example.com#n")
        proxy = parser.parse_link(link)
        assert proxy.params.plugin == "obfs-local"
        assert proxy.params.plugin_opts == "obfs=http;obfs-host=cdn.example.com"

    def test_vmess(self, parser):
        payload = {"v": "2", "ps": "hk", "add": "v.example.com", "port": "443", "id": "uuid-1",
                   "aid": "0", "scy": "auto", "net": "ws", "type": "none", "host": "cdn.example.com",
                   "path": "/ws", "tls": "tls", "sni": "v.example.com", "alpn": "h2,http/1.1"}
        proxy = parser.parse_link("vmess://" + _b64(json.dumps(payload)))
        assert proxy.name == "hk"
        assert proxy.port == 443
        assert proxy.params == VmessParams(uuid="uuid-1", network="ws", host="cdn.example.com",
                                           path="/ws", tls=True, sni="v.example.com", alpn=("h2", "http/1.1"))

    def test_ssr(self, parser):
        body = (f"ssr.example.com:9000:auth_aes128_md5:aes-256-cfb:tls1.2_ticket_auth:{_b64('pw', True)}"
                f"/?obfsparam={_b64('cdn.example.com', True)}&remarks={_b64('香港', True)}")
        proxy = parser.parse_link("ssr://" + _b64(body, urlsafe=True))
        assert proxy.type == "ssr"
        assert proxy.name == "香港"
        assert proxy.params.password == "pw"
        assert proxy.params.protocol == "auth_aes128_md5"
        assert proxy.params.obfs_param == "cdn.example.com"

    def test_trojan(self, parser):
        proxy = parser.parse_link("trojan://p%40ss@t.example.com:443?peer=sni.example.com&type=ws#t1")
        assert (proxy.name, proxy.server, proxy.port) == ("t1", "t.example.com", 443)
        assert proxy.params == TrojanParams(password="p@ss", network="ws", sni="sni.example.com")

    def test_vless_reality(self, parser):
        proxy = parser.parse_link(
            "vless://uuid-2@v.example.com:8443?security=reality&type=grpc&serviceName=svc&sni=www.example.com#r"
        )
        assert isinstance(proxy.params, VlessParams)
        assert proxy.params.security == "reality"
        assert proxy.params.tls is True
        assert proxy.params.network == "grpc"
        assert proxy.params.path == "svc"
        assert proxy.params.sni == "www.example.com"

    @pytest.mark.parametrize("link", [
        "ss://not-base64!!",
        "vmess://" + _b64("{not json"),
        "trojan://pw@host:notaport",
        "ssr://" + _b64("too:few:parts"),
        "http://plain.example.com",
        "",
    ])
    def test_malformed_links_are_skipped(self, parser, link):
        assert parser.parse_link(link) is None


class TestParseContent:
    def test_clash_yaml(self, parser):
        content = (
            "proxies:\n"
            "  - {name: a, type: http, server: 1.1.1.1, port: 80}\n"
            "  - just a string\n"
            "  - {name: b, type: trojan, server: t.example.com, port: 443, password: pw}\n"
        )
        proxies = parser.parse_raw_content(content, "test")
        assert [p.name for p in proxies] == ["a", "b"]

    def test_link_lines(self, parser):
        content = "\n".join([
            "trojan://pw@t.example.com:443#one",
            "garbage line",
            "",
            "vless://u@v.example.com:443?security=tls#two",
        ])
        assert [p.name for p in parser.parse_raw_content(content)] == ["one", "two"]

    def test_base64_subscription(self, parser):
        links = "trojan://pw@t.example.com:443#one\ntrojan://pw@t.example.com:444#two\n"
        proxies = parser.parse_raw_content(_b64(links))
        assert [p.port for p in proxies] == [443, 444]

    def test_yaml_without_proxy_list_falls_back_to_lines(self, parser):
        assert parser.parse_raw_content("proxies: nope\n") == []


class TestLoadProxiesFile:
    def test_loads_file(self, parser, tmp_path):
        path = tmp_path / "nodes.yaml"
        path.write_text("proxies:\n  - {name: a, type: socks5, server: 1.1.1.1, port: 1080}\n", encoding="utf-8")
        proxies = parser.load_proxies_file(str(path))
        assert len(proxies) == 1 and proxies[0].type == "socks5"

    def test_empty_file_raises(self, parser, tmp_path):
        path = tmp_path / "nodes.txt"
        path.write_text("nothing useful here\n", encoding="utf-8")
        with pytest.raises(EmptyProxyListError):
            parser.load_proxies_file(str(path))

    def test_missing_file_raises(self, parser, tmp_path):
        with pytest.raises(OSError):
            parser.load_proxies_file(str(tmp_path / "missing.yaml"))


class TestDeduplicate:
    def test_keeps_first_of_each_endpoint(self, parser):
        content = (
            "proxies:\n"
            "  - {name: a, type: http, server: 1.1.1.1, port: 80}\n"
            "  - {name: a-copy, type: http, server: 1.1.1.1, port: 80}\n"
            "  - {name: b, type: http, server: 1.1.1.1, port: 81}\n"
        )
        proxies = parser.deduplicate_proxies(parser.parse_raw_content(content))
        assert [p.name for p in proxies] == ["a", "b"]
