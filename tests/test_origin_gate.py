import re

from todo_mcp.api.security import OriginGate, compile_origin_pattern

DEFAULT_ORIGINS = ["http://localhost:*", "https://localhost:*"]


def test_port_wildcard_matches_any_port():
    gate = OriginGate(DEFAULT_ORIGINS)
    assert gate.is_origin_allowed("http://localhost:5173")
    assert gate.is_origin_allowed("https://localhost:8443")
    assert not gate.is_origin_allowed("http://evil.com")
    assert not gate.is_origin_allowed("http://localhost.evil.com:80")


def test_missing_origin_is_allowed():
    gate = OriginGate(DEFAULT_ORIGINS)
    assert gate.is_origin_allowed(None)
    assert gate.check(None, "anything") is None


def test_exact_and_subdomain_patterns():
    gate = OriginGate(["https://app.example.com", "https://*.example.org"])
    assert gate.is_origin_allowed("https://app.example.com")
    assert gate.is_origin_allowed("https://app.example.com/")
    assert gate.is_origin_allowed("https://tasks.example.org")
    assert not gate.is_origin_allowed("https://a.b.example.org")
    assert not gate.is_origin_allowed("https://example.com")


def test_wildcard_does_not_cross_separators():
    pattern = compile_origin_pattern("http://localhost:*")
    assert pattern.fullmatch("http://localhost:3000")
    assert not pattern.fullmatch("http://localhost:3000.evil.com")


def test_origin_regex_covers_every_entry():
    gate = OriginGate(["https://app.example.com", "http://localhost:*"])
    regex = re.compile(gate.origin_regex)
    assert regex.fullmatch("https://app.example.com")
    assert regex.fullmatch("http://localhost:1234")
    assert not regex.fullmatch("https://appXexample.com")
    assert OriginGate([]).origin_regex is None


def test_host_check_only_with_dns_protection():
    open_gate = OriginGate(DEFAULT_ORIGINS)
    assert open_gate.is_host_allowed("attacker.example")

    gate = OriginGate(DEFAULT_ORIGINS, dns_rebinding_protection=True, allowed_hosts=["127.0.0.1", "localhost"])
    assert gate.is_host_allowed("127.0.0.1:3000")
    assert gate.is_host_allowed("LOCALHOST")
    assert not gate.is_host_allowed("attacker.example:3000")
    assert not gate.is_host_allowed(None)
    assert "attacker.example" in gate.check(None, "attacker.example")


def test_trailing_newline_is_not_accepted():
    gate = OriginGate(DEFAULT_ORIGINS)
    assert not gate.is_origin_allowed("http://localhost:5173\n")
    assert not re.fullmatch(gate.origin_regex, "http://localhost:5173\n")
