import pytest

from catalogue_mcp.endpoint import EndpointPolicy, ServerEndpoint, TransportType
from catalogue_mcp.exceptions import ErrorCategory, InvalidEndpointError, SecurityPolicyError


def test_parse_https_endpoint():
    """Scheme, host, port and path are parsed and normalized"""
    endpoint = ServerEndpoint.parse("HTTPS://Example.COM:8443/mcp/")
    assert endpoint.scheme == "https"
    assert endpoint.host == "example.com"
    assert endpoint.port == 8443
    assert endpoint.path == "/mcp"
    assert endpoint.url == "https://example.com:8443/mcp"
    assert endpoint.transport == TransportType.HTTP
    assert endpoint.is_secure


def test_parse_default_port():
    endpoint = ServerEndpoint.parse("wss://mcp.example.com")
    assert endpoint.port is None
    assert endpoint.effective_port == 443
    assert endpoint.transport == TransportType.WEBSOCKET


@pytest.mark.parametrize("url", ["", "   ", "localhost:8051", "https://", "https://host:99999"])
def test_parse_malformed_url(url):
    """Malformed URLs raise InvalidEndpointError"""
    with pytest.raises(InvalidEndpointError) as exc_info:
        ServerEndpoint.parse(url)
    assert exc_info.value.category == ErrorCategory.CONFIGURATION


def test_display_name():
    """Loopback hosts are named by port, other hosts by hostname"""
    assert ServerEndpoint.parse("https://localhost:8052").display_name == "MCP Server :8052"
    assert ServerEndpoint.parse("https://127.0.0.1:3000").display_name == "MCP Server :3000"
    assert ServerEndpoint.parse("https://www.example.com").display_name == "example.com"


def test_join_paths():
    endpoint = ServerEndpoint.parse("https://localhost:8051")
    assert endpoint.join("/health") == "https://localhost:8051/health"
    assert endpoint.join("/") == "https://localhost:8051/"
    assert endpoint.join("mcp/info") == "https://localhost:8051/mcp/info"


def test_policy_allows_secure_schemes():
    policy = EndpointPolicy()
    policy.check(ServerEndpoint.parse("https://localhost:8051"))
    policy.check(ServerEndpoint.parse("wss://localhost:8051"))


@pytest.mark.parametrize("url,message", [
    ("http://localhost:8051", "Insecure HTTP protocol not allowed. Use HTTPS instead."),
    ("ws://localhost:8051", "Insecure WebSocket protocol not allowed. Use WSS instead."),
    ("ftp://localhost:21", "Unsupported protocol: ftp. Only HTTPS and WSS are allowed."),
])
def test_policy_rejects_insecure_and_unsupported(url, message):
    """The security gate rejects insecure and unknown schemes"""
    with pytest.raises(SecurityPolicyError) as exc_info:
        EndpointPolicy().check(ServerEndpoint.parse(url))
    assert exc_info.value.message == message
    assert exc_info.value.category == ErrorCategory.SECURITY_POLICY


def test_policy_allow_list_matches_origin():
    """Only the allow-listed origin passes, not other ports on the same host"""
    policy = EndpointPolicy(["http://localhost:8051/", "not a url"])
    policy.check(ServerEndpoint.parse("http://localhost:8051/health"))

    with pytest.raises(SecurityPolicyError):
        policy.check(ServerEndpoint.parse("http://localhost:8052"))


def test_query_string_is_kept():
    """Query parameters survive in the address and in joined paths"""
    endpoint = ServerEndpoint.parse("wss://host.example/mcp?token=abc&region=eu")
    assert endpoint.query == "token=abc&region=eu"
    assert endpoint.url == "wss://host.example/mcp?token=abc&region=eu"
    assert endpoint.join("/health") == "wss://host.example/mcp/health?token=abc&region=eu"
    assert endpoint.join("/") == "wss://host.example/mcp/?token=abc&region=eu"


def test_policy_allow_list_default_port_equivalence():
    """An explicit default port matches an allow-list entry without one, and vice versa"""
    EndpointPolicy(["http://localhost"]).check(ServerEndpoint.parse("http://localhost:80"))
    EndpointPolicy(["ws://localhost:80"]).check(ServerEndpoint.parse("ws://localhost/mcp"))

    with pytest.raises(SecurityPolicyError):
        EndpointPolicy(["http://localhost"]).check(ServerEndpoint.parse("http://localhost:8080"))
