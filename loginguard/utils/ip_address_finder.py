import ipaddress

from fastapi import Request

from loginguard.schemas.login_attempt import RequestContext

# Checked in order of preference
PROXY_IP_HEADERS = (
    "cf-connecting-ip",  # Cloudflare
    "x-real-ip",  # Nginx
    "x-forwarded-for",  # Standard proxy header
    "x-client-ip",
    "x-cluster-client-ip",  # Kubernetes
)


def get_client_ip(request: Request) -> str:
    """Extract the client IP, skipping malformed proxy headers"""
    for header in PROXY_IP_HEADERS:
        ip_value = request.headers.get(header)
        if not ip_value:
            continue
        # Comma-separated chains list the originating client first
        first_ip = ip_value.split(",")[0].strip()
        try:
            ipaddress.ip_address(first_ip)
        except ValueError:
            continue
        return first_ip

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent string; empty when the header is absent"""
    return request.headers.get("user-agent", "").strip()


def extract_request_context(request: Request) -> RequestContext:
    """Collect the passive signals the engine reads from a request"""
    return RequestContext(
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        accept_language=request.headers.get("accept-language", "").strip(),
        accept_encoding=request.headers.get("accept-encoding", "").strip(),
    )
