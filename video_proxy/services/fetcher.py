import re
import httpx
from typing import Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, TypeVar
from urllib.parse import urljoin, urlsplit, urlunsplit
from video_proxy.core.config import settings

T = TypeVar("T")
R = TypeVar("R")

FALLBACK_SUBDOMAINS = ("m.facebook.com", "mbasic.facebook.com")

# Facebook's generic error/login wall
ERROR_PAGE_RE = re.compile(r'Sorry[^<]{0,50}went wrong', re.I)
SHARE_LINK_RE = re.compile(r'/share/', re.I)


class Page(NamedTuple):
    status_code: int
    html: str
    url: str


def norm_host(host: Optional[str]) -> str:
    host = (host or "").lower()
    return host[4:] if host.startswith("www.") else host


def host_of(url: str) -> str:
    return norm_host(urlsplit(url).hostname)


def is_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith(f".{domain}")


def is_facebook(host: str) -> bool:
    return is_domain(host, "facebook.com")


def headers_for(host: str) -> Dict[str, str]:
    """Browser-like request headers with a Referer pointing at ``host``."""
    return {
        'User-Agent': settings.USER_AGENT,
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
        'Upgrade-Insecure-Requests': '1',
        'Referer': f'https://{host}/',
        'Sec-Fetch-Site': 'same-origin',
        'Sec-Fetch-Mode': 'navigate',
        'Sec-Fetch-User': '?1',
        'Sec-Fetch-Dest': 'document',
    }


def request_headers(url: str) -> Dict[str, str]:
    return headers_for(urlsplit(url).hostname or "")


def new_client(follow_redirects: bool = True) -> httpx.AsyncClient:
    """Transient upstream client; callers own and close it."""
    return httpx.AsyncClient(follow_redirects=follow_redirects, timeout=settings.UPSTREAM_TIMEOUT)


async def resolve_redirect_chain(url: str, max_hops: Optional[int] = None) -> str:
    """Follows up to ``max_hops`` redirects by hand and returns the last URL seen.

    Hitting the hop cap is not an error: the URL reached so far is returned.
    """
    if max_hops is None:
        max_hops = settings.MAX_REDIRECT_HOPS

    current = url
    async with new_client(follow_redirects=False) as client:
        for _ in range(max_hops):
            async with client.stream("GET", current, headers=request_headers(current)) as resp:
                location = resp.headers.get("location")
                if not 300 <= resp.status_code < 400:
                    return current
            if not location:
                break
            current = urljoin(current, location)
            print(f"[*] Redirected to: {current}")
    return current


def alt_hosts(url: str) -> List[str]:
    """Ordered hosts to try: the original URL, then the mobile and basic Facebook sites."""
    parts = urlsplit(url)
    if not is_facebook(norm_host(parts.hostname)):
        return [url]

    candidates = [url]
    for host in FALLBACK_SUBDOMAINS:
        alt = urlunsplit(("https", host, parts.path, parts.query, parts.fragment))
        if alt not in candidates:
            candidates.append(alt)
    return candidates


async def first_success(
    candidates: Iterable[T],
    attempt: Callable[[T], Awaitable[R]],
    accept: Callable[[R], bool],
) -> Optional[Tuple[T, R]]:
    """Runs ``attempt`` on each candidate in turn until one result is accepted."""
    for candidate in candidates:
        try:
            result = await attempt(candidate)
        except httpx.HTTPError as e:
            print(f"[-] Candidate failed: {candidate} ({type(e).__name__}: {e})")
            continue
        if accept(result):
            print(f"[+] Candidate accepted: {candidate}")
            return candidate, result
        print(f"[-] Candidate rejected: {candidate}")
    return None


async def fetch_html(url: str) -> Page:
    async with new_client() as client:
        resp = await client.get(url, headers=request_headers(url))
        return Page(resp.status_code, resp.text, str(resp.url))
