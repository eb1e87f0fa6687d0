import html as html_lib
import json
import re
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from yt_dlp.utils import traverse_obj
from video_proxy.models.schemas import ExtractionResult, MediaCandidate, MediaLabel, Platform
from video_proxy.services.fetcher import is_domain, norm_host

# A probe looks at page HTML and returns whatever URLs/strings it can find.
Probe = Callable[[str], List[str]]

_JSONISH_ESCAPES = (
    (re.compile(r'\\u0026'), '&'),
    (re.compile(r'\\u003d'), '='),
    (re.compile(r'\\u002F', re.I), '/'),
    (re.compile(r'\\/'), '/'),
    (re.compile(r'\\"'), '"'),
)

_BITRATE_RE = re.compile(r'(?:bitrate|br)=?(\d{3,6})', re.I)
_HD_LABEL_RE = re.compile(r'hd|1080|720', re.I)


def unescape_jsonish(value: Optional[str]) -> Optional[str]:
    """Undoes the JSON string escapes seen in inline script data."""
    if not value:
        return value
    for pattern, replacement in _JSONISH_ESCAPES:
        value = pattern.sub(replacement, value)
    return value


def regex_probe(pattern: str, find_all: bool = False) -> Probe:
    compiled = re.compile(pattern, re.I)

    def probe(page: str) -> List[str]:
        if find_all:
            return [unescape_jsonish(m) for m in compiled.findall(page)]
        match = compiled.search(page)
        return [unescape_jsonish(match.group(1))] if match else []

    return probe


def meta_probe(prop: str) -> Probe:
    """Open Graph ``<meta property=... content=...>`` lookup, either attribute order."""
    prop_re = re.escape(prop)
    patterns = (
        re.compile(rf'<meta[^>]+property=["\']{prop_re}["\'][^>]+content=(["\'])([^>]*?)\1', re.I),
        re.compile(rf'<meta[^>]+content=(["\'])([^>]*?)\1[^>]+property=["\']{prop_re}["\']', re.I),
    )

    def probe(page: str) -> List[str]:
        for pattern in patterns:
            match = pattern.search(page)
            if match and match.group(2):
                return [html_lib.unescape(match.group(2))]
        return []

    return probe


def json_script_probe(script_pattern: str, *paths: Tuple) -> Probe:
    """Parses an embedded ``<script>`` JSON blob and returns the first key-path that resolves."""
    compiled = re.compile(script_pattern + r'\s*(.*?)\s*</script>', re.I | re.S)

    def probe(page: str) -> List[str]:
        for match in compiled.finditer(page):
            try:
                data = json.loads(match.group(1))
            except ValueError:
                continue
            if isinstance(data, dict):
                data = [data]
            value = traverse_obj(data, *paths)
            if isinstance(value, str) and value:
                return [value]
        return []

    return probe


def first_match(page: str, probes: Iterable[Probe]) -> Optional[str]:
    for probe in probes:
        found = probe(page)
        if found:
            return found[0]
    return None


def collect(page: str, probes: Iterable[Probe]) -> List[str]:
    urls = []
    for probe in probes:
        urls.extend(probe(page))
    return urls


def unique_urls(urls: Iterable[Optional[str]]) -> List[str]:
    """Drops empty and duplicate URLs (fragments ignored), keeping first-seen order."""
    seen = set()
    out = []
    for url in urls:
        if not url:
            continue
        key = url.split('#')[0]
        if key not in seen:
            seen.add(key)
            out.append(url)
    return out


def guess_bitrate(url: str) -> Optional[int]:
    match = _BITRATE_RE.search(url)
    return int(match.group(1)) if match else None


def guess_label(url: str) -> MediaLabel:
    s = url.lower()
    if 'hd' in s or '1080' in s:
        return MediaLabel.HD
    if '720' in s:
        return MediaLabel.P720
    if '480' in s or 'sd' in s or '360' in s:
        return MediaLabel.SD
    return MediaLabel.VIDEO


def to_media_list(urls: Iterable[Optional[str]]) -> List[MediaCandidate]:
    return [MediaCandidate(url=u, label=guess_label(u), bitrate=guess_bitrate(u)) for u in unique_urls(urls)]


def pick_best_url(candidates: Sequence[MediaCandidate]) -> Optional[str]:
    """Highest bitrate, else the first HD/720p candidate, else the first one."""
    if not candidates:
        return None
    with_bitrate = [c for c in candidates if c.bitrate]
    if with_bitrate:
        return max(with_bitrate, key=lambda c: c.bitrate).url
    for c in candidates:
        if _HD_LABEL_RE.search(c.label.value):
            return c.url
    return candidates[0].url


TITLE_PROBES = [meta_probe('og:title')]
THUMB_PROBES = [meta_probe('og:image')]


class PlatformExtractor:
    def __init__(self, platform: Platform, domains: Sequence[str], video_probes: Sequence[Probe]):
        self.platform = platform
        self.domains = tuple(domains)
        self.video_probes = list(video_probes)

    def handles(self, host: str) -> bool:
        host = norm_host(host)
        return any(is_domain(host, d) for d in self.domains)

    def extract(self, page: str) -> ExtractionResult:
        media = to_media_list(collect(page, self.video_probes))
        return ExtractionResult(
            platform=self.platform,
            title=first_match(page, TITLE_PROBES) or '',
            thumb=first_match(page, THUMB_PROBES) or '',
            urls=media,
            best_url=pick_best_url(media),
        )


FACEBOOK = PlatformExtractor(Platform.FACEBOOK, ["facebook.com"], [
    regex_probe(r'"browser_native_hd_url":"(https:[^"]+)"'),
    regex_probe(r'"browser_native_sd_url":"(https:[^"]+)"'),
    regex_probe(r'"playable_url_quality_hd":"(https:[^"]+)"'),
    regex_probe(r'"playable_url":"(https:[^"]+)"'),
    # Older page builds
    regex_probe(r'"hd_src":"(https:[^"]+)"'),
    regex_probe(r'"sd_src":"(https:[^"]+)"'),
    meta_probe('og:video'),
    meta_probe('og:video:secure_url'),
])

INSTAGRAM = PlatformExtractor(Platform.INSTAGRAM, ["instagram.com"], [
    regex_probe(r'"video_url":"(https:[^"]+)"'),
    json_script_probe(
        r'<script[^>]+type=["\']application/ld\+json["\'][^>]*>',
        (0, "contentUrl", {str}),
        (0, "video", "contentUrl", {str}),
        (0, "video", 0, "contentUrl", {str}),
    ),
    meta_probe('og:video'),
])

_TIKTOK_ITEM = ("__DEFAULT_SCOPE__", "webapp.video-detail", "itemInfo", "itemStruct", "video")

TIKTOK = PlatformExtractor(Platform.TIKTOK, ["tiktok.com"], [
    regex_probe(r'"playAddr":"(https:[^"]+?)"'),
    regex_probe(r'"downloadAddr":"(https:[^"]+?)"'),
    json_script_probe(
        r'<script[^>]+id=["\']__UNIVERSAL_DATA_FOR_REHYDRATION__["\'][^>]*>',
        (0, *_TIKTOK_ITEM, "playAddr", {str}),
        (0, *_TIKTOK_ITEM, "downloadAddr", {str}),
    ),
    meta_probe('og:video'),
])

TWITTER = PlatformExtractor(Platform.TWITTER, ["twitter.com", "x.com"], [
    regex_probe(r'"content_type":"video\\?/mp4","url":"(https:[^"]+?)"', find_all=True),
    meta_probe('og:video'),
])

EXTRACTORS = [FACEBOOK, INSTAGRAM, TIKTOK, TWITTER]


def extractor_for_host(host: str) -> Optional[PlatformExtractor]:
    for extractor in EXTRACTORS:
        if extractor.handles(host):
            return extractor
    return None
