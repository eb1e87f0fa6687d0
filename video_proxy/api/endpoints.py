import traceback
import httpx
from fastapi import APIRouter, Header, Query
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from typing import Optional
from urllib.parse import urlsplit
from video_proxy.core.config import settings
from video_proxy.models.schemas import ErrorResponse, ExtractResponse
from video_proxy.services import fetcher
from video_proxy.services.extractor import extractor_for_host
from video_proxy.services.streamer import stream_proxy
from video_proxy.services.ytdlp_fallback import ytdlp_fallback

router = APIRouter()

NO_URL = "No url query provided"


def error_response(status_code: int, error: str, ok: Optional[bool] = None) -> JSONResponse:
    payload = ErrorResponse(ok=ok, error=error).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=payload)


def is_valid_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.hostname)


@router.get("/fetch", response_class=HTMLResponse)
async def fetch_page(url: Optional[str] = Query(None)):
    if not url:
        return error_response(400, NO_URL)
    if not is_valid_url(url):
        return error_response(400, f"Invalid url: {url}")

    print(f"[FETCH] Received URL: {url}")
    try:
        target = url
        if fetcher.is_facebook(fetcher.host_of(target)) and fetcher.SHARE_LINK_RE.search(target):
            target = await fetcher.resolve_redirect_chain(target)

        found = await fetcher.first_success(
            fetcher.alt_hosts(target),
            fetcher.fetch_html,
            lambda page: page.status_code < 400 and not fetcher.ERROR_PAGE_RE.search(page.html),
        )
        if not found:
            return PlainTextResponse("Upstream returned an error page or required login.", status_code=502)

        _, page = found
        return HTMLResponse(page.html, status_code=200)
    except Exception as e:
        print(f"[!] Fetch Exception for {url}: {str(e)}")
        traceback.print_exc()
        return error_response(500, str(e))


@router.get(
    "/extract",
    response_model=ExtractResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def extract_media(url: Optional[str] = Query(None)):
    if not url:
        return error_response(400, NO_URL, ok=False)
    if not is_valid_url(url):
        return error_response(400, f"Invalid url: {url}", ok=False)

    print(f"[EXTRACT] Received URL: {url}")
    try:
        try:
            target = await fetcher.resolve_redirect_chain(url)
        except httpx.HTTPError as e:
            print(f"[-] Redirect resolution failed for {url}: {e}")
            host = fetcher.host_of(url)
            if extractor_for_host(host) is None:
                return error_response(400, f"Host not supported: {host}", ok=False)
            return error_response(502, "Upstream error or login required")

        host = fetcher.host_of(target)
        if extractor_for_host(host) is None:
            return error_response(400, f"Host not supported: {host}", ok=False)

        found = await fetcher.first_success(
            fetcher.alt_hosts(target),
            fetcher.fetch_html,
            lambda page: page.status_code < 400 and len(page.html) > settings.MIN_HTML_LENGTH,
        )
        if not found:
            return error_response(502, "Upstream error or login required")

        candidate, page = found
        final_host = fetcher.host_of(candidate)
        extractor = extractor_for_host(final_host)
        if extractor is None:
            return error_response(400, f"Host not supported: {final_host}", ok=False)

        result = extractor.extract(page.html)
        if not result.best_url and settings.YTDLP_FALLBACK:
            print(f"[*] Patterns found nothing, trying yt-dlp for: {target}")
            fallback = await ytdlp_fallback.extract(target, extractor.platform)
            if fallback and fallback.best_url:
                result = fallback.model_copy(update={
                    "title": fallback.title or result.title,
                    "thumb": fallback.thumb or result.thumb,
                })

        if not result.best_url:
            print(f"[FAILED] No media found for: {target}")
            return error_response(404, "No downloadable video found (public posts only)", ok=False)

        print(f"[SUCCESS] {result.platform.value}: {len(result.urls)} url(s), best: {result.best_url}")
        return ExtractResponse(**result.model_dump())
    except Exception as e:
        print(f"[!] Endpoint Exception for {url}: {str(e)}")
        traceback.print_exc()
        return error_response(500, str(e))


@router.get("/download")
async def download_media(
    url: Optional[str] = Query(None),
    range: Optional[str] = Header(None),
):
    if not url:
        return PlainTextResponse("Missing url", status_code=400)
    if not is_valid_url(url):
        return PlainTextResponse("Invalid url", status_code=400)

    try:
        return await stream_proxy.proxy_stream(url, range)
    except Exception as e:
        print(f"[!] Download failed for {url}: {str(e)}")
        traceback.print_exc()
        return PlainTextResponse("Download failed", status_code=500)
