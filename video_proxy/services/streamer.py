import re
import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from typing import AsyncGenerator, Optional
from urllib.parse import quote, unquote, urlsplit
from video_proxy.core.config import settings
from video_proxy.services import fetcher

_DISPOSITION_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?["\']?([^"\';]+)["\']?', re.I)
_VIDEO_EXT_RE = re.compile(r'\.(mp4|mov|m4v|webm)$', re.I)

PASSTHROUGH_HEADERS = ("Content-Length", "Content-Range", "Accept-Ranges", "Content-Encoding")


def pick_filename(url: str, content_disposition: Optional[str] = None) -> str:
    """Upstream Content-Disposition, else the last path segment, else the fallback name."""
    match = _DISPOSITION_RE.search(content_disposition or '')
    if match:
        return unquote(match.group(1))

    last = urlsplit(url).path.split('/')[-1]
    if last:
        return last if _VIDEO_EXT_RE.search(last) else f"{last}.mp4"

    return settings.FALLBACK_FILENAME


def content_disposition(filename: str) -> str:
    filename = re.sub(r'["\\\r\n]', '', filename)
    try:
        filename.encode('ascii')
    except UnicodeEncodeError:
        ascii_name = filename.encode('ascii', 'ignore').decode() or settings.FALLBACK_FILENAME
        return f'attachment; filename="{ascii_name}"; filename*=UTF-8\'\'{quote(filename)}'
    return f'attachment; filename="{filename}"'


class StreamProxy:
    async def proxy_stream(self, url: str, range_header: Optional[str] = None) -> StreamingResponse:
        headers = {
            **fetcher.request_headers(url),
            'Accept': '*/*',
            'Accept-Encoding': 'identity',
        }
        if range_header:
            headers['Range'] = range_header

        client = fetcher.new_client()
        try:
            upstream = await client.send(client.build_request("GET", url, headers=headers), stream=True)
        except BaseException:
            await client.aclose()
            raise

        async def close_upstream():
            await upstream.aclose()
            await client.aclose()

        async def stream_generator() -> AsyncGenerator[bytes, None]:
            try:
                async for chunk in upstream.aiter_raw(chunk_size=settings.STREAM_CHUNK_SIZE):
                    yield chunk
            except httpx.HTTPError as e:
                print(f"[!] Streaming error: {e}")
            finally:
                await close_upstream()

        res_headers = {"Content-Type": upstream.headers.get("Content-Type", "application/octet-stream")}
        for name in PASSTHROUGH_HEADERS:
            if upstream.headers.get(name):
                res_headers[name] = upstream.headers[name]
        res_headers["Content-Disposition"] = content_disposition(
            pick_filename(url, upstream.headers.get("Content-Disposition"))
        )

        return StreamingResponse(
            stream_generator(),
            status_code=upstream.status_code,
            headers=res_headers,
            background=BackgroundTask(close_upstream),
        )


stream_proxy = StreamProxy()
