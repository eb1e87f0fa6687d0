import asyncio
import yt_dlp
from typing import Any, Dict, Optional
from video_proxy.core.config import settings
from video_proxy.models.schemas import ExtractionResult, MediaCandidate, Platform
from video_proxy.services.extractor import guess_bitrate, guess_label, pick_best_url, unique_urls


class YtdlpFallback:
    """Last-resort extraction through yt-dlp when page patterns find nothing."""

    def _options(self) -> Dict[str, Any]:
        return {
            'quiet': True, 'no_warnings': True, 'skip_download': True,
            'check_formats': False, 'user_agent': settings.USER_AGENT,
            'no_color': True, 'extract_flat': 'in_playlist',
        }

    async def extract(self, url: str, platform: Platform) -> Optional[ExtractionResult]:
        loop = asyncio.get_event_loop()
        try:
            info = await loop.run_in_executor(None, self._extract_sync, url, self._options())
        except yt_dlp.utils.YoutubeDLError as e:
            print(f"[!] yt-dlp fallback error: {e}")
            return None
        if not info:
            return None
        return self._parse_info(info, platform)

    def _extract_sync(self, url: str, opts: dict):
        with yt_dlp.YoutubeDL(opts) as ydl:
            return ydl.extract_info(url, download=False)

    def _parse_info(self, info: Dict[str, Any], platform: Platform) -> ExtractionResult:
        if 'entries' in info:
            # Flat playlists list unresolved page links as `_type: url` stubs
            entries = [e for e in info['entries'] or [] if e and e.get('_type') not in ('url', 'url_transparent')]
            info = entries[0] if entries else {}

        raw_formats = info.get('formats') or ([info] if info.get('url') else [])
        bitrates = {}
        urls = []
        for f in raw_formats:
            url = f.get('url')
            if not url:
                continue
            # Only formats carrying both audio and video can be relayed as one file
            if f.get('vcodec') == 'none' or f.get('acodec') == 'none':
                continue
            urls.append(url)
            if f.get('tbr'):
                bitrates[url] = int(f['tbr'])

        media = [
            MediaCandidate(url=u, label=guess_label(u), bitrate=bitrates.get(u) or guess_bitrate(u))
            for u in unique_urls(urls)
        ]
        return ExtractionResult(
            platform=platform,
            title=info.get('title') or '',
            thumb=info.get('thumbnail') or '',
            urls=media,
            best_url=pick_best_url(media),
        )


ytdlp_fallback = YtdlpFallback()
