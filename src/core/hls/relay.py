"""
HLS relay: a streaming decoder for media elements without an HLS demuxer.

The relay runs its own asyncio loop on a background thread. It fetches the
playlist and segments with aiohttp and re-serves them as one continuous
stream from a local aiohttp.web endpoint; the media element is pointed at
that endpoint by ``attach_media``.

Events are delivered through ``dispatch`` so a UI host can marshal them to
its own thread. Nothing is dispatched once ``destroy`` has been called.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from aiohttp import web, ClientTimeout

from src.core.hls.playlist import (
    MasterPlaylist,
    MediaPlaylist,
    PlaylistError,
    live_start_index,
    parse_playlist,
    select_variant,
)
from src.core.playback import DecoderConfig, DecoderEvent, MediaElement, PlaybackError

logger = logging.getLogger(__name__)

RELAY_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "*/*",
}


class FetchError(RuntimeError):
    """Raised by a fetcher for a non-success response."""


class AiohttpFetcher:
    """Playlist and segment downloads over a shared aiohttp session."""

    def __init__(self, timeout: Optional[ClientTimeout] = None):
        self._timeout = timeout or ClientTimeout(total=60, connect=15, sock_read=30)
        self._session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=RELAY_HEADERS)

    async def get_text(self, url: str) -> str:
        async with self._session.get(url) as resp:
            if resp.status >= 400:
                raise FetchError(f"HTTP {resp.status} for {url}")
            return await resp.text(errors="replace")

    async def get_bytes(self, url: str) -> bytes:
        async with self._session.get(url) as resp:
            if resp.status >= 400:
                raise FetchError(f"HTTP {resp.status} for {url}")
            return await resp.read()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None


@dataclass(frozen=True)
class BufferedSegment:
    sequence: int
    duration: float
    data: bytes


class SegmentWindow:
    """
    Ordered segment buffer.

    Segments before the read position have already been delivered and are
    kept until their combined duration exceeds the back-buffer budget. A new
    stream connection, as made by the media element after a seek, starts
    from the oldest retained segment.
    """

    def __init__(self, back_buffer_seconds: float):
        self.back_buffer_seconds = max(0.0, float(back_buffer_seconds))
        self._items: List[BufferedSegment] = []
        self.read_sequence: Optional[int] = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def sequences(self) -> List[int]:
        return [item.sequence for item in self._items]

    def append(self, sequence: int, duration: float, data: bytes) -> None:
        if self._items and sequence <= self._items[-1].sequence:
            return
        self._items.append(BufferedSegment(sequence, float(duration), data))

    def next_from(self, cursor: Optional[int]) -> Optional[BufferedSegment]:
        """First segment at or after ``cursor``; ``None`` starts at the oldest retained."""
        for item in self._items:
            if cursor is None or item.sequence >= cursor:
                return item
        return None

    def mark_delivered(self, sequence: int) -> None:
        if self.read_sequence is None or sequence + 1 > self.read_sequence:
            self.read_sequence = sequence + 1
        self._evict()

    @property
    def behind_seconds(self) -> float:
        if self.read_sequence is None:
            return 0.0
        return sum(i.duration for i in self._items if i.sequence < self.read_sequence)

    @property
    def ahead_seconds(self) -> float:
        if self.read_sequence is None:
            return sum(i.duration for i in self._items)
        return sum(i.duration for i in self._items if i.sequence >= self.read_sequence)

    def _evict(self) -> None:
        behind = self.behind_seconds
        while self._items and self.read_sequence is not None and self._items[0].sequence < self.read_sequence:
            if behind <= self.back_buffer_seconds:
                break
            behind -= self._items[0].duration
            self._items.pop(0)


def _direct_dispatch(fn: Callable[..., None], *args: Any) -> None:
    fn(*args)


class HlsRelayDecoder:
    def __init__(
        self,
        config: Optional[DecoderConfig] = None,
        *,
        fetcher_factory: Optional[Callable[[], Any]] = None,
        dispatch: Optional[Callable[..., None]] = None,
        host: str = "127.0.0.1",
        retry_delay: float = 0.5,
    ):
        self.config = config or DecoderConfig()
        self._fetcher_factory = fetcher_factory or AiohttpFetcher
        self._dispatch = dispatch or _direct_dispatch
        self._host = host
        self._port = 0
        self._retry_delay = max(0.0, float(retry_delay))
        self._token = uuid.uuid4().hex

        self._callbacks: Dict[DecoderEvent, List[Callable[..., None]]] = {}
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._runner: Optional[web.AppRunner] = None
        self._fetcher: Any = None
        self._started = threading.Event()
        self._start_error: Optional[Exception] = None
        self._destroyed = False

        self._cond: Optional[asyncio.Condition] = None
        self._window = SegmentWindow(self.config.back_buffer_seconds)
        self._stream_task: Optional[asyncio.Task] = None
        self._init_data: Optional[bytes] = None
        self._complete = False
        self._closed = False
        self.source_url: Optional[str] = None

    # ------------------------------------------------------------------
    # Decoder interface
    # ------------------------------------------------------------------

    @property
    def stream_url(self) -> str:
        return f"http://{self._host}:{self._port}/stream/{self._token}.ts"

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def on(self, event: DecoderEvent, callback: Callable[..., None]) -> None:
        if self._destroyed:
            return
        self._callbacks.setdefault(DecoderEvent(event), []).append(callback)

    def load_source(self, url: str) -> None:
        if self._destroyed:
            raise RuntimeError("HLS relay has been destroyed")
        if self.source_url is not None:
            raise RuntimeError("HLS relay already has a source")
        self.source_url = url
        self.start()
        self._loop.call_soon_threadsafe(self._spawn_stream, url)
        logger.info(f"HLS relay loading {url[:80]}")

    def attach_media(self, element: MediaElement) -> None:
        if self._destroyed:
            raise RuntimeError("HLS relay has been destroyed")
        self.start()
        element.set_source(self.stream_url)
        logger.debug(f"HLS relay attached media element to {self.stream_url}")

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._callbacks.clear()

        loop = self._loop
        if loop is not None and loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self._shutdown_async(), loop)
            try:
                future.result(timeout=5.0)
            except Exception as e:
                logger.warning(f"HLS relay shutdown did not complete cleanly: {e}")
            loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("HLS relay thread did not exit in time")
        logger.info("HLS relay destroyed")

    # ------------------------------------------------------------------
    # Loop thread
    # ------------------------------------------------------------------

    def start(self, timeout_s: float = 3.0) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="hls-relay", daemon=True)
        self._thread.start()
        if not self._started.wait(timeout_s):
            raise RuntimeError("HLS relay failed to start (timeout)")
        if self._start_error:
            raise self._start_error

    def _run(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._start_async())
        except Exception as exc:
            self._start_error = exc
        finally:
            self._started.set()
        if self._start_error:
            self._loop.close()
            return
        try:
            self._loop.run_forever()
        finally:
            try:
                self._loop.run_until_complete(self._shutdown_async())
            except Exception as e:
                logger.warning(f"Error during relay shutdown: {e}")
            self._loop.close()

    async def _start_async(self) -> None:
        self._cond = asyncio.Condition()
        self._fetcher = self._fetcher_factory()
        await self._fetcher.open()

        app = web.Application()
        app.router.add_get("/stream/{token}.ts", self._handle_stream)
        self._runner = web.AppRunner(app, access_log=None, shutdown_timeout=1.0)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, 0)
        await site.start()
        if site._server and site._server.sockets:
            self._port = int(site._server.sockets[0].getsockname()[1])

    async def _shutdown_async(self) -> None:
        self._closed = True
        if self._cond is not None:
            async with self._cond:
                self._cond.notify_all()
        task = self._stream_task
        self._stream_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        if self._runner is not None:
            runner = self._runner
            self._runner = None
            await runner.cleanup()
        if self._fetcher is not None:
            fetcher = self._fetcher
            self._fetcher = None
            await fetcher.close()

    def _spawn_stream(self, url: str) -> None:
        if self._closed:
            return
        self._stream_task = asyncio.ensure_future(self._stream(url))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event: DecoderEvent, *args: Any) -> None:
        if self._destroyed:
            return
        for callback in list(self._callbacks.get(event, ())):
            self._dispatch(self._guarded(callback), *args)

    def _guarded(self, callback: Callable[..., None]) -> Callable[..., None]:
        def run(*args: Any) -> None:
            if self._destroyed:
                return
            callback(*args)
        return run

    # ------------------------------------------------------------------
    # Fetch pipeline
    # ------------------------------------------------------------------

    async def _stream(self, url: str) -> None:
        try:
            media = await self._resolve_media_playlist(url)
            if media.is_encrypted:
                raise PlaybackError(
                    "Encrypted HLS streams are not supported",
                    fatal=True,
                    details=f"EXT-X-KEY METHOD={media.key_method}",
                )
            self._emit(
                DecoderEvent.MANIFEST_PARSED,
                {
                    "url": media.url,
                    "live": media.is_live,
                    "target_duration": media.target_duration,
                    "segments": len(media.segments),
                },
            )
            if media.init_uri:
                self._init_data = await self._fetch(self._fetcher.get_bytes, media.init_uri)

            start = live_start_index(media, self.config.low_latency)
            next_sequence = media.segments[start].sequence if media.segments else media.media_sequence

            while not self._closed:
                for segment in media.segments:
                    if segment.sequence < next_sequence:
                        continue
                    await self._wait_for_room()
                    if self._closed:
                        return
                    data = await self._fetch(self._fetcher.get_bytes, segment.uri)
                    async with self._cond:
                        self._window.append(segment.sequence, segment.duration, data)
                        self._cond.notify_all()
                    next_sequence = segment.sequence + 1
                if media.ended:
                    break
                await asyncio.sleep(self._reload_interval(media))
                media = await self._load_media(media.url)

            async with self._cond:
                self._complete = True
                self._cond.notify_all()
            logger.info("HLS relay finished fetching stream")
        except asyncio.CancelledError:
            raise
        except PlaybackError as e:
            self._emit(DecoderEvent.ERROR, e)
        except PlaylistError as e:
            self._emit(DecoderEvent.ERROR, PlaybackError("Malformed HLS playlist", details=str(e)))
        except Exception as e:
            logger.exception(f"HLS relay failed: {e}")
            self._emit(DecoderEvent.ERROR, PlaybackError("Failed to load the video", details=str(e)))

    async def _resolve_media_playlist(self, url: str) -> MediaPlaylist:
        playlist = await self._load(url)
        if isinstance(playlist, MasterPlaylist):
            variant = select_variant(playlist.variants, self.config.max_bandwidth)
            logger.info(
                f"HLS master playlist with {len(playlist.variants)} variants, "
                f"selected bandwidth={variant.bandwidth} resolution={variant.resolution}"
            )
            playlist = await self._load(variant.uri)
            if isinstance(playlist, MasterPlaylist):
                raise PlaylistError("Variant stream points at another master playlist")
        return playlist

    async def _load_media(self, url: str) -> MediaPlaylist:
        playlist = await self._load(url)
        if not isinstance(playlist, MediaPlaylist):
            raise PlaylistError("Expected a media playlist on reload")
        return playlist

    async def _load(self, url: str) -> MasterPlaylist | MediaPlaylist:
        text = await self._fetch(self._fetcher.get_text, url)
        if self.config.enable_worker:
            return await asyncio.to_thread(parse_playlist, text, url)
        return parse_playlist(text, url)

    async def _fetch(self, getter: Callable[[str], Any], url: str) -> Any:
        attempts = max(0, int(self.config.max_retries)) + 1
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                return await getter(url)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"HLS fetch failed ({attempt + 1}/{attempts}) for {url[:80]}: {e}")
                if attempt + 1 < attempts:
                    await asyncio.sleep(self._retry_delay * (2 ** attempt))
        raise PlaybackError("Network error while loading the stream", fatal=True, details=str(last_error))

    async def _wait_for_room(self) -> None:
        limit = max(0.0, float(self.config.max_buffer_seconds))
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or self._window.ahead_seconds < limit or limit == 0)

    def _reload_interval(self, media: MediaPlaylist) -> float:
        interval = media.target_duration or 2.0
        if self.config.low_latency:
            interval /= 2
        return max(0.5, interval)

    # ------------------------------------------------------------------
    # Local stream endpoint
    # ------------------------------------------------------------------

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        if request.match_info.get("token") != self._token:
            return web.Response(status=404, text="Unknown stream")

        resp = web.StreamResponse(status=200, headers={"Content-Type": "video/MP2T", "Cache-Control": "no-store"})
        await resp.prepare(request)

        cursor: Optional[int] = None
        wrote_init = False
        try:
            while True:
                async with self._cond:
                    await self._cond.wait_for(
                        lambda: self._closed or self._complete or self._window.next_from(cursor) is not None
                    )
                    if self._closed:
                        break
                    item = self._window.next_from(cursor)
                    if item is None:
                        break
                    self._window.mark_delivered(item.sequence)
                    self._cond.notify_all()
                if not wrote_init and self._init_data:
                    await resp.write(self._init_data)
                wrote_init = True
                await resp.write(item.data)
                cursor = item.sequence + 1
            if not self._closed:
                await resp.write_eof()
        except (ConnectionResetError, aiohttp.ClientConnectionError) as e:
            logger.debug(f"HLS relay client disconnected: {e}")
        return resp
