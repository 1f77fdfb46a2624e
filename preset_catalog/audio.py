"""
Audio Reference Resolution

Turns a zone's audio reference into a decoded ``AudioBuffer`` through the
audio cache.  Each reference variant picks its own cache key and source:

  variant            cache key                  source
  external           sha256, else resolved URL  <preset dir>/<path|url>
  contentAddressed   sha256                     <catalog root>/samples/<sha256>.<codec>
  inlineFile         "inline:" + data[:32]      base64 payload, then decoder
  inlinePcm          "pcm:" + data[:32]         base64 float32 LE, decoder bypassed

The decoder is whatever async ``bytes -> AudioBuffer`` callable the host
supplies; ``SoundfileDecoder`` is used when none is given.
"""

import asyncio
import base64
import binascii
import io
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np
import soundfile as sf
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from .cache import BoundedCache, InFlight
from .config import DEFAULT_AUDIO_CACHE_SIZE
from .errors import CatalogError, DecodeError, InvalidReferenceError
from .models import (
    AudioReference,
    ContentAddressedAudio,
    ExternalAudio,
    InlineFileAudio,
    InlinePcmAudio,
    SamplerConfig,
)
from .transport import Fetcher, dir_of, fetch_bytes, join_url

INLINE_KEY_PREFIX_LENGTH = 32

_reference_adapter: TypeAdapter = TypeAdapter(AudioReference)


# ---------------------------------------------------------------------------
# Buffers and decoders
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class AudioBuffer:
    """Decoded PCM audio: float32 samples shaped (channels, frames)."""

    data: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        if self.data.ndim == 1:
            self.data = self.data.reshape(1, -1)
        if self.data.ndim != 2:
            raise ValueError(f"expected (channels, frames) samples, got shape {self.data.shape}")

    @property
    def number_of_channels(self) -> int:
        return int(self.data.shape[0])

    @property
    def length(self) -> int:
        """Frames per channel."""
        return int(self.data.shape[1])

    @property
    def duration(self) -> float:
        return self.length / self.sample_rate if self.sample_rate else 0.0

    def get_channel_data(self, channel: int) -> np.ndarray:
        return self.data[channel]


AudioDecoder = Callable[[bytes], Awaitable[AudioBuffer]]


class SoundfileDecoder:
    """Decodes WAV/FLAC/OGG bytes with libsndfile, off the event loop."""

    async def __call__(self, raw: bytes) -> AudioBuffer:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._decode, raw)

    @staticmethod
    def _decode(raw: bytes) -> AudioBuffer:
        frames, sample_rate = sf.read(io.BytesIO(raw), dtype="float32", always_2d=True)
        return AudioBuffer(data=np.ascontiguousarray(frames.T), sample_rate=int(sample_rate))


def pcm_from_base64(data: str, sample_rate: int) -> AudioBuffer:
    """Single-channel buffer from base64 little-endian float32 samples."""
    raw = _b64decode(data)
    if len(raw) % 4:
        raise DecodeError(f"inline PCM payload is {len(raw)} bytes, not a whole number of float32 samples")
    samples = np.frombuffer(raw, dtype="<f4").astype(np.float32)
    return AudioBuffer(data=samples.reshape(1, -1), sample_rate=sample_rate)


def _b64decode(data: str) -> bytes:
    try:
        return base64.b64decode(data)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"invalid base64 audio payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AudioPlan:
    """How to obtain one reference's buffer; exactly one source is set."""

    cache_key: str
    url: Optional[str] = None
    inline_data: Optional[str] = None
    pcm_sample_rate: Optional[int] = None

    @property
    def needs_fetch(self) -> bool:
        return self.url is not None

    @property
    def bypasses_decoder(self) -> bool:
        return self.pcm_sample_rate is not None


class ZoneBuffers(Mapping):
    """
    Read-only mapping from zone objects (by identity) to decoded buffers.

    Keys are compared with ``is``, so unhashable zone dicts work as keys too.
    """

    def __init__(self, pairs: Iterable[Tuple[Any, AudioBuffer]] = ()) -> None:
        self._items: Dict[int, Tuple[Any, AudioBuffer]] = {
            id(zone): (zone, buffer) for zone, buffer in pairs
        }

    def __getitem__(self, zone: Any) -> AudioBuffer:
        item = self._items.get(id(zone))
        if item is None or item[0] is not zone:
            raise KeyError(zone)
        return item[1]

    def __iter__(self) -> Iterator[Any]:
        return (zone for zone, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ZoneBuffers({len(self._items)} zones)"


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class AudioReferenceResolver:
    """Resolves audio references to decoded buffers, caching by reference identity."""

    def __init__(
        self,
        base_url: str,
        fetcher: Fetcher,
        decoder: Optional[AudioDecoder] = None,
        cache_size: int = DEFAULT_AUDIO_CACHE_SIZE,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._fetcher = fetcher
        self._decoder: AudioDecoder = decoder or SoundfileDecoder()
        self._cache: BoundedCache[str, AudioBuffer] = BoundedCache(cache_size, name="audio cache")
        self._inflight = InFlight()

    @staticmethod
    def parse_reference(ref: Union[AudioReference, Dict[str, Any]]) -> AudioReference:
        if isinstance(ref, (ExternalAudio, ContentAddressedAudio, InlineFileAudio, InlinePcmAudio)):
            return ref
        try:
            return _reference_adapter.validate_python(ref)
        except ValidationError as exc:
            raise InvalidReferenceError(f"Invalid audio reference: {exc.errors()[0]['msg']}") from exc

    def plan(
        self,
        ref: Union[AudioReference, Dict[str, Any]],
        preset_url: Optional[str] = None,
    ) -> AudioPlan:
        ref = self.parse_reference(ref)

        if isinstance(ref, ExternalAudio):
            file_path = ref.path or ref.url
            if not file_path:
                raise InvalidReferenceError("External audio reference has neither path nor url")
            base = dir_of(preset_url) if preset_url else self.base_url
            url = join_url(base, file_path)
            return AudioPlan(cache_key=ref.sha256 or url, url=url)

        if isinstance(ref, ContentAddressedAudio):
            url = f"{self.base_url}/samples/{ref.sha256}.{ref.codec}"
            return AudioPlan(cache_key=ref.sha256, url=url)

        if isinstance(ref, InlineFileAudio):
            return AudioPlan(
                cache_key=f"inline:{ref.data[:INLINE_KEY_PREFIX_LENGTH]}",
                inline_data=ref.data,
            )

        return AudioPlan(
            cache_key=f"pcm:{ref.data[:INLINE_KEY_PREFIX_LENGTH]}",
            inline_data=ref.data,
            pcm_sample_rate=ref.sample_rate,
        )

    async def decode_audio(
        self,
        ref: Union[AudioReference, Dict[str, Any]],
        preset_url: Optional[str] = None,
    ) -> AudioBuffer:
        """Decoded buffer for ``ref``; relative paths resolve against ``preset_url``'s directory."""
        plan = self.plan(ref, preset_url)
        if self._cache.has(plan.cache_key):
            logger.debug(f"Audio cache hit: {plan.cache_key}")
            return self._cache.get(plan.cache_key)  # type: ignore[return-value]
        return await self._inflight.run(("audio", plan.cache_key), lambda: self._materialize(plan))

    async def _materialize(self, plan: AudioPlan) -> AudioBuffer:
        if plan.bypasses_decoder:
            buffer = pcm_from_base64(plan.inline_data or "", plan.pcm_sample_rate or 0)
        else:
            if plan.needs_fetch:
                raw = await fetch_bytes(self._fetcher, plan.url)  # type: ignore[arg-type]
            else:
                raw = _b64decode(plan.inline_data or "")
            buffer = await self._decode(raw, plan)
        self._cache.set(plan.cache_key, buffer)
        return buffer

    async def _decode(self, raw: bytes, plan: AudioPlan) -> AudioBuffer:
        source = plan.url or plan.cache_key
        try:
            buffer = await self._decoder(raw)
        except CatalogError:
            raise
        except Exception as exc:
            raise DecodeError(f"Could not decode audio from {source}: {exc}") from exc
        logger.debug(
            f"Decoded {source}: {buffer.number_of_channels}ch x {buffer.length} @ {buffer.sample_rate}Hz"
        )
        return buffer

    async def decode_sampler_zones(
        self,
        config: Union[SamplerConfig, Dict[str, Any]],
        preset_url: Optional[str] = None,
    ) -> ZoneBuffers:
        """
        Decode every zone concurrently.

        The result is keyed by the zone objects the caller passed in: the
        ``SampleZone`` models of a parsed config, or the zone dicts of a raw
        one.  All-or-nothing: the first failing zone's error propagates and
        no partial mapping is returned.
        """
        if isinstance(config, SamplerConfig):
            parsed = config
            keys: List[Any] = list(config.zones)
        else:
            try:
                parsed = SamplerConfig.model_validate(config)
            except ValidationError as exc:
                raise InvalidReferenceError(f"Invalid sampler config: {exc.errors()[0]['msg']}") from exc
            keys = list(config.get("zones") or [])

        buffers = await asyncio.gather(*(self.decode_audio(z.audio, preset_url) for z in parsed.zones))
        return ZoneBuffers(zip(keys, buffers))

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    @property
    def cache(self) -> BoundedCache[str, AudioBuffer]:
        return self._cache

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
