"""Shared fixtures: an in-memory catalog served through httpx.MockTransport."""

import base64
import json
from typing import Dict, List, Optional, Tuple

import httpx
import numpy as np
import pytest

from preset_catalog.audio import AudioBuffer
from preset_catalog.catalog import PresetCatalog
from preset_catalog.transport import HttpxFetcher

BASE_URL = "https://presets.example.com/catalog"
FLAT_URL = "https://flat.example.com/kit"

ROOT_INDEX = {
    "name": "Preset Catalog",
    "entries": [
        {"type": "index", "name": "FluidR3 GM", "path": "FluidR3_GM/index.json",
         "description": "General MIDI soundfont", "presetCount": 3},
        {"type": "index", "name": "Strings", "path": "strings/index.json", "presetCount": 1},
        {"type": "index", "name": "chiptune collection", "path": "Chiptune/v2/index.json",
         "instrumentCount": 2},
    ],
}

FLUID_INDEX = {
    "name": "FluidR3 GM",
    "entries": [
        {"type": "preset", "name": "Grand Piano", "path": "grand-piano/preset.json",
         "category": "sampler", "tags": ["piano", "grand"], "gmProgram": 0, "zoneCount": 2},
        {"type": "preset", "name": "Acoustic Grand Piano", "path": "acoustic-grand/preset.json",
         "category": "sampler", "tags": ["keys"], "gmProgram": 1, "zoneCount": 1},
        {"type": "preset", "name": "Electric Keys", "path": "electric-keys/preset.json",
         "category": "synth", "tags": ["Piano", "electric"], "gmProgram": 4},
    ],
}

STRINGS_INDEX = {
    "name": "Strings",
    "entries": [
        {"type": "preset", "name": "Violin Section", "path": "violin/preset.json",
         "category": "sampler", "tags": ["strings"], "gmProgram": 40},
    ],
}

CHIPTUNE_INDEX = {
    "name": "chiptune collection",
    "entries": [
        {"type": "index", "name": "Game A", "path": "game-a/index.json", "instrumentCount": 1},
        {"type": "preset", "name": "Square Lead", "path": "square.json",
         "category": "synth", "tags": ["lead", "8bit"]},
    ],
}

GAME_A_INDEX = {
    "name": "Game A",
    "entries": [
        {"type": "preset", "name": "Boss Bass", "path": "bass.json",
         "category": "synth", "tags": ["bass"]},
    ],
}

PCM_SAMPLES = np.array([0.0, 0.5, -0.5, 1.0], dtype="<f4")


def pcm_base64(samples: np.ndarray = PCM_SAMPLES) -> str:
    return base64.b64encode(samples.astype("<f4").tobytes()).decode("ascii")


GRAND_PIANO = {
    "name": "Grand Piano",
    "category": "sampler",
    "node": {
        "type": "sampler",
        "config": {
            "zones": [
                {"keyRange": {"low": 0, "high": 63}, "pitch": {"rootNote": 48},
                 "audio": {"type": "external", "path": "samples/low.wav"}},
                {"keyRange": {"low": 64, "high": 127}, "pitch": {"rootNote": 72},
                 "audio": {"type": "contentAddressed", "sha256": "abc123", "codec": "wav"}},
            ],
        },
    },
}

ACOUSTIC_GRAND = {
    "name": "Acoustic Grand Piano",
    "node": {
        "type": "sampler",
        "config": {"zones": [{"audio": {"type": "inlinePcm", "data": pcm_base64(), "sampleRate": 22050}}]},
    },
}

ELECTRIC_KEYS = {"name": "Electric Keys", "node": {"type": "synth", "config": {"waveform": "sine"}}}


class FakeCatalogServer:
    """URL -> (status, body) routes; records every requested URL."""

    def __init__(self, base_url: str = BASE_URL) -> None:
        self.base_url = base_url
        self.routes: Dict[str, Tuple[int, bytes]] = {}
        self.requests: List[str] = []

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def add_json(self, path: str, doc: dict, status: int = 200) -> None:
        self.routes[self.url(path)] = (status, json.dumps(doc).encode("utf-8"))

    def add_bytes(self, path: str, body: bytes, status: int = 200) -> None:
        self.routes[self.url(path)] = (status, body)

    def fail(self, path: str, status: int = 500) -> None:
        self.routes[self.url(path)] = (status, b"")

    def count(self, path: str) -> int:
        return self.requests.count(self.url(path))

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        status, body = self.routes.get(url, (404, b"not found"))
        return httpx.Response(status, content=body)


class RecordingDecoder:
    """Stands in for the host's audio decoder; one stereo frame per input byte."""

    def __init__(self, fail_on: Optional[bytes] = None, sample_rate: int = 44100) -> None:
        self.calls: List[bytes] = []
        self.fail_on = fail_on
        self.sample_rate = sample_rate

    async def __call__(self, raw: bytes) -> AudioBuffer:
        self.calls.append(raw)
        if self.fail_on is not None and raw == self.fail_on:
            raise ValueError("unsupported format")
        return AudioBuffer(data=np.zeros((2, len(raw)), dtype=np.float32), sample_rate=self.sample_rate)


def make_catalog(server: FakeCatalogServer, decoder=None, **kwargs) -> PresetCatalog:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    return PresetCatalog(
        server.base_url,
        fetcher=HttpxFetcher(client),
        decoder=decoder or RecordingDecoder(),
        **kwargs,
    )


@pytest.fixture
def server():
    s = FakeCatalogServer()
    s.add_json("index.json", ROOT_INDEX)
    s.add_json("FluidR3_GM/index.json", FLUID_INDEX)
    s.add_json("strings/index.json", STRINGS_INDEX)
    s.add_json("Chiptune/v2/index.json", CHIPTUNE_INDEX)
    s.add_json("Chiptune/v2/game-a/index.json", GAME_A_INDEX)
    s.add_json("FluidR3_GM/grand-piano/preset.json", GRAND_PIANO)
    s.add_json("FluidR3_GM/acoustic-grand/preset.json", ACOUSTIC_GRAND)
    s.add_json("FluidR3_GM/electric-keys/preset.json", ELECTRIC_KEYS)
    s.add_bytes("FluidR3_GM/grand-piano/samples/low.wav", b"LOWWAV")
    s.add_bytes("samples/abc123.wav", b"HIGHWAV")
    return s


@pytest.fixture
def flat_server():
    s = FakeCatalogServer(FLAT_URL)
    s.add_json("index.json", {
        "name": "Drum Kit",
        "description": "A single flat library",
        "entries": [
            {"type": "preset", "name": "Kick", "path": "kick.json", "category": "sampler", "tags": ["drum"]},
            {"type": "preset", "name": "Snare", "path": "snare.json", "category": "sampler", "tags": ["drum"]},
        ],
    })
    s.add_json("kick.json", {"name": "Kick", "node": {"type": "sampler", "config": {"zones": []}}})
    return s


@pytest.fixture
def decoder():
    return RecordingDecoder()


@pytest.fixture
def catalog(server, decoder):
    return make_catalog(server, decoder)
