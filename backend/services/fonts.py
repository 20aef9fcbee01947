"""
Font registry and readiness gate.

Text measurement made before a face is actually loaded silently falls back
to a substitute font, which gives wrong widths and wrong truncation in the
final card. The gate is the single place that waits for faces to be usable:
a face counts as ready once FreeType can open it and a probe render of
representative glyphs (plus any non-ASCII characters in use) has run.

Waiting is bounded. On timeout the gate logs a warning, marks the missing
faces as degraded and lets rendering continue with Pillow's default font.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import requests
from PIL import Image, ImageDraw, ImageFont

from domain.models import Field, FieldKind
from settings import settings

logger = logging.getLogger(__name__)

PROBE_TEXT = "AaBbGgQqWw 0123456789 .,;:!?"
PROBE_SIZE = 24
FALLBACK_FONT_FILE = "DejaVuSans.ttf"
FALLBACK_BOLD_FONT_FILE = "DejaVuSans-Bold.ttf"
FONT_SUFFIXES = (".ttf", ".otf", ".ttc")

_STYLE_WEIGHTS = (
    ("thin", 100),
    ("extralight", 200),
    ("ultralight", 200),
    ("light", 300),
    ("medium", 500),
    ("semibold", 600),
    ("demibold", 600),
    ("extrabold", 800),
    ("ultrabold", 800),
    ("black", 900),
    ("heavy", 900),
    ("bold", 700),
)


@dataclass(frozen=True)
class FontSpec:
    """A (family, weight, style) triple as referenced by text fields."""
    family: str
    weight: int = 400
    italic: bool = False

    @property
    def key(self) -> Tuple[str, int, bool]:
        return (self.family.lower(), self.weight, self.italic)


def fonts_for_fields(fields: Iterable[Field]) -> List[FontSpec]:
    """Unique font specs used by text fields, in first-use order."""
    seen: Dict[Tuple[str, int, bool], FontSpec] = {}
    for f in fields:
        if f.kind != FieldKind.TEXT:
            continue
        spec = FontSpec(f.font_family, f.font_weight, f.italic)
        seen.setdefault(spec.key, spec)
    return list(seen.values())


def weight_from_style(style: str) -> int:
    normalized = (style or "").replace(" ", "").replace("-", "").lower()
    for token, weight in _STYLE_WEIGHTS:
        if token in normalized:
            return weight
    return 400


def _probe_characters(sample_text: str) -> str:
    extra = sorted({ch for ch in sample_text or "" if ord(ch) > 127 and not ch.isspace()})
    return "".join(extra)


class FontRegistry:
    """
    Maps font specs to font files.

    Sources are local paths, bare file names that Pillow resolves through
    the system font directories, or http(s) URLs downloaded into the cache
    directory on first use.
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        download_timeout: float = settings.FONT_DOWNLOAD_TIMEOUT,
    ):
        self.cache_dir = Path(cache_dir or settings.FONT_CACHE_DIR)
        self.download_timeout = download_timeout
        self._sources: Dict[Tuple[str, int, bool], str] = {}
        self._lock = threading.Lock()

    def register(self, family: str, source: str, weight: int = 400, italic: bool = False) -> FontSpec:
        spec = FontSpec(family, weight, italic)
        with self._lock:
            self._sources[spec.key] = str(source)
        return spec

    def discover(self, fonts_dir: Optional[str] = None) -> int:
        """Register every font file in `fonts_dir` under the names FreeType reports."""
        root = Path(fonts_dir or settings.FONTS_DIR)
        if not root.is_dir():
            return 0
        count = 0
        for path in sorted(p for p in root.iterdir() if p.suffix.lower() in FONT_SUFFIXES):
            try:
                face = ImageFont.truetype(str(path), PROBE_SIZE)
            except OSError:
                logger.warning("[fonts] could not open %s, skipping", path)
                continue
            family, style = face.getname()
            style = style or ""
            italic = "italic" in style.lower() or "oblique" in style.lower()
            self.register(family or path.stem, str(path), weight_from_style(style), italic)
            count += 1
        logger.info("[fonts] discovered %s font file(s) in %s", count, root)
        return count

    def knows(self, spec: FontSpec) -> bool:
        family = spec.family.lower()
        with self._lock:
            return any(key[0] == family for key in self._sources)

    def source_for(self, spec: FontSpec) -> Optional[str]:
        """Exact match first, then the closest weight of the same family and style."""
        with self._lock:
            exact = self._sources.get(spec.key)
            if exact:
                return exact
            candidates = [
                (key, source) for key, source in self._sources.items() if key[0] == spec.key[0]
            ]
        if not candidates:
            return None
        candidates.sort(key=lambda item: (item[0][2] != spec.italic, abs(item[0][1] - spec.weight)))
        return candidates[0][1]

    def _cache_path(self, url: str) -> Path:
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
        suffix = Path(url.split("?", 1)[0]).suffix or ".ttf"
        return self.cache_dir / f"{digest}{suffix}"

    @staticmethod
    def _is_remote(source: str) -> bool:
        return source.startswith(("http://", "https://"))

    def needs_fetch(self, spec: FontSpec) -> bool:
        source = self.source_for(spec)
        return bool(source and self._is_remote(source) and not self._cache_path(source).exists())

    def local_path(self, spec: FontSpec) -> Optional[str]:
        """A path FreeType can open now, or None if the face isn't available locally yet."""
        source = self.source_for(spec)
        if not source:
            return None
        if self._is_remote(source):
            cached = self._cache_path(source)
            return str(cached) if cached.exists() else None
        return source

    def fetch(self, spec: FontSpec) -> Optional[str]:
        """Download a remote face into the cache. Blocking; run it off the event loop."""
        source = self.source_for(spec)
        if not source or not self._is_remote(source):
            return self.local_path(spec)
        target = self._cache_path(source)
        if target.exists():
            return str(target)
        try:
            resp = requests.get(source, timeout=self.download_timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("[fonts] download failed for %s (%s): %s", spec.family, source, exc)
            return None
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".part")
        tmp.write_bytes(resp.content)
        tmp.replace(target)
        logger.info("[fonts] cached %s -> %s", source, target)
        return str(target)


class FontReadinessGate:
    """
    Async barrier that resolves once every requested face is usable.

    `ready()` is awaited by the generation flow; `is_ready()` is the
    synchronous check the submission endpoint uses to refuse requests while
    faces are still loading. The readiness state lives here only.
    """

    def __init__(
        self,
        registry: FontRegistry,
        timeout: float = settings.FONT_READY_TIMEOUT_SEC,
        poll_interval: float = settings.FONT_POLL_INTERVAL_SEC,
    ):
        self.registry = registry
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._probed: Dict[Tuple[str, int, bool], Set[str]] = {}
        self._degraded: Set[Tuple[str, int, bool]] = set()
        self._fetching: Set[Tuple[str, int, bool]] = set()
        self._faces: Dict[Tuple[Tuple[str, int, bool], int], ImageFont.FreeTypeFont] = {}
        self._warned: Set[Tuple[str, int, bool]] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def _is_settled(self, spec: FontSpec, chars: str) -> bool:
        with self._lock:
            if spec.key in self._degraded:
                return True
            probed = self._probed.get(spec.key)
        return probed is not None and set(chars) <= probed

    def is_ready(self, specs: Iterable[FontSpec], sample_text: str = "") -> bool:
        """True once every spec is loaded or has been given up on."""
        chars = _probe_characters(sample_text)
        return all(self._is_settled(spec, chars) for spec in specs)

    def is_degraded(self, spec: FontSpec) -> bool:
        with self._lock:
            return spec.key in self._degraded

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _probe(self, spec: FontSpec, chars: str) -> bool:
        """Open the face and draw representative glyphs once."""
        path = self.registry.local_path(spec)
        if not path:
            return False
        try:
            face = ImageFont.truetype(path, PROBE_SIZE)
        except OSError:
            return False
        text = PROBE_TEXT + chars
        scratch = Image.new("L", (PROBE_SIZE * (len(text) + 2), PROBE_SIZE * 2), 0)
        ImageDraw.Draw(scratch).text((0, 0), text, font=face, fill=255)
        if face.getlength(text) <= 0:
            return False
        with self._lock:
            self._probed.setdefault(spec.key, set()).update(chars)
            self._degraded.discard(spec.key)
        return True

    def _fetch_in_background(self, spec: FontSpec) -> None:
        with self._lock:
            if spec.key in self._fetching:
                return
            self._fetching.add(spec.key)

        def _run() -> None:
            try:
                self.registry.fetch(spec)
            finally:
                with self._lock:
                    self._fetching.discard(spec.key)

        threading.Thread(target=_run, name=f"font-fetch-{spec.family}", daemon=True).start()

    def _degrade(self, specs: Iterable[FontSpec], reason: str) -> None:
        specs = list(specs)
        with self._lock:
            self._degraded.update(spec.key for spec in specs)
        for spec in specs:
            logger.warning(
                "[fonts] %s for %s %s%s; rendering will use a fallback face",
                reason,
                spec.family,
                spec.weight,
                " italic" if spec.italic else "",
            )

    async def ready(self, specs: Iterable[FontSpec], sample_text: str = "") -> bool:
        """
        Wait until every spec is loaded and probed, or until the timeout.

        Returns True when all faces are really available, False when at least
        one was degraded (unknown family, failed download or timeout). Never
        raises for font problems.
        """
        unique = list({spec.key: spec for spec in specs}.values())
        chars = _probe_characters(sample_text)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        pending: List[FontSpec] = []
        unknown: List[FontSpec] = []
        for spec in unique:
            if self._is_settled(spec, chars) and not self.is_degraded(spec):
                continue
            if not self.registry.knows(spec):
                unknown.append(spec)
            else:
                pending.append(spec)
        if unknown:
            self._degrade(unknown, "no font registered")

        while pending:
            pending = [spec for spec in pending if not self._probe(spec, chars)]
            if not pending:
                break
            if loop.time() >= deadline:
                self._degrade(pending, f"font not ready after {self.timeout:.1f}s")
                break
            for spec in pending:
                if self.registry.needs_fetch(spec):
                    self._fetch_in_background(spec)
            await asyncio.sleep(self.poll_interval)

        return not any(self.is_degraded(spec) for spec in unique)

    def warm(self, specs: Iterable[FontSpec], sample_text: str = "") -> "asyncio.Task[bool]":
        """Start `ready()` in the background on the running loop."""
        return asyncio.get_running_loop().create_task(self.ready(list(specs), sample_text))

    # ------------------------------------------------------------------
    # Faces for rendering
    # ------------------------------------------------------------------

    def font_for(self, spec: FontSpec, size_px: int):
        """Loaded face for `spec` at `size_px`, or a fallback face (logged once per spec)."""
        size_px = max(1, int(round(size_px)))
        cache_key = (spec.key, size_px)
        with self._lock:
            cached = self._faces.get(cache_key)
            usable = spec.key in self._probed
        if cached is not None:
            return cached

        face = None
        if usable:
            path = self.registry.local_path(spec)
            if path:
                try:
                    face = ImageFont.truetype(path, size_px)
                except OSError:
                    face = None
        if face is None:
            with self._lock:
                first = spec.key not in self._warned
                self._warned.add(spec.key)
            if first:
                logger.warning("[fonts] using fallback face for %s %s", spec.family, spec.weight)
            # not cached: the real face may still arrive
            return _fallback_font(size_px, bold=spec.weight >= 600)

        with self._lock:
            self._faces[cache_key] = face
        return face


def _fallback_font(size_px: int, bold: bool = False):
    try:
        return ImageFont.truetype(FALLBACK_BOLD_FONT_FILE if bold else FALLBACK_FONT_FILE, size_px)
    except OSError:
        return ImageFont.load_default(size=size_px)


@lru_cache(maxsize=1)
def get_default_gate() -> FontReadinessGate:
    """Process-wide gate backed by the fonts found in FONTS_DIR."""
    registry = FontRegistry()
    registry.discover(settings.FONTS_DIR)
    return FontReadinessGate(registry)
