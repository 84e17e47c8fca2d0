#!/usr/bin/env python3
"""animate.py

One video per zip code showing standing water date by date.

For each zip, for each valid date (ascending):
1. Crop/mask the date's raster to the zip polygon
2. Build a folium map: satellite basemap, translucent water overlay, zip
   outline, fixed date label, view locked to the zip's bounding box
3. Save the map to a single reused HTML file
4. Load it in headless Chromium, wait for the basemap tiles, screenshot

The frames are then encoded into `<zip>.mp4` at a fixed frame rate.

The wait before each screenshot is a real, fixed delay (capture_delay_ms in
the config): tiles load asynchronously after the page `load` event and an
early capture comes out blank. The temp HTML is shared, so rendering must stay
sequential.

Called by:
  python -m wnv.water animate [--zips 93301 93305]

Required deps: folium, playwright (plus `playwright install chromium`),
imageio with the ffmpeg plugin.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import folium
import geopandas as gpd
import imageio.v2 as imageio
import numpy as np
import rasterio
from rasterio.transform import array_bounds
from rasterio.warp import transform_bounds

from wnv.errors import InputArtifactError, SpatialReferenceError
from wnv.water.persistence import reproject_categorical
from wnv.water.rasters import crop_to_shapes


WEB_MERCATOR = "EPSG:3857"
OVERLAY_NODATA = 255

Capture = Callable[[Path, Path], None]


@dataclass
class AnimationStyle:
    tiles: str = "https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}"
    attr: str = "Esri World Imagery"
    water_rgba: Tuple[int, int, int, int] = (30, 144, 255, 170)
    boundary_color: str = "#ffcc00"
    date_format: str = "%B %d, %Y"
    width: int = 800
    height: int = 800
    water_value: int = 1

    @classmethod
    def from_config(cls, anim: Dict[str, Any], water_value: int = 1) -> "AnimationStyle":
        base = cls()
        return cls(
            tiles=anim.get("basemap_tiles", base.tiles),
            attr=anim.get("basemap_attr", base.attr),
            water_rgba=tuple(anim.get("water_rgba", base.water_rgba)),
            boundary_color=anim.get("boundary_color", base.boundary_color),
            date_format=anim.get("date_format", base.date_format),
            width=int(anim.get("width", base.width)),
            height=int(anim.get("height", base.height)),
            water_value=water_value,
        )


# -----------------------------------------------------------------------------
# Frame content
# -----------------------------------------------------------------------------

def water_rgba(data: np.ndarray, water_value: int, rgba: Sequence[int]) -> np.ndarray:
    """RGBA image: water cells coloured, everything else transparent."""
    out = np.zeros(data.shape + (4,), dtype=np.uint8)
    out[data == water_value] = np.asarray(rgba, dtype=np.uint8)
    return out


def zip_overlay(raster_path: Path, zip_gdf: gpd.GeoDataFrame, style: AnimationStyle) -> Tuple[np.ndarray, List[List[float]]]:
    """Crop a date's raster to one zip and return (rgba, [[south, west], [north, east]]).

    The crop is warped to Web Mercator so it lines up with the basemap tiles.
    """
    with rasterio.open(raster_path) as src:
        try:
            data, profile = crop_to_shapes(src, zip_gdf)
        except ValueError as e:
            raise SpatialReferenceError(f"Zip polygon does not overlap {raster_path.name}: {e}") from e

    if profile.get("nodata") is None:
        profile["nodata"] = OVERLAY_NODATA
    merc, merc_profile = reproject_categorical(data, profile, WEB_MERCATOR)

    west, south, east, north = array_bounds(merc.shape[0], merc.shape[1], merc_profile["transform"])
    west, south, east, north = transform_bounds(WEB_MERCATOR, "EPSG:4326", west, south, east, north)
    return water_rgba(merc, style.water_value, style.water_rgba), [[south, west], [north, east]]


def build_map(
    overlay: np.ndarray,
    overlay_bounds: List[List[float]],
    zip_gdf: gpd.GeoDataFrame,
    label: str,
    style: AnimationStyle,
) -> folium.Map:
    """Satellite basemap + water overlay + zip outline + date label."""
    zip_ll = zip_gdf.to_crs("EPSG:4326")
    minx, miny, maxx, maxy = zip_ll.total_bounds

    m = folium.Map(
        location=[(miny + maxy) / 2.0, (minx + maxx) / 2.0],
        tiles=None,
        zoom_control=False,
        width=style.width,
        height=style.height,
    )
    folium.TileLayer(tiles=style.tiles, attr=style.attr, name="Satellite").add_to(m)

    folium.raster_layers.ImageOverlay(
        image=overlay,
        bounds=overlay_bounds,
        name="Water",
    ).add_to(m)

    # Added after the overlay so the outline is drawn above the water
    folium.GeoJson(
        zip_ll[["geometry"]].to_json(),
        name="Zip",
        style_function=lambda _: {"color": style.boundary_color, "weight": 3, "fill": False},
    ).add_to(m)

    label_html = (
        '<div style="position: fixed; top: 14px; left: 14px; z-index: 9999; '
        "padding: 6px 12px; background: rgba(255, 255, 255, 0.85); border-radius: 4px; "
        f'font: bold 20px sans-serif; color: #222;">{label}</div>'
    )
    m.get_root().html.add_child(folium.Element(label_html))

    m.fit_bounds([[miny, minx], [maxy, maxx]])
    return m


# -----------------------------------------------------------------------------
# Capture
# -----------------------------------------------------------------------------

@dataclass
class BrowserCapture:
    """Screenshot local HTML maps with headless Chromium.

    Use as a context manager; the browser is started once and the same page
    is reused for every frame.
    """

    width: int = 800
    height: int = 800
    delay_ms: int = 3000
    _pw: Any = field(default=None, repr=False)
    _browser: Any = field(default=None, repr=False)
    _page: Any = field(default=None, repr=False)

    def __enter__(self) -> "BrowserCapture":
        # Lazy import: playwright is only needed when actually rendering
        from playwright.sync_api import sync_playwright

        self._pw = sync_playwright().start()
        self._browser = self._pw.chromium.launch(headless=True, args=["--disable-dev-shm-usage"])
        self._page = self._browser.new_page(viewport={"width": self.width, "height": self.height})
        return self

    def __call__(self, html_path: Path, png_path: Path) -> None:
        self._page.goto(html_path.resolve().as_uri(), wait_until="load")
        self._page.wait_for_timeout(self.delay_ms)
        png_path.parent.mkdir(parents=True, exist_ok=True)
        self._page.screenshot(path=str(png_path))

    def __exit__(self, *exc) -> None:
        if self._browser is not None:
            self._browser.close()
        if self._pw is not None:
            self._pw.stop()


# -----------------------------------------------------------------------------
# Per-zip rendering
# -----------------------------------------------------------------------------

def render_zip_frames(
    zip_gdf: gpd.GeoDataFrame,
    rasters: List[Tuple[dt.date, Path]],
    capture: Capture,
    *,
    style: AnimationStyle,
    tmp_html: Path,
    frames_dir: Path,
) -> List[Path]:
    """Render one PNG per date, in ascending date order. Returns frame paths."""
    frames_dir.mkdir(parents=True, exist_ok=True)
    tmp_html.parent.mkdir(parents=True, exist_ok=True)

    frames = []
    for i, (d, path) in enumerate(sorted(rasters)):
        overlay, bounds = zip_overlay(path, zip_gdf, style)
        m = build_map(overlay, bounds, zip_gdf, d.strftime(style.date_format), style)
        m.save(str(tmp_html))

        frame = frames_dir / f"{i:04d}_{d.isoformat()}.png"
        capture(tmp_html, frame)
        frames.append(frame)
    return frames


def encode_video(frames: List[Path], out_path: Path, *, fps: int) -> Path:
    """Encode frames, in the given order, into a video file."""
    if not frames:
        raise InputArtifactError(f"No frames to encode for {out_path.name}")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with imageio.get_writer(out_path, fps=fps) as writer:
        for p in frames:
            writer.append_data(imageio.imread(p))
    return out_path


def render_all(
    zips: gpd.GeoDataFrame,
    rasters: List[Tuple[dt.date, Path]],
    capture: Capture,
    *,
    style: AnimationStyle,
    out_dir: Path,
    frames_root: Path,
    tmp_html: Path,
    fps: int,
    only: Optional[Sequence[str]] = None,
) -> Dict[str, Path]:
    """Render and encode every zip sequentially. Returns zip -> video path."""
    if only:
        wanted = set(only)
        unknown = wanted - set(zips["zip"])
        if unknown:
            raise InputArtifactError(f"Unknown zip codes: {sorted(unknown)}")
        zips = zips[zips["zip"].isin(wanted)]

    videos: Dict[str, Path] = {}
    codes = sorted(zips["zip"].unique())
    for n, code in enumerate(codes, start=1):
        zip_gdf = zips[zips["zip"] == code]
        print(f"[ANIMATE] {code} ({n}/{len(codes)}): {len(rasters)} frames")
        frames = render_zip_frames(
            zip_gdf,
            rasters,
            capture,
            style=style,
            tmp_html=tmp_html,
            frames_dir=frames_root / code,
        )
        videos[code] = encode_video(frames, out_dir / f"{code}.mp4", fps=fps)
    print(f"[ANIMATE] Wrote {len(videos)} videos -> {out_dir}")
    return videos
