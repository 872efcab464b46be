"""
robostream: OpenCV Desktop Viewer
=================================

Architecture:
    Main thread : asyncio event loop running the viewer sessions; every
                  stream is drawn into its own cv2 window at the display
                  refresh tick, with a stats panel on top

Modes:
    --stream main   : view one stream (viewer role)
    (no --stream)   : follow every active stream (multi-viewer role)

Usage:  python viewer.py --relay ws://localhost:5000
Controls: q/ESC quit, o toggle stats overlay, s print stats
"""

import argparse
import asyncio
import os
from typing import Callable, Optional

import cv2
import numpy as np

from robostream.models.metrics import Metrics
from robostream.stream import MultiViewer, Viewer, WindowRenderer
from robostream.stream.frame import DecodedFrame


# =============================================================================
# Configuration
# =============================================================================

RELAY_URL = os.getenv("ROBOSTREAM_RELAY_URL", "ws://localhost:5000")
KEY_POLL_SECONDS = 0.05


# =============================================================================
# Overlay
# =============================================================================

def _latency_color(latency_ms: float) -> tuple:
    """Green when on time, amber when windows run late, red beyond that."""
    if latency_ms < 50:
        return (80, 200, 80)
    if latency_ms < 150:
        return (0, 190, 255)
    return (60, 60, 230)


def draw_stats_overlay(canvas: np.ndarray, stream_id: str, metrics: Metrics) -> np.ndarray:
    """Semi-transparent stats panel in the top-left corner."""
    lines = [
        (f"stream  {stream_id}", (230, 230, 230)),
        (f"fps     {metrics.frames_received}", (230, 230, 230)),
        (f"late    {metrics.avg_latency_ms:.1f} ms", _latency_color(metrics.avg_latency_ms)),
        (f"dropped {metrics.dropped_frames}", (60, 60, 230) if metrics.dropped_frames else (230, 230, 230)),
    ]

    px, py, line_h = 8, 8, 20
    panel_w, panel_h = 190, 12 + line_h * len(lines)

    overlay = canvas.copy()
    cv2.rectangle(overlay, (px, py), (px + panel_w, py + panel_h), (20, 20, 20), -1)
    cv2.addWeighted(overlay, 0.75, canvas, 0.25, 0, canvas)

    for i, (text, color) in enumerate(lines):
        cv2.putText(canvas, text, (px + 8, py + 20 + i * line_h),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.45, color, 1, cv2.LINE_AA)
    return canvas


class StatsWindowRenderer(WindowRenderer):
    """WindowRenderer that draws the stream's metrics on every frame."""

    def __init__(self, metrics_of: Callable[[str], Optional[Metrics]]) -> None:
        super().__init__(title_prefix="robostream")
        self.metrics_of = metrics_of
        self.show_overlay = True

    def compose(self, frame: DecodedFrame) -> np.ndarray:
        metrics = self.metrics_of(frame.stream_id)
        if not self.show_overlay or metrics is None:
            return frame.image
        return draw_stats_overlay(frame.image.copy(), frame.stream_id, metrics)


# =============================================================================
# Main
# =============================================================================

def print_stats(runtime) -> None:
    if isinstance(runtime, MultiViewer):
        snapshot = runtime.registry.metrics_snapshot()
    else:
        snapshot = {runtime.stream_id: runtime.metrics}

    if not snapshot:
        print("[stats] no active streams")
    for stream_id, m in snapshot.items():
        print(
            f"[stats] {stream_id}: fps={m.frames_received} "
            f"late={m.avg_latency_ms:.1f}ms dropped={m.dropped_frames}"
        )


async def run(relay_url: str, stream_id: Optional[str], refresh_hz: float) -> None:
    runtime = None

    def metrics_of(sid: str) -> Optional[Metrics]:
        if isinstance(runtime, MultiViewer):
            viewer = runtime.registry.get(sid)
            return viewer.metrics if viewer is not None else None
        if runtime is not None:
            return runtime.metrics
        return None

    renderer = StatsWindowRenderer(metrics_of)

    if stream_id:
        runtime = Viewer(relay_url, stream_id, renderer=renderer, refresh_hz=refresh_hz)
        print(f"[viewer] Viewing stream {stream_id!r} via {relay_url}")
    else:
        runtime = MultiViewer(relay_url, renderer=renderer, refresh_hz=refresh_hz)
        print(f"[viewer] Following all active streams via {relay_url}")
    runtime.start()

    try:
        while True:
            await asyncio.sleep(KEY_POLL_SECONDS)
            key = renderer.poll_key()
            if key == ord('q') or key == 27:
                break
            elif key == ord('o'):
                renderer.show_overlay = not renderer.show_overlay
                print(f"[toggle] stats overlay: {'ON' if renderer.show_overlay else 'OFF'}")
            elif key == ord('s'):
                print_stats(runtime)
    finally:
        await runtime.close()
        renderer.close()
        cv2.destroyAllWindows()


def main():
    parser = argparse.ArgumentParser(description="robostream desktop viewer")
    parser.add_argument("--relay", default=RELAY_URL, help="Relay WebSocket URL")
    parser.add_argument(
        "--stream",
        default=None,
        help="Stream id to view (omit to follow every active stream)",
    )
    parser.add_argument(
        "--refresh-hz",
        type=float,
        default=60.0,
        help="Display refresh rate draws are aligned to (default: 60)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(run(args.relay, args.stream, args.refresh_hz))
    except KeyboardInterrupt:
        pass
    print("\n[viewer] Shutdown.")


if __name__ == "__main__":
    main()
