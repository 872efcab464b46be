#!/usr/bin/env python3
"""
Viewer Soak Script
==================

Standalone script to exercise a viewer against a live relay.

This script:
    1. Connects to a running relay as a viewer (or multi-viewer)
    2. Runs for a configurable duration
    3. Logs per-stream window stats every report interval
    4. Reports a final summary

Prerequisites:
    - A relay must be running at the configured URL, with at least one
      streamer connected
    - Install the package: pip install -e .

Usage:
    python scripts/soak_viewer.py --duration 120
    python scripts/soak_viewer.py --url ws://localhost:5000 --stream main
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from robostream.stream import MultiViewer, Viewer


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _stream_viewers(runtime) -> dict:
    if isinstance(runtime, MultiViewer):
        return runtime.viewers
    return {runtime.stream_id: runtime}


async def run_soak(
    url: str,
    stream_id: str,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Run the soak.

    Args:
        url: Relay WebSocket URL
        stream_id: Stream to view, or "" for every active stream
        duration: Soak duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final summary dict
    """
    logger.info("=" * 60)
    logger.info("Viewer Soak")
    logger.info("=" * 60)
    logger.info(f"Relay URL: {url}")
    logger.info(f"Stream: {stream_id or '(all active streams)'}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Report interval: {report_interval} seconds")
    logger.info("=" * 60)

    if stream_id:
        runtime = Viewer(url, stream_id)
    else:
        runtime = MultiViewer(url)
    runtime.start()

    start_time = time.time()
    last_report_time = start_time
    frames_total: dict = {}
    dropped_peak: dict = {}

    try:
        while True:
            elapsed = time.time() - start_time

            if elapsed >= duration:
                logger.info(f"Soak duration ({duration}s) reached")
                break

            for sid, viewer in _stream_viewers(runtime).items():
                frames_total[sid] = viewer.pipeline.slot.total_put
                dropped_peak[sid] = max(dropped_peak.get(sid, 0), viewer.metrics.dropped_frames)

            if time.time() - last_report_time >= report_interval:
                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                logger.info(f"  State: {runtime.state.value}")
                viewers = _stream_viewers(runtime)
                if not viewers:
                    logger.info("  No active streams")
                for sid, viewer in sorted(viewers.items()):
                    m = viewer.metrics
                    logger.info(
                        f"  {sid}: fps={m.frames_received} "
                        f"late={m.avg_latency_ms:.1f}ms dropped={m.dropped_frames} "
                        f"reconnects={viewer.session.metrics.reconnect_count}"
                    )
                last_report_time = time.time()

            await asyncio.sleep(0.5)

    except asyncio.CancelledError:
        logger.info("Soak interrupted")
    finally:
        await runtime.close()

    total_time = time.time() - start_time
    received = sum(frames_total.values())
    avg_fps = received / total_time if total_time > 0 else 0

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Streams seen: {sorted(frames_total)}")
    logger.info(f"Frames decoded: {received}")
    logger.info(f"Average FPS (all streams): {avg_fps:.1f}")
    logger.info(f"Peak dropped per connection: {dropped_peak}")
    logger.info("=" * 60)

    if received > 0:
        logger.info("SOAK PASSED - frames received")
    else:
        logger.error("SOAK FAILED - no frames received")

    return {
        "duration": total_time,
        "streams": sorted(frames_total),
        "frames_received": received,
        "avg_fps": avg_fps,
        "dropped_peak": dropped_peak,
    }


def main():
    parser = argparse.ArgumentParser(description="Soak a robostream viewer against a relay")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("ROBOSTREAM_RELAY_URL", "ws://localhost:5000"),
        help="Relay WebSocket URL",
    )
    parser.add_argument(
        "--stream",
        type=str,
        default="",
        help="Stream id to view (default: follow every active stream)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Soak duration in seconds (default: 120)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    try:
        result = asyncio.run(run_soak(
            url=args.url,
            stream_id=args.stream,
            duration=args.duration,
            report_interval=args.report_interval,
        ))
    except KeyboardInterrupt:
        logger.info("Soak interrupted by user")
        sys.exit(1)

    sys.exit(0 if result["frames_received"] > 0 else 1)


if __name__ == "__main__":
    main()
