"""
robostream
==========

Live camera frame streaming between robots and operators.

A streamer (the robot) captures frames, encodes them as JPEG and pushes
them over a WebSocket to a relay. Viewers (operators) register for one
stream id and render the frames they receive; a multi-viewer follows
the relay's active-streams broadcasts and opens a viewer per stream.

Components:
    - models: pydantic models for control messages, settings and metrics
    - stream: transport session, pipelines, registry, stats
    - config: YAML + environment configuration
    - main: FastAPI service hosting one role

Example:
    from robostream.stream import MultiViewer
    
    multi = MultiViewer("ws://localhost:5000")
    multi.start()
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
