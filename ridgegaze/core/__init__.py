"""
core — Configuration, shared types, and the per-frame pipeline loop.

The :class:`~ridgegaze.core.pipeline.GazePipeline` facade wires the session,
scheduler, camera, calibration store and event recorder together.
"""
