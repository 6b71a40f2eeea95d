"""
parcel-spine - recurring delivery timelines and derived package status.

- parcelspine.core: platform primitives (errors, results, cache, clock, logging)
- parcelspine.store: document store contract and implementations
- parcelspine.timeline: periods, status resolution, the active timeline
- parcelspine.packages: materialization, throttling, refresh manager
- parcelspine.ops: public operations
"""

__version__ = "0.1.0"
