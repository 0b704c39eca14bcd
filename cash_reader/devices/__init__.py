"""
Device drivers.

Contains:
- nv200: SSP driver and device session for the NV200 note validator
"""
