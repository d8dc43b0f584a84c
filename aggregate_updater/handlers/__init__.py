"""
Aggregate update tasks.

Each task:
- raises ValidationSkip when the event is not relevant to it
- applies a pure transformation to one aggregate document
- returns a small result dict (`kind`, `applied`, `reason`)
"""
