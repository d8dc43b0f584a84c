"""
Incremental maintenance of aggregate documents (teacher stats, uploader caches)
driven by database change events.
"""
