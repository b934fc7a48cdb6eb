"""State layer.

Per-stream cells, rolling chart windows, and the pure functions that derive
display state from them at read time.
"""
