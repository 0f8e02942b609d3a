"""State layer.

Process-wide, per-route state shared between pollers and observers: the
last-known-good position cache and the subscription registry. Each route's
entries are written only by that route's poller.
"""
