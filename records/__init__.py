"""records/ -- Per-account health record storage for HealthTrack.

Layer rule: records/ imports only stdlib, third-party libraries, and core/.
It never resolves sessions itself; account ids arrive already authorized.
"""
