"""
Question session state for opaquesync.

- state: State records, steps, attempt identity and fingerprints
- cache: Per-user cache scope with idle eviction
- resources: On-disk cache for files shipped by engines
- synchronizer: Replays attempt steps against a remote session
"""
