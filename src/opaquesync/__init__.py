"""
opaquesync — keeps a cached projection of a remote question session in
step with a locally recorded attempt history.
"""

__version__ = "0.1.0"
