"""Template cache.

Generated programs are registered as templates keyed by an input
fingerprint. Later requests with the same normalized inputs reuse the
template instead of calling the completion service again. Templates are
versioned in chains: each chain has exactly one latest version.
"""
