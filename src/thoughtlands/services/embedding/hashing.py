"""
Content fingerprints for embedding cache invalidation.
"""

import hashlib

FINGERPRINT_WIDTH = 16


def content_fingerprint(content: str) -> str:
    """Fixed-width fingerprint of a note's full text.

    Used only to detect that content changed since its embedding was
    cached; it is not an integrity check.
    """
    digest = hashlib.sha256(content.encode("utf-8", errors="surrogatepass")).hexdigest()
    return digest[:FINGERPRINT_WIDTH]
