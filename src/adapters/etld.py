"""Base-domain (eTLD+1) lookup backed by the public suffix list."""

from __future__ import annotations

from urllib.parse import urlsplit

import tldextract


class BaseDomainResolver:
    """Reduce a URL to its registrable domain.

    Uses the suffix list snapshot bundled with tldextract so lookups never
    touch the network.
    """

    def __init__(self) -> None:
        # Private suffixes (github.io, blogspot.com) count, as in the browser.
        self._extract = tldextract.TLDExtract(
            suffix_list_urls=(),
            cache_dir=None,
            include_psl_private_domains=True,
        )

    def base_domain(self, url: str) -> str:
        try:
            host = urlsplit(url).hostname or ""
        except ValueError:
            return ""
        if not host:
            return ""

        parts = self._extract(host)
        if parts.domain and parts.suffix:
            return f"{parts.domain}.{parts.suffix}"
        # Not enough labels (localhost, bare suffixes, IP addresses).
        return host
