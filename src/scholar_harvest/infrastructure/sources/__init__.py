"""
Search providers.

- SemanticScholarClient: primary, paginated Graph API search
- GoogleScholarScraper: secondary, scraped fallback
"""

from .scholar_scraper import GoogleScholarScraper
from .semantic_scholar import SemanticScholarClient

__all__ = ["SemanticScholarClient", "GoogleScholarScraper"]
