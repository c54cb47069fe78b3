"""
HTML parser for extracting the page title and outgoing links.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup


@dataclass
class ParsedContent:
    """Container for parsed web page content."""
    url: str
    title: str = ""
    links: List[str] = field(default_factory=list)


def normalize_url(href: str, base_url: str) -> str:
    """
    Resolve ``href`` against ``base_url`` and drop the fragment.

    Non-hierarchical schemes (``mailto:``, ``tel:``, ``javascript:``) are
    returned unchanged so that exclusion rules can still recognise them.
    """
    absolute_url = urljoin(base_url, href.strip())
    parsed = urlparse(absolute_url)
    if parsed.scheme not in ('http', 'https'):
        return absolute_url

    return urlunparse((
        parsed.scheme,
        parsed.netloc.lower(),
        parsed.path or '/',
        parsed.params,
        parsed.query,
        ''  # Remove fragment
    ))


class ContentParser:
    """
    Parses HTML content to extract the title and links.
    """

    def __init__(self, features: str = 'lxml'):
        self.features = features
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content.

        Args:
            url: The URL of the page, used to resolve relative links
            html_content: Raw HTML content

        Returns:
            ParsedContent with the title and links in document order
        """
        try:
            soup = BeautifulSoup(html_content, self.features)
        except Exception as e:
            self.logger.error(f"Error parsing content from {url}: {e}")
            return ParsedContent(url=url)

        parsed_content = ParsedContent(url=url)
        self._extract_title(soup, parsed_content)
        self._extract_links(soup, parsed_content, url)

        self.logger.debug(f"Parsed {url}: {len(parsed_content.links)} links")
        return parsed_content

    def _extract_title(self, soup: BeautifulSoup, parsed_content: ParsedContent):
        title_tag = soup.find('title')
        if title_tag:
            parsed_content.title = self._clean_text(title_tag.get_text())

    def _extract_links(self, soup: BeautifulSoup, parsed_content: ParsedContent, base_url: str):
        """Extract and normalize links, keeping first occurrence order."""
        links: List[str] = []
        seen = set()

        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            # Same-page anchors point back at the page itself
            if not href or href.startswith('#'):
                continue

            normalized_url = self._safe_normalize(href, base_url)
            if normalized_url and normalized_url not in seen:
                seen.add(normalized_url)
                links.append(normalized_url)

        parsed_content.links = links

    def _safe_normalize(self, href: str, base_url: str) -> Optional[str]:
        try:
            return normalize_url(href, base_url)
        except ValueError:
            self.logger.debug(f"Skipping malformed link {href!r} on {base_url}")
            return None

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
