"""
Article extraction from raw HTML.

Semantic extraction (readability) is tried first; when it yields too little
text a selector-driven heuristic takes over. Both tiers share metadata
extraction, paywall detection, language sniffing and quality scoring.
"""

import re
from dataclasses import replace
from typing import Dict, List, Optional

from bs4 import BeautifulSoup
from readability import Document

from ..utils.logging import get_logger
from .exceptions import ContentExtractionError
from .models import ArticleContent, ContentMetadata, ExtractionMethod

logger = get_logger(__name__)

MIN_CONTENT_LENGTH = 200
MIN_PARAGRAPH_LENGTH = 50

SEMANTIC_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.3

PAYWALL_INDICATORS = (
    "paywall",
    "subscription required",
    "subscribe to read",
    "premium content",
    "members only",
    "sign up to continue",
    "register to read",
    "unlock this article",
    "subscriber exclusive",
    "subscription-only",
)

BOILERPLATE_SELECTOR = "script, style, nav, header, footer, aside"
TITLE_SELECTOR = "h1, .title, .headline, .article-title"
AUTHOR_SELECTOR = ".author, .byline, [rel=\"author\"], .writer"
CONTENT_SELECTORS = (
    "article",
    "[role=\"main\"]",
    ".article-body",
    ".post-content",
    ".entry-content",
    ".content",
    ".story-body",
    ".article-content",
    "main",
)

# Declaration order breaks ties between languages.
LANGUAGE_STOP_WORDS = {
    "en": ("the", "and", "is", "in", "to", "of", "a", "that", "it", "with"),
    "es": ("el", "la", "de", "que", "y", "en", "un", "es", "se", "no"),
    "fr": ("le", "de", "et", "à", "un", "il", "être", "en", "avoir"),
    "de": ("der", "die", "und", "in", "den", "von", "zu", "das", "mit", "sich"),
}
MIN_LANGUAGE_MATCHES = 2

HTML_PARSER = "lxml"


class ContentParser:
    """Turns fetched HTML into ArticleContent records."""

    def parse_html(self, html: str, url: str) -> ArticleContent:
        """
        Parse HTML content and extract clean article text.

        Args:
            html: Raw HTML content
            url: Source URL, used to resolve relative links

        Returns:
            Parsed article content

        Raises:
            ContentExtractionError: If the document is empty
        """
        if not html or not html.strip():
            raise ContentExtractionError("Cannot parse empty HTML document", "html", url)

        try:
            content = self._try_semantic(html, url)
            if content is not None:
                return content
        except Exception as e:
            logger.warning("Semantic extraction failed, using heuristics", url=url, error=str(e))

        return self._extract_using_heuristics(html, url)

    def detect_paywall(self, html: str) -> bool:
        """Check whether the page mentions any known paywall phrase."""
        lower_html = html.lower()
        return any(indicator in lower_html for indicator in PAYWALL_INDICATORS)

    def extract_metadata(self, html: str) -> ContentMetadata:
        """
        Extract Open Graph, Twitter Card and article metadata.

        Args:
            html: Raw HTML content

        Returns:
            ContentMetadata tagged as a fallback extraction
        """
        return self._metadata_from_soup(BeautifulSoup(html, HTML_PARSER))

    def _try_semantic(self, html: str, url: str) -> Optional[ArticleContent]:
        document = Document(html, url=url)
        summary = document.summary(html_partial=True)
        text = self._strip_html(summary).strip()

        if len(text) < MIN_CONTENT_LENGTH:
            return None

        soup = BeautifulSoup(html, HTML_PARSER)
        metadata = replace(
            self._metadata_from_soup(soup),
            extraction_method=ExtractionMethod.SEMANTIC,
            extraction_confidence=SEMANTIC_CONFIDENCE
        )

        return self._build_content(
            html,
            text=text,
            title=document.short_title() or "",
            author=self._find_author(soup, metadata),
            metadata=metadata
        )

    def _extract_using_heuristics(self, html: str, url: str) -> ArticleContent:
        soup = BeautifulSoup(html, HTML_PARSER)
        metadata = replace(
            self._metadata_from_soup(soup),
            extraction_method=ExtractionMethod.FALLBACK,
            extraction_confidence=FALLBACK_CONFIDENCE
        )

        for element in soup.select(BOILERPLATE_SELECTOR):
            element.decompose()

        title_element = soup.select_one(TITLE_SELECTOR)
        title = title_element.get_text().strip() if title_element else ""

        content = ""
        for selector in CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            candidate = element.get_text().strip()
            if len(candidate) > MIN_CONTENT_LENGTH:
                content = candidate
                break

        if not content:
            paragraphs = (p.get_text().strip() for p in soup.find_all("p"))
            content = "\n\n".join(text for text in paragraphs if len(text) > MIN_PARAGRAPH_LENGTH)

        logger.debug("Used heuristic extraction", url=url, content_length=len(content))

        return self._build_content(
            html,
            text=content,
            title=title,
            author=self._find_author(soup, metadata),
            metadata=metadata
        )

    def _build_content(
        self,
        html: str,
        text: str,
        title: str,
        author: str,
        metadata: ContentMetadata
    ) -> ArticleContent:
        return ArticleContent(
            text=text,
            title=title,
            author=author,
            publish_date=self._extract_date_from_metadata(metadata),
            language=self._detect_language(text),
            word_count=self._count_words(text),
            metadata=metadata,
            paywall_detected=self.detect_paywall(html),
            quality_score=self._calculate_quality_score(text, metadata)
        )

    def _metadata_from_soup(self, soup: BeautifulSoup) -> ContentMetadata:
        canonical = soup.select_one("link[rel=\"canonical\"]")
        return ContentMetadata(
            open_graph=self._collect_meta(soup, "meta[property^=\"og:\"]", "property", "og:"),
            twitter_card=self._collect_meta(soup, "meta[name^=\"twitter:\"]", "name", "twitter:"),
            article=self._collect_meta(soup, "meta[property^=\"article:\"]", "property", "article:"),
            canonical_url=(canonical.get("href") or "").strip() if canonical else ""
        )

    @staticmethod
    def _collect_meta(soup: BeautifulSoup, selector: str, attribute: str, prefix: str) -> Dict[str, str]:
        values = {}
        for tag in soup.select(selector):
            key = tag.get(attribute, "")[len(prefix):]
            content = tag.get("content")
            if key and content:
                values[key] = content
        return values

    @staticmethod
    def _find_author(soup: BeautifulSoup, metadata: ContentMetadata) -> str:
        element = soup.select_one(AUTHOR_SELECTOR)
        if element is not None:
            author = element.get_text().strip()
            if author:
                return author

        meta_author = soup.find("meta", attrs={"name": "author"})
        if meta_author is not None and meta_author.get("content"):
            return meta_author["content"].strip()

        return metadata.article.get("author", "")

    @staticmethod
    def _strip_html(html: str) -> str:
        return BeautifulSoup(html, HTML_PARSER).get_text()

    @staticmethod
    def _count_words(text: str) -> int:
        return len(text.split())

    @staticmethod
    def _detect_language(text: str) -> Optional[str]:
        padded = " {} ".format(re.sub(r"\s+", " ", text.lower()))

        scores: List[tuple] = []
        for language, words in LANGUAGE_STOP_WORDS.items():
            matches = sum(1 for word in words if f" {word} " in padded)
            scores.append((language, matches))

        best_language, best_matches = max(scores, key=lambda score: score[1])
        if best_matches < MIN_LANGUAGE_MATCHES:
            return None
        return best_language

    @staticmethod
    def _extract_date_from_metadata(metadata: ContentMetadata) -> Optional[str]:
        return (
            metadata.article.get("published_time")
            or metadata.open_graph.get("published_time")
            or metadata.article.get("modified_time")
            or metadata.open_graph.get("updated_time")
            or None
        )

    @staticmethod
    def _calculate_quality_score(text: str, metadata: ContentMetadata) -> float:
        score = 0.4 if metadata.extraction_method == ExtractionMethod.SEMANTIC else 0.1

        text_length = len(text)
        if text_length > 1000:
            score += 0.3
        elif text_length > 500:
            score += 0.2
        elif text_length > 200:
            score += 0.1

        if metadata.open_graph:
            score += 0.1
        if metadata.article:
            score += 0.1
        if metadata.canonical_url:
            score += 0.1

        return max(0.0, min(1.0, round(score, 4)))
