# phishing_detector/services/page_analyzer.py

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment, Tag

from .pattern_library import PatternLibrary

logger = logging.getLogger(__name__)

SENSITIVE_INPUTS = (
    'input[type="password"], input[type="email"], input[name*="email"], '
    'input[name*="card"], input[name*="credit"]'
)
CREDENTIAL_INPUTS = 'input[type="password"], input[type="email"], input[name*="email"]'

HIGHLIGHT_STYLE = 'border: 2px solid #ff9800; box-shadow: 0 0 10px rgba(255, 152, 0, 0.5);'
FLAG_ATTR = 'data-phishing-flag'
INSECURE_SUBMIT_PROMPT = (
    'Warning: You are about to submit sensitive information over an insecure connection. Continue?'
)

_INVISIBLE_PARENTS = {'script', 'style', 'noscript', 'template', 'head', 'title'}
_WHITESPACE = re.compile(r'\s+')


@dataclass
class PageAnalysis:
    """Result of one pass over a document"""
    url: str
    flags: List[str] = field(default_factory=list)
    marked_elements: List[Dict[str, Any]] = field(default_factory=list)
    html: str = ''


def _resolve(page_url: str, ref: str) -> str:
    """Absolute form of an href / src / action; left as-is when it cannot be parsed"""
    try:
        return urljoin(page_url, ref)
    except ValueError:
        return ref


def _hostname(url: str) -> Optional[str]:
    """Lowercased hostname, '' when the URL has none, None when it cannot be parsed"""
    try:
        parsed = urlparse(url)
        parsed.port  # raises on a bad port
    except ValueError:
        return None
    return (parsed.hostname or '').lower()


class PageContentAnalyzer:
    """
    Scans a page for secondary phishing signals independent of URL scoring:
    links, forms, images, visible text and transport security.

    Each flagged element is highlighted in place; flagged links get a
    confirm() guard so the user has to agree before navigating.
    """

    def __init__(self, patterns: PatternLibrary):
        self.patterns = patterns

    def analyze(self, document: Union[str, BeautifulSoup], page_url: str) -> PageAnalysis:
        soup = document if isinstance(document, BeautifulSoup) else BeautifulSoup(document, 'html.parser')
        result = PageAnalysis(url=page_url)

        self._analyze_links(soup, page_url, result)
        self._analyze_forms(soup, page_url, result)
        self._analyze_images(soup, page_url, result)
        self._analyze_text(soup, result)
        self._check_transport(soup, page_url, result)

        result.html = str(soup)

        if result.flags:
            logger.info(f"Page analysis for {page_url}: {len(result.flags)} flags")
        return result

    # Links

    def _analyze_links(self, soup: BeautifulSoup, page_url: str, result: PageAnalysis):
        for link in soup.select('a[href]'):
            href = _resolve(page_url, link["href"].strip())

            if self.is_suspicious_link(href):
                self._mark(link, 'Suspicious link detected', href, result)

            if self.is_misleading_link(link.get_text(), href):
                self._mark(link, 'Misleading link text', href, result)

    def is_suspicious_link(self, href: str) -> bool:
        hostname = _hostname(href)
        if hostname is None:
            return True
        if hostname in self.patterns.url_shorteners:
            return True
        return '..' in href or len(href) > 100

    def is_misleading_link(self, display_text: str, href: str) -> bool:
        """Link text names a brand that the target hostname does not contain"""
        text = display_text.lower().strip()
        hostname = _hostname(href) or ''

        return any(
            brand in text and brand not in hostname
            for brand in self.patterns.substitution_brands
        )

    # Forms

    def _analyze_forms(self, soup: BeautifulSoup, page_url: str, result: PageAnalysis):
        is_secure = page_url.lower().startswith('https:')

        for form in soup.find_all('form'):
            prompt = self.submission_warning(form, page_url)
            if prompt and not form.get('onsubmit', '').startswith('if (!confirm('):
                guard = f"if (!confirm({json.dumps(prompt)})) {{ return false; }}"
                form['onsubmit'] = f"{guard} {form.get('onsubmit', '')}".strip()

            if not form.select_one(SENSITIVE_INPUTS):
                continue

            action = _resolve(page_url, (form.get('action') or '').strip())

            if not is_secure:
                self._mark(form, 'Insecure form collecting sensitive data', action, result)

            if self.is_suspicious_form_target(action):
                self._mark(form, 'Form submits to suspicious URL', action, result)

    def is_suspicious_form_target(self, url: str) -> bool:
        hostname = _hostname(url)
        if hostname is None:
            return True
        if 'secure' in hostname and 'verify' in hostname:
            return True
        return len(hostname.split('.')) > 4

    def submission_warning(self, form: Tag, page_url: str) -> Optional[str]:
        """Prompt to show before a credential form is submitted over plain http"""
        if page_url.lower().startswith('https:'):
            return None
        if form.select_one(CREDENTIAL_INPUTS):
            return INSECURE_SUBMIT_PROMPT
        return None

    # Images

    def _analyze_images(self, soup: BeautifulSoup, page_url: str, result: PageAnalysis):
        page_host = _hostname(page_url) or ''

        for img in soup.find_all('img'):
            src = (img.get('src') or '').strip()
            if not src:
                continue
            src = _resolve(page_url, src)
            if self.is_suspicious_image(src, page_host):
                self._mark(img, 'Suspicious image detected', src, result)

    def is_suspicious_image(self, src: str, page_host: str) -> bool:
        if not src.startswith('http'):
            return False
        image_host = _hostname(src)
        if image_host is None:
            return True
        return image_host != page_host and not self.patterns.is_known_cdn(image_host)

    # Text and transport

    def visible_text(self, soup: BeautifulSoup) -> str:
        root = soup.body or soup
        chunks = []
        for text in root.find_all(string=True):
            if isinstance(text, Comment):
                continue
            if any(parent.name in _INVISIBLE_PARENTS for parent in text.parents):
                continue
            chunks.append(text)
        return _WHITESPACE.sub(' ', ' '.join(chunks)).strip()

    def _analyze_text(self, soup: BeautifulSoup, result: PageAnalysis):
        full_text = self.visible_text(soup).lower()

        for phrase in self.patterns.phishing_phrases:
            if phrase in full_text:
                self._add_flag(f'Phishing keyword detected: "{phrase}"', result)

    def has_sensitive_content(self, soup: BeautifulSoup) -> bool:
        return any(form.select_one(SENSITIVE_INPUTS) for form in soup.find_all('form'))

    def _check_transport(self, soup: BeautifulSoup, page_url: str, result: PageAnalysis):
        if not page_url.lower().startswith('https:') and self.has_sensitive_content(soup):
            self._add_flag('Non-HTTPS site collecting sensitive information', result)

    # Marking

    def _add_flag(self, reason: str, result: PageAnalysis):
        logger.warning(f"Phishing Detector: {reason}")
        result.flags.append(reason)

    def _mark(self, element: Tag, reason: str, target: str, result: PageAnalysis):
        self._add_flag(reason, result)
        result.marked_elements.append({'tag': element.name, 'reason': reason, 'target': target})

        existing = [r for r in element.get(FLAG_ATTR, '').split('; ') if r]
        if reason in existing:
            return
        existing.append(reason)
        element[FLAG_ATTR] = '; '.join(existing)

        style = element.get('style', '')
        if HIGHLIGHT_STYLE not in style:
            element['style'] = f"{style.rstrip()} {HIGHLIGHT_STYLE}".strip()
        element['title'] = f"⚠️ {reason}"

        if element.name == 'a':
            message = json.dumps(f"Warning: {reason}\n\nDo you want to continue?")
            guard = f"if (!confirm({message})) {{ return false; }}"
            element['onclick'] = f"{guard} {element.get('onclick', '')}".strip()


class ContentMonitor:
    """
    Keeps a document analyzed as links and forms are added to it.

    The host calls notify_added_nodes() from its mutation callback. Analysis
    never runs inside that call: it is scheduled on the event loop after
    `debounce` seconds, and each new relevant mutation pushes the run back,
    so a burst of insertions (including ones caused by our own highlighting)
    collapses into a single pass.
    """

    def __init__(self,
                 analyzer: PageContentAnalyzer,
                 document: Union[str, BeautifulSoup],
                 page_url: str,
                 debounce: float = 0.1,
                 on_analysis: Optional[Callable[[PageAnalysis], None]] = None):
        self.analyzer = analyzer
        self.soup = document if isinstance(document, BeautifulSoup) else BeautifulSoup(document, 'html.parser')
        self.page_url = page_url
        self.debounce = debounce
        self.on_analysis = on_analysis

        self.latest: Optional[PageAnalysis] = None
        self.run_count = 0
        self._pending: Optional[asyncio.TimerHandle] = None

    def start(self) -> PageAnalysis:
        """Initial pass, equivalent to document-ready"""
        return self._run()

    def stop(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def insert_html(self, fragment: str, parent: Optional[Tag] = None) -> List[Tag]:
        """Append an HTML fragment to the document and report the new nodes"""
        target = parent or self.soup.body or self.soup
        nodes = [n for n in BeautifulSoup(fragment, 'html.parser').contents]
        for node in nodes:
            target.append(node)
        self.notify_added_nodes(nodes)
        return [n for n in nodes if isinstance(n, Tag)]

    def notify_added_nodes(self, nodes: Iterable[Any]) -> bool:
        """Returns True when a re-analysis was (re)scheduled"""
        if not any(self._is_relevant(node) for node in nodes):
            return False

        loop = asyncio.get_running_loop()
        if self._pending is not None:
            self._pending.cancel()
        self._pending = loop.call_later(self.debounce, self._run_deferred)
        return True

    @staticmethod
    def _is_relevant(node: Any) -> bool:
        if not isinstance(node, Tag):
            return False
        if node.name == 'form' or (node.name == 'a' and node.has_attr('href')):
            return True
        return node.select_one('form, a[href]') is not None

    def _run_deferred(self):
        self._pending = None
        try:
            self._run()
        except Exception as e:
            logger.error(f"Deferred page re-analysis failed for {self.page_url}: {e}", exc_info=True)

    def _run(self) -> PageAnalysis:
        self.latest = self.analyzer.analyze(self.soup, self.page_url)
        self.run_count += 1
        if self.on_analysis is not None:
            self.on_analysis(self.latest)
        return self.latest
