# phishing_detector/services/risk_scorer.py

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .pattern_library import PatternLibrary
from .reputation_service import ReputationService
from .url_parser import ParsedURL, parse_url

logger = logging.getLogger(__name__)

MAX_SCORE = 100
KNOWN_SUSPICIOUS_PENALTY = 80

_DIGIT = re.compile(r'\d')
_LETTER = re.compile(r'[a-z]')


@dataclass
class ScoreResult:
    """Risk score with the reasons and per-section details behind it"""
    score: int
    reasons: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


class RiskScorer:
    """
    Additive heuristic risk scorer.

    Sections run in a fixed order and only ever add points:
    - Whitelist short-circuit (score 0)
    - Known suspicious domain
    - Domain characteristics, homograph and brand impersonation
    - URL structure
    - Phishing-language patterns in the full URL

    The total is capped at 100. The scorer holds no per-request state, so
    one instance can serve every navigation.
    """

    def __init__(self, reputation: ReputationService, patterns: PatternLibrary):
        self.reputation = reputation
        self.patterns = patterns

    def score(self, url: ParsedURL) -> int:
        return self.analyze(url).score

    def score_url(self, url: str) -> int:
        """Parse and score a raw URL. Raises ParseError on malformed input."""
        return self.score(parse_url(url))

    def analyze(self, url: ParsedURL) -> ScoreResult:
        domain = url.hostname

        if self.reputation.is_whitelisted(domain):
            logger.debug(f"{domain} is whitelisted")
            return ScoreResult(score=0, reasons=["whitelisted_domain"],
                               details={'domain': domain, 'whitelisted': True})

        score = 0
        reasons: List[str] = []
        details: Dict[str, Any] = {'domain': domain, 'whitelisted': False}

        if self.reputation.is_suspicious(domain):
            logger.debug(f"{domain} is in suspicious domains list")
            score += KNOWN_SUSPICIOUS_PENALTY
            reasons.append("known_suspicious_domain")
        details['reputation_score'] = score

        domain_score, domain_reasons = self._analyze_domain(url)
        score += domain_score
        reasons.extend(domain_reasons)
        details['domain_score'] = domain_score

        url_score, url_reasons = self._analyze_url_structure(url)
        score += url_score
        reasons.extend(url_reasons)
        details['url_structure_score'] = url_score

        pattern_score, pattern_reasons = self._analyze_patterns(url.href.lower())
        score += pattern_score
        reasons.extend(pattern_reasons)
        details['pattern_score'] = pattern_score

        details['raw_score'] = score
        final_score = min(score, MAX_SCORE)

        logger.debug(f"Score breakdown for {domain}: {details}")
        logger.info(f"Final risk score for {domain}: {final_score}")

        return ScoreResult(score=final_score, reasons=reasons, details=details)

    def _analyze_domain(self, url: ParsedURL) -> Tuple[int, List[str]]:
        score = 0
        reasons = []
        domain = url.hostname

        if domain.endswith(self.patterns.suspicious_tlds):
            score += 30
            reasons.append("suspicious_tld")

        if len(domain) > 30:
            score += 15
            reasons.append("long_domain")

        subdomain_count = len(domain.split('.')) - 2
        if subdomain_count > 3:
            score += 20
            reasons.append("excessive_subdomains")

        if _DIGIT.search(domain) and _LETTER.search(domain):
            score += 10
            reasons.append("mixed_digits_letters")

        if self.detect_homograph(url):
            score += 40
            reasons.append("homograph_characters")

        brand_score, brand_reason = self.brand_impersonation_score(domain)
        if brand_score:
            score += brand_score
            reasons.append(brand_reason)

        return score, reasons

    def detect_homograph(self, url: ParsedURL) -> bool:
        """Narrow check for Cyrillic / Greek letters in the (punycode-decoded) hostname"""
        hostname = url.unicode_hostname or url.hostname
        return bool(self.patterns.homograph_chars.search(hostname))

    def brand_impersonation_score(self, domain: str) -> Tuple[int, str]:
        """
        First match wins:
        brand name on a non-official domain (50), known PayPal variant (80),
        leetspeak substitution of a brand (60).
        """
        domain = domain.lower()

        for brand in self.patterns.popular_brands:
            if brand in domain and not domain.endswith((f"{brand}.com", f"{brand}.org")):
                logger.debug(f"Brand {brand} referenced by non-official domain {domain}")
                return 50, "brand_impersonation"

        for variant in self.patterns.paypal_variants:
            if variant in domain:
                logger.debug(f"PayPal impersonation detected in {domain}: {variant}")
                return 80, "paypal_impersonation"

        # Hostnames are lowercase, so substitutions are compared lowercased too
        for brand, fake_brand in self.patterns.substituted_brands():
            if fake_brand.lower() in domain:
                logger.debug(f"Character substitution of {brand} detected in {domain}: {fake_brand}")
                return 60, "character_substitution"

        return 0, ""

    def _analyze_url_structure(self, url: ParsedURL) -> Tuple[int, List[str]]:
        score = 0
        reasons = []

        if url.scheme == 'http' and any(k in url.hostname for k in self.patterns.security_keywords):
            score += 40
            reasons.append("insecure_sensitive_domain")

        if url.hostname in self.patterns.url_shorteners:
            score += 25
            reasons.append("url_shortener")

        if '..' in url.path:
            score += 30
            reasons.append("path_traversal")

        if len(url.href) > 100:
            score += 10
            reasons.append("long_url")

        if 'redirect' in url.query or 'url=' in url.query:
            score += 15
            reasons.append("redirect_parameter")

        return score, reasons

    def _analyze_patterns(self, full_url: str) -> Tuple[int, List[str]]:
        score = 0
        reasons = []

        for pattern in self.patterns.phishing_patterns:
            if pattern.search(full_url):
                score += 20
                reasons.append(f"phishing_pattern:{pattern.pattern}")

        return score, reasons
