# phishing_detector/services/pattern_library.py
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Set, Tuple


DEFAULT_WHITELIST = {
    'google.com', 'facebook.com', 'microsoft.com', 'apple.com',
    'amazon.com', 'github.com', 'stackoverflow.com', 'wikipedia.org',
}


@dataclass(frozen=True)
class PatternLibrary:
    """
    Static pattern data for URL scoring and page analysis.

    Nothing here changes at runtime; the scorer and the page analyzer
    share one instance.
    """
    suspicious_tlds: Tuple[str, ...] = ('.tk', '.ml', '.ga', '.cf', '.gq')

    url_shorteners: Set[str] = field(default_factory=lambda: {
        'bit.ly', 'tinyurl.com', 't.co', 'goo.gl', 'ow.ly',
    })

    # Hostname words that should never be served over plain http
    security_keywords: Tuple[str, ...] = (
        'login', 'secure', 'account', 'bank', 'paypal', 'paypa',
    )

    phishing_patterns: List[Pattern] = field(default_factory=lambda: [
        re.compile(pattern, re.IGNORECASE) for pattern in (
            r'secure.*verify',
            r'account.*suspended',
            r'click.*here.*immediately',
            r'urgent.*action.*required',
            r'verify.*identity',
            r'update.*payment',
            r'suspicious.*activity',
            r'limited.*time',
        )
    ])

    popular_brands: Tuple[str, ...] = (
        'paypal', 'amazon', 'google', 'facebook', 'microsoft',
        'apple', 'netflix', 'instagram', 'twitter', 'linkedin',
        'ebay', 'walmart', 'target', 'chase', 'wellsfargo',
    )

    # Shorter list used for substitution checks and link text
    substitution_brands: Tuple[str, ...] = (
        'paypal', 'amazon', 'google', 'facebook', 'microsoft', 'apple',
    )

    # (original, fake)
    character_substitutions: Tuple[Tuple[str, str], ...] = (
        ('o', '0'),
        ('l', '1'),
        ('l', 'I'),
        ('a', '@'),
        ('a', '4'),
        ('e', '3'),
        ('s', '5'),
        ('g', '9'),
    )

    paypal_variants: Tuple[str, ...] = (
        'paypa1',   # 1 for l
        'paypai',   # i (or a lowercased I) for l
        'payp4l',
        'p4ypal',
        'payp@l',
        'papyal',   # transposed
        'payapl',   # transposed
        'paipal',
        'paypal1',
        'paypal-',
    )

    homograph_chars: Pattern = field(default_factory=lambda: re.compile(r'[а-я]|[α-ω]'))

    phishing_phrases: Tuple[str, ...] = (
        'verify your account',
        'suspended account',
        'click here immediately',
        'urgent action required',
        'limited time offer',
        'congratulations you have won',
        'update payment information',
        'suspicious activity detected',
    )

    known_cdns: Tuple[str, ...] = (
        'cloudfront.net', 'cloudflare.com', 'fastly.com',
        'jsdelivr.net', 'unpkg.com', 'cdnjs.cloudflare.com',
    )

    default_whitelist: Set[str] = field(default_factory=lambda: set(DEFAULT_WHITELIST))

    def is_known_cdn(self, hostname: str) -> bool:
        return any(cdn in hostname for cdn in self.known_cdns)

    def substituted_brands(self) -> List[Tuple[str, str]]:
        """All (brand, fake) pairs produced by a single substitution rule"""
        fakes = []
        for brand in self.substitution_brands:
            for original, fake in self.character_substitutions:
                fake_brand = brand.replace(original, fake)
                if fake_brand != brand:
                    fakes.append((brand, fake_brand))
        return fakes
