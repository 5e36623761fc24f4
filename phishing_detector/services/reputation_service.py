# phishing_detector/services/reputation_service.py

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

from .storage import KeyValueStore, StorageError
from .url_parser import domain_key, parse_url, site_key

logger = logging.getLogger(__name__)

SUSPICIOUS_DOMAINS_KEY = "suspicious_domains"
TRUSTED_DOMAINS_KEY = "trusted_domains"


class ReputationService:
    """
    Domain reputation for the phishing detector.

    Holds three sets keyed by domain (lowercased, leading www. stripped):
    - whitelisted: static, fixed at startup (defaults + optional data file)
    - trusted: added by the user's "trust site" action, persisted
    - suspicious: learned from blocks and user reports, persisted

    Lookups are synchronous in-memory checks. Mutations update memory
    first, then persist through the key-value store under a lock; a failed
    save is logged and the in-memory state stays authoritative.
    """

    def __init__(self,
                 storage: KeyValueStore,
                 whitelist: Optional[Iterable[str]] = None,
                 data_dir: Optional[str] = None):
        self.storage = storage
        self.data_dir = Path(data_dir) if data_dir else None

        self.whitelisted_domains: Set[str] = {domain_key(d) for d in (whitelist or [])}
        self.trusted_domains: Set[str] = set()
        self.suspicious_domains: Set[str] = set()

        self.last_load = 0.0
        self._write_lock = asyncio.Lock()

        self._load_whitelist_file()

    def _load_whitelist_file(self):
        """Extend the static whitelist from data/whitelisted_domains.json if present"""
        if self.data_dir is None:
            return

        file_path = self.data_dir / "whitelisted_domains.json"
        if not file_path.exists():
            logger.debug(f"Whitelist file not found: {file_path}")
            return

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read whitelist file {file_path}: {e}")
            return

        domains = data.get('domains', []) if isinstance(data, dict) else data
        added = {domain_key(d) for d in domains if isinstance(d, str) and d.strip()}
        self.whitelisted_domains |= added

        logger.info(f"Loaded {len(added)} whitelisted domains from {file_path}")

    async def load(self) -> bool:
        """
        Populate the suspicious and trusted sets from storage.
        Missing keys are treated as empty; read failures are logged.
        """
        try:
            stored = await asyncio.to_thread(
                self.storage.get, [SUSPICIOUS_DOMAINS_KEY, TRUSTED_DOMAINS_KEY]
            )
        except StorageError as e:
            logger.error(f"Error loading reputation data: {e}")
            return False

        self.suspicious_domains |= {domain_key(d) for d in stored.get(SUSPICIOUS_DOMAINS_KEY, [])}
        self.trusted_domains |= {domain_key(d) for d in stored.get(TRUSTED_DOMAINS_KEY, [])}
        self.last_load = time.time()

        logger.info(f"Reputation loaded: {len(self.suspicious_domains)} suspicious, "
                    f"{len(self.trusted_domains)} trusted, "
                    f"{len(self.whitelisted_domains)} whitelisted")
        return True

    def is_whitelisted(self, domain: str) -> bool:
        key = domain_key(domain)
        return key in self.whitelisted_domains or key in self.trusted_domains

    def is_suspicious(self, domain: str) -> bool:
        return domain_key(domain) in self.suspicious_domains

    async def mark_suspicious(self, domain: str) -> bool:
        """Add a domain to the suspicious set and persist it. Idempotent."""
        key = domain_key(domain)
        if not key:
            raise ValueError("Cannot mark an empty domain as suspicious")

        async with self._write_lock:
            if key in self.suspicious_domains:
                return True
            self.suspicious_domains.add(key)
            logger.info(f"Marked {key} as suspicious")
            return await self._save(SUSPICIOUS_DOMAINS_KEY, self.suspicious_domains)

    async def report_user(self, url: str) -> str:
        """
        Explicit user report: mark the URL's hostname suspicious regardless of score.

        Raises:
            ParseError: the URL is malformed.
        """
        parsed = parse_url(url)
        await self.mark_suspicious(parsed.hostname)
        logger.info(f"User reported {parsed.hostname} as phishing")
        return parsed.domain_key

    async def trust(self, domain: str) -> bool:
        """
        Add a site to the trusted set. Accepts a bare domain or a full URL.
        Returns False if it was already trusted.

        Raises:
            ValueError: the value is not a domain or a parsable URL.
        """
        key = site_key(domain)

        async with self._write_lock:
            if key in self.trusted_domains:
                return False
            self.trusted_domains.add(key)
            logger.info(f"Trusted {key}")
            await self._save(TRUSTED_DOMAINS_KEY, self.trusted_domains)
            return True

    async def _save(self, key: str, domains: Set[str]) -> bool:
        try:
            await asyncio.to_thread(self.storage.set, {key: sorted(domains)})
            return True
        except StorageError as e:
            logger.error(f"Error saving {key}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "whitelisted_domains": len(self.whitelisted_domains),
            "trusted_domains": len(self.trusted_domains),
            "suspicious_domains": len(self.suspicious_domains),
            "last_load": self.last_load,
        }
