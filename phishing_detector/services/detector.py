# phishing_detector/services/detector.py

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from .alert_renderer import AlertRenderer
from .decision_policy import Action, DecisionPolicy
from .page_analyzer import ContentMonitor, PageAnalysis, PageContentAnalyzer
from .pattern_library import PatternLibrary
from .reputation_service import ReputationService
from .risk_scorer import RiskScorer, ScoreResult
from .statistics import StatisticsService
from .storage import KeyValueStore, StorageError
from .url_parser import ParseError, parse_url

logger = logging.getLogger(__name__)

UNABLE_TO_ANALYZE = "unable_to_analyze"
MIN_REANALYSIS_DEBOUNCE_MS = 100


def analysis_key(tab_id: Any) -> str:
    return f"analysis_{tab_id}"


@dataclass
class AnalysisRecord:
    url: str
    domain: str
    risk_score: int
    timestamp: float
    action: str


@dataclass
class NavigationResult:
    """What the host needs after a navigation: the action and how to present it"""
    tab_id: Any
    url: str
    status: str = "analyzed"
    action: Optional[Action] = None
    score: Optional[int] = None
    domain: Optional[str] = None
    reasons: list = field(default_factory=list)
    record: Optional[AnalysisRecord] = None
    presentation: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class PhishingDetector:
    """
    The detection engine: one instance per process, built once with its
    collaborators and handed to request handlers.

    Per navigation: parse → score → decide/enforce → record → present.
    Only the reputation sets, statistics and per-tab records are shared
    between navigations, and those go through their own services.
    """

    def __init__(self,
                 storage: KeyValueStore,
                 reputation: ReputationService,
                 scorer: RiskScorer,
                 policy: DecisionPolicy,
                 statistics: StatisticsService,
                 renderer: AlertRenderer,
                 page_analyzer: PageContentAnalyzer,
                 reanalysis_debounce: float = 0.1):
        self.storage = storage
        self.reputation = reputation
        self.scorer = scorer
        self.policy = policy
        self.statistics = statistics
        self.renderer = renderer
        self.page_analyzer = page_analyzer
        self.reanalysis_debounce = reanalysis_debounce

    @classmethod
    def build(cls,
              storage: KeyValueStore,
              patterns: Optional[PatternLibrary] = None,
              warn_threshold: int = 30,
              block_threshold: int = 60,
              data_dir: Optional[str] = None,
              banner_timeout_ms: int = 10000,
              reanalysis_debounce_ms: int = 100) -> "PhishingDetector":
        """Wire the default collaborators around a storage backend"""
        if reanalysis_debounce_ms < MIN_REANALYSIS_DEBOUNCE_MS:
            raise ValueError(
                f"Invalid reanalysis debounce: {reanalysis_debounce_ms}ms "
                f"(need >= {MIN_REANALYSIS_DEBOUNCE_MS}ms)"
            )

        patterns = patterns or PatternLibrary()
        reputation = ReputationService(storage, whitelist=patterns.default_whitelist, data_dir=data_dir)
        statistics = StatisticsService(storage)

        return cls(
            storage=storage,
            reputation=reputation,
            scorer=RiskScorer(reputation, patterns),
            policy=DecisionPolicy(reputation, statistics, warn_threshold, block_threshold),
            statistics=statistics,
            renderer=AlertRenderer(warn_threshold, block_threshold, banner_timeout_ms),
            page_analyzer=PageContentAnalyzer(patterns),
            reanalysis_debounce=reanalysis_debounce_ms / 1000,
        )

    async def start(self):
        """Load persisted reputation and statistics; failures leave empty state"""
        await self.reputation.load()
        await self.statistics.load()
        logger.info("Phishing detector ready")

    def preview(self, url: str) -> Tuple[ScoreResult, Action]:
        """Score without side effects. Raises ParseError."""
        result = self.scorer.analyze(parse_url(url))
        return result, self.policy.decide(result.score)

    async def analyze_url(self, url: str, tab_id: Any) -> NavigationResult:
        try:
            parsed = parse_url(url)
        except ParseError as e:
            # Abstain: no score, and no stale record left behind for the UI
            logger.error(f"Error analyzing URL {url!r}: {e}")
            await self._remove_record(tab_id)
            return NavigationResult(tab_id=tab_id, url=url, status=UNABLE_TO_ANALYZE, error=str(e))

        domain = parsed.hostname
        result = self.scorer.analyze(parsed)
        logger.info(f"Analyzing {domain} - Risk Score: {result.score}")

        decision = await self.policy.enforce(domain, result.score)

        record = AnalysisRecord(
            url=url,
            domain=domain,
            risk_score=result.score,
            timestamp=time.time(),
            action=decision.action.value,
        )
        await self._store_record(tab_id, record)

        return NavigationResult(
            tab_id=tab_id,
            url=url,
            action=decision.action,
            score=result.score,
            domain=domain,
            reasons=result.reasons,
            record=record,
            presentation=self._present(domain, result.score, decision.action),
        )

    def _present(self, domain: str, score: int, action: Action) -> Dict[str, Any]:
        presentation: Dict[str, Any] = {}
        try:
            presentation['badge'] = self.renderer.badge(score)
            presentation['risk_label'] = self.renderer.risk_label(score)
            if action == Action.BLOCK:
                presentation['block_page'] = self.renderer.block_page(domain, score)
                presentation['notification'] = self.renderer.notification(domain, score, action)
            elif action == Action.WARN:
                presentation['warning_banner'] = self.renderer.warning_banner(domain, score)
                presentation['notification'] = self.renderer.notification(domain, score, action)
        except Exception as e:
            # Decision and its side effects are already applied
            logger.error(f"Error rendering alert for {domain}: {e}", exc_info=True)
        return presentation

    async def _store_record(self, tab_id: Any, record: AnalysisRecord):
        try:
            await asyncio.to_thread(self.storage.set, {analysis_key(tab_id): asdict(record)})
        except StorageError as e:
            logger.error(f"Error storing analysis for tab {tab_id}: {e}")

    async def _remove_record(self, tab_id: Any):
        try:
            await asyncio.to_thread(self.storage.remove, [analysis_key(tab_id)])
        except StorageError as e:
            logger.error(f"Error removing analysis for tab {tab_id}: {e}")

    async def get_analysis(self, tab_id: Any) -> Optional[AnalysisRecord]:
        key = analysis_key(tab_id)
        try:
            stored = await asyncio.to_thread(self.storage.get, [key])
        except StorageError as e:
            logger.error(f"Error loading analysis for tab {tab_id}: {e}")
            return None

        data = stored.get(key)
        return AnalysisRecord(**data) if data else None

    async def forget_tab(self, tab_id: Any):
        await self._remove_record(tab_id)

    async def report_phishing(self, url: str) -> str:
        """
        User report: marks the hostname suspicious. Statistics are not touched.

        Raises ParseError for malformed URLs.
        """
        return await self.reputation.report_user(url)

    async def trust_site(self, domain: str) -> bool:
        return await self.reputation.trust(domain)

    def analyze_page(self, url: str, html: str) -> PageAnalysis:
        return self.page_analyzer.analyze(html, url)

    def monitor_page(self, url: str, html: str,
                     on_analysis: Optional[Callable[[PageAnalysis], None]] = None) -> ContentMonitor:
        """Keep a live document analyzed as links and forms are inserted"""
        return ContentMonitor(self.page_analyzer, html, url,
                              debounce=self.reanalysis_debounce, on_analysis=on_analysis)


class NavigationQueue:
    """
    Serializes navigation events: each submit() enqueues one scoring task
    and returns a future the worker resolves with the NavigationResult.

    Stopping the queue cancels the future of the navigation in flight and
    of every navigation still waiting, so no caller is left hanging.
    """

    def __init__(self, detector: PhishingDetector, maxsize: int = 0):
        self.detector = detector
        self.queue: "asyncio.Queue" = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional[asyncio.Task] = None

    def start(self):
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
            logger.info("Navigation worker started")

    async def stop(self):
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
            logger.info("Navigation worker stopped")

        dropped = 0
        while not self.queue.empty():
            tab_id, url, future = self.queue.get_nowait()
            if not future.done():
                future.cancel()
            self.queue.task_done()
            dropped += 1
        if dropped:
            logger.warning(f"Cancelled {dropped} queued navigations on shutdown")

    async def submit(self, tab_id: Any, url: str) -> NavigationResult:
        future = asyncio.get_running_loop().create_future()
        await self.queue.put((tab_id, url, future))
        return await future

    async def _run(self):
        while True:
            tab_id, url, future = await self.queue.get()
            try:
                result = await self.detector.analyze_url(url, tab_id)
                if not future.done():
                    future.set_result(result)
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as e:
                logger.error(f"Navigation task failed for tab {tab_id}: {e}", exc_info=True)
                if not future.done():
                    future.set_exception(e)
            finally:
                self.queue.task_done()
