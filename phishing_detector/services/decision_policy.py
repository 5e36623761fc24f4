# phishing_detector/services/decision_policy.py
import logging
from dataclasses import dataclass
from enum import Enum

from .reputation_service import ReputationService
from .statistics import StatisticsService

logger = logging.getLogger(__name__)


class Action(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


@dataclass
class Decision:
    action: Action
    score: int
    domain: str


class DecisionPolicy:
    """
    Maps a risk score to an action with two exclusive thresholds
    (block if score > block_threshold, warn if score > warn_threshold)
    and applies the side effects of that action.

    Only blocks feed the suspicious-domain set; warnings just count.
    """

    def __init__(self,
                 reputation: ReputationService,
                 statistics: StatisticsService,
                 warn_threshold: int = 30,
                 block_threshold: int = 60):
        if not 0 <= warn_threshold < block_threshold <= 100:
            raise ValueError(
                f"Invalid thresholds: warn={warn_threshold}, block={block_threshold} "
                f"(need 0 <= warn < block <= 100)"
            )

        self.reputation = reputation
        self.statistics = statistics
        self.warn_threshold = warn_threshold
        self.block_threshold = block_threshold

    def decide(self, score: int) -> Action:
        if score > self.block_threshold:
            return Action.BLOCK
        if score > self.warn_threshold:
            return Action.WARN
        return Action.ALLOW

    async def enforce(self, domain: str, score: int) -> Decision:
        """Decide and apply reputation / statistics side effects"""
        action = self.decide(score)

        if action == Action.BLOCK:
            logger.warning(f"BLOCKING {domain} (Score: {score})")
            await self.reputation.mark_suspicious(domain)
            await self.statistics.increment(sites_blocked=1, threats_detected=1, alerts_shown=1)
        elif action == Action.WARN:
            logger.info(f"WARNING for {domain} (Score: {score})")
            await self.statistics.increment(threats_detected=1, alerts_shown=1)

        return Decision(action=action, score=score, domain=domain)
