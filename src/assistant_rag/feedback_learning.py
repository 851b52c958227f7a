"""Feedback learning: calibrate retrieval confidence from thumbs up/down signals."""

import time
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from .models import (
    FeedbackEntry,
    FeedbackRating,
    FeedbackStatistics,
    LearningAdjustments,
    LearningInsight,
    MessageFeedbackRecord,
    ThresholdEvaluation,
)
from .config import logger, FeedbackConfig

FEEDBACK_TYPES = ("positive", "negative")


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def query_cluster_key(query: str) -> str:
    """Group key for a query: its first three words longer than three characters, sorted."""
    words = [word for word in query.lower().split() if len(word) > 3]
    return "_".join(sorted(words[:3]))


class FeedbackLearner:
    """
    Keeps a bounded window of answer feedback and learns from it.

    The application owns the instance and passes it to the request handlers
    that record feedback and read the recommended threshold.
    """

    def __init__(
        self,
        store: Optional[Any] = None,
        max_history: int = FeedbackConfig.MAX_HISTORY,
        analysis_interval: int = FeedbackConfig.ANALYSIS_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the learner.

        Args:
            store: Object with an async `record_message_feedback(record)`, e.g. DataStore
            max_history: Number of entries kept; the oldest is dropped first
            analysis_interval: Run analyze_and_learn every this many recorded entries
            clock: Time source for entry timestamps
        """
        self.store = store
        self.max_history = max_history
        self.analysis_interval = analysis_interval
        self.clock = clock
        self.feedback_history: Deque[FeedbackEntry] = deque(maxlen=max_history)
        self.recorded_count = 0
        self.last_insights: List[LearningInsight] = []

    def __len__(self) -> int:
        return len(self.feedback_history)

    async def record_feedback(
        self,
        message_id: str,
        session_id: str,
        query: str,
        answer: str,
        confidence: float,
        sources: List[str],
        feedback_type: str,
        feedback_score: Optional[int] = None,
        feedback_comment: Optional[str] = None,
    ) -> FeedbackEntry:
        """
        Record feedback on an answer.

        The entry is added to the in-memory window first; persisting it to the
        store may fail without affecting learning.

        Returns:
            FeedbackEntry: The recorded entry
        """
        if feedback_type not in FEEDBACK_TYPES:
            raise ValueError(f"feedback_type must be one of {FEEDBACK_TYPES}, got {feedback_type!r}")

        timestamp = self.clock()
        entry = FeedbackEntry(
            id=f"feedback_{int(timestamp * 1000)}_{uuid.uuid4().hex[:9]}",
            message_id=message_id,
            session_id=session_id,
            query=query,
            answer=answer,
            confidence=confidence,
            sources=list(sources),
            feedback_type=feedback_type,
            timestamp=timestamp,
            feedback_score=feedback_score,
            feedback_comment=feedback_comment,
        )
        self.feedback_history.append(entry)
        self.recorded_count += 1

        await self._persist(entry)

        if self.analysis_interval and self.recorded_count % self.analysis_interval == 0:
            self.last_insights = self.analyze_and_learn()

        return entry

    async def _persist(self, entry: FeedbackEntry) -> None:
        if self.store is None:
            return

        try:
            record = MessageFeedbackRecord(
                message_id=entry.message_id,
                session_id=entry.session_id,
                rating=FeedbackRating.THUMBS_UP if entry.is_positive else FeedbackRating.THUMBS_DOWN,
                feedback=entry.feedback_comment or None,
            )
            await self.store.record_message_feedback(record)
            logger.info(f"Recorded {entry.feedback_type} feedback for message {entry.message_id}")
        except Exception as e:
            logger.error(f"Failed to persist feedback for message {entry.message_id}: {e}")

    def analyze_and_learn(self) -> List[LearningInsight]:
        """
        Find patterns in the current feedback window.

        Returns:
            List[LearningInsight]: Insights, in a stable order for the same history
        """
        history = list(self.feedback_history)
        insights: List[LearningInsight] = []

        low_confidence_positive = [
            f for f in history if f.confidence < FeedbackConfig.LOW_CONFIDENCE and f.is_positive
        ]
        if len(low_confidence_positive) > FeedbackConfig.LOW_CONFIDENCE_POSITIVE_MIN:
            insights.append(LearningInsight(
                pattern="Low confidence threshold may be too strict",
                occurrences=len(low_confidence_positive),
                average_confidence=_mean([f.confidence for f in low_confidence_positive]),
                positive_ratio=1.0,
                recommendation="Consider lowering confidence threshold from 0.5 to 0.4",
                kind="low_confidence_positive",
            ))

        high_confidence_negative = [
            f for f in history if f.confidence > FeedbackConfig.HIGH_CONFIDENCE and not f.is_positive
        ]
        if len(high_confidence_negative) > FeedbackConfig.HIGH_CONFIDENCE_NEGATIVE_MIN:
            insights.append(LearningInsight(
                pattern="High confidence scores despite poor answers",
                occurrences=len(high_confidence_negative),
                average_confidence=_mean([f.confidence for f in high_confidence_negative]),
                positive_ratio=0.0,
                recommendation="Review confidence calculation algorithm - may be over-confident",
                kind="high_confidence_negative",
            ))

        insights.extend(self._negative_query_patterns(history))
        insights.extend(self._source_quality(history))

        if insights:
            logger.info(f"Learning insights generated: {len(insights)}")
            for i, insight in enumerate(insights, 1):
                logger.info(f"  {i}. {insight.pattern} (occurrences: {insight.occurrences}) -> {insight.recommendation}")

        return insights

    def _negative_query_patterns(self, history: List[FeedbackEntry]) -> List[LearningInsight]:
        groups: Dict[str, List[FeedbackEntry]] = {}
        for feedback in history:
            if not feedback.is_positive:
                groups.setdefault(query_cluster_key(feedback.query), []).append(feedback)

        patterns = []
        for key, entries in groups.items():
            if len(entries) >= FeedbackConfig.QUERY_CLUSTER_MIN:
                patterns.append(LearningInsight(
                    pattern=f'Repeated issues with queries like: "{entries[0].query}"',
                    occurrences=len(entries),
                    average_confidence=_mean([e.confidence for e in entries]),
                    positive_ratio=0.0,
                    recommendation=f"Add FAQ or improve knowledge base for: {key.replace('_', ' ')}",
                    kind="knowledge_gap",
                    subject=key,
                ))
        return patterns

    def _source_quality(self, history: List[FeedbackEntry]) -> List[LearningInsight]:
        stats: Dict[str, Dict[str, int]] = {}
        for feedback in history:
            for source in feedback.sources:
                counts = stats.setdefault(source, {"positive": 0, "negative": 0})
                counts["positive" if feedback.is_positive else "negative"] += 1

        insights = []
        for source, counts in stats.items():
            total = counts["positive"] + counts["negative"]
            if total < FeedbackConfig.SOURCE_MIN_SAMPLES:
                continue
            positive_ratio = counts["positive"] / total
            if positive_ratio < FeedbackConfig.SOURCE_MIN_POSITIVE_RATIO:
                insights.append(LearningInsight(
                    pattern=f'Source "{source}" has low satisfaction',
                    occurrences=total,
                    average_confidence=0.0,
                    positive_ratio=positive_ratio,
                    recommendation=f"Review or update source: {source}",
                    kind="source_quality",
                    subject=source,
                ))
        return insights

    def evaluate_thresholds(self) -> List[ThresholdEvaluation]:
        """Precision, recall and F1 of each candidate threshold, treating positive feedback as relevant."""
        history = list(self.feedback_history)
        evaluations = []
        for threshold in FeedbackConfig.CANDIDATE_THRESHOLDS:
            true_positives = sum(1 for f in history if f.confidence >= threshold and f.is_positive)
            false_positives = sum(1 for f in history if f.confidence >= threshold and not f.is_positive)
            false_negatives = sum(1 for f in history if f.confidence < threshold and f.is_positive)

            precision = true_positives / ((true_positives + false_positives) or 1)
            recall = true_positives / ((true_positives + false_negatives) or 1)
            f1 = 2 * precision * recall / ((precision + recall) or 1)
            evaluations.append(ThresholdEvaluation(threshold, precision, recall, f1))
        return evaluations

    def get_recommended_confidence_threshold(self) -> float:
        """
        Threshold with the best F1 over the candidates; ties keep the lowest.

        Returns the default threshold until enough feedback has been collected.
        """
        if len(self.feedback_history) < FeedbackConfig.MIN_FEEDBACK_FOR_THRESHOLD:
            return FeedbackConfig.DEFAULT_CONFIDENCE_THRESHOLD

        best_threshold = FeedbackConfig.DEFAULT_CONFIDENCE_THRESHOLD
        best_f1 = 0.0
        for evaluation in self.evaluate_thresholds():
            if evaluation.f1 > best_f1:
                best_f1 = evaluation.f1
                best_threshold = evaluation.threshold

        logger.info(f"Recommended confidence threshold: {best_threshold} (F1: {best_f1:.3f})")
        return best_threshold

    def get_statistics(self) -> FeedbackStatistics:
        history = list(self.feedback_history)
        total = len(history)
        if total == 0:
            return FeedbackStatistics(total_feedback=0, positive_ratio=0.0, average_rating=0.0, average_confidence=0.0)

        ratings = [f.feedback_score for f in history if f.feedback_score is not None]
        return FeedbackStatistics(
            total_feedback=total,
            positive_ratio=sum(1 for f in history if f.is_positive) / total,
            average_rating=_mean(ratings),
            average_confidence=_mean([f.confidence for f in history]),
        )

    def export_feedback_data(self) -> List[FeedbackEntry]:
        return list(self.feedback_history)

    def generate_recommendations(self) -> List[str]:
        """Human readable recommendations combining statistics, threshold and insights."""
        insights = self.analyze_and_learn()
        stats = self.get_statistics()
        recommendations = []

        if stats.positive_ratio < 0.7 and stats.total_feedback >= 20:
            recommendations.append(f"Overall satisfaction is {stats.positive_ratio * 100:.0f}%. Target is 70%+")

        threshold = self.get_recommended_confidence_threshold()
        if threshold != FeedbackConfig.DEFAULT_CONFIDENCE_THRESHOLD:
            recommendations.append(f"Adjust confidence threshold to {threshold}")

        for insight in insights:
            if insight.occurrences >= 5:
                recommendations.append(insight.recommendation)

        if 0 < stats.average_rating < 3.5:
            recommendations.append(f"Average rating is {stats.average_rating:.1f}/5. Review prompt quality")

        return recommendations

    def apply_learnings(self) -> LearningAdjustments:
        """Parameters to feed back into retrieval."""
        insights = self.analyze_and_learn()
        return LearningAdjustments(
            confidence_threshold=self.get_recommended_confidence_threshold(),
            should_update_knowledge_base=any(i.kind == "knowledge_gap" for i in insights),
            problematic_sources=[i.subject for i in insights if i.kind == "source_quality" and i.subject],
        )

    def clear(self) -> None:
        self.feedback_history.clear()
        self.last_insights = []
        logger.info("Cleared feedback learning history")
