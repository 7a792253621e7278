"""
Batch orchestration: score many customers with bounded concurrency.

Usage:
    result = engine.batch_calculate_churn_risk("co_1", customer_ids)

    # Access results
    print(result.scores["cus_1"].risk_level)
    print(result.failures)          # per-customer errors
    print(result.summary())
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence

import pandas as pd

from .exceptions import ChurnEngineError
from .schemas import SCORE_OUTPUT_SCHEMA
from .types import RISK_LEVEL_ORDER, ChurnRiskScore, RiskLevel

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = [
    "customer_id",
    "score",
    "confidence",
    "risk_level",
    "urgency",
    "recommended_action",
    "primary_factors",
    "calculated_at",
]


@dataclass(frozen=True)
class BatchFailure:
    """Why one customer in a batch could not be scored."""

    customer_id: str
    code: str
    message: str
    http_status: int


@dataclass
class BatchResult:
    """
    Container for batch scoring results.

    Attributes:
        scores: Successful scores keyed by customer id, in input order
        failures: Failures keyed by customer id, in input order
    """

    scores: Dict[str, ChurnRiskScore] = field(default_factory=dict)
    failures: Dict[str, BatchFailure] = field(default_factory=dict)

    @property
    def failed_ids(self) -> List[str]:
        return list(self.failures)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def to_frame(self) -> pd.DataFrame:
        """
        Successful scores as a validated DataFrame, one row per customer.

        Raises:
            pandera.errors.SchemaError: If a score is out of range
        """
        rows = [
            {
                "customer_id": score.customer_id,
                "score": score.score,
                "confidence": score.confidence,
                "risk_level": score.risk_level.value,
                "urgency": score.urgency.value,
                "recommended_action": score.recommended_action.value,
                "primary_factors": ",".join(f.value for f in score.primary_factors),
                "calculated_at": score.calculated_at,
            }
            for score in self.scores.values()
        ]
        df = pd.DataFrame(rows, columns=OUTPUT_COLUMNS)
        if df.empty:
            return df
        return SCORE_OUTPUT_SCHEMA.validate(df)

    def get_high_risk(self, min_level: RiskLevel = RiskLevel.HIGH) -> pd.DataFrame:
        """
        Get customers at or above a risk level.

        Args:
            min_level: Minimum risk level

        Returns:
            DataFrame filtered to customers at or above the level
        """
        valid_levels = [level.value for level in RISK_LEVEL_ORDER[RISK_LEVEL_ORDER.index(min_level):]]
        df = self.to_frame()
        return df[df["risk_level"].isin(valid_levels)]

    def summary(self) -> pd.DataFrame:
        """
        Counts and average score by risk level.

        Returns:
            DataFrame indexed by risk level, lowest first
        """
        df = self.to_frame()
        if df.empty:
            return pd.DataFrame(columns=["count", "avg_score"])
        return (
            df.groupby("risk_level")
            .agg(
                count=("customer_id", "count"),
                avg_score=("score", "mean"),
            )
            .reindex([level.value for level in RISK_LEVEL_ORDER])
            .dropna()
            .round(1)
        )

    def failures_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [vars(failure) for failure in self.failures.values()],
            columns=["customer_id", "code", "message", "http_status"],
        )


class BatchOrchestrator:
    """
    Fan customer ids out over the single-customer pipeline.

    Ids are split into fixed-size chunks. A chunk runs concurrently and
    must finish completely before the next chunk starts, which caps the
    load on the data store.
    """

    def __init__(self, score_one: Callable[[str, str], ChurnRiskScore], chunk_size: int = 10):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.score_one = score_one
        self.chunk_size = chunk_size

    def chunks(self, customer_ids: Sequence[str]) -> List[List[str]]:
        return [
            list(customer_ids[i : i + self.chunk_size])
            for i in range(0, len(customer_ids), self.chunk_size)
        ]

    def run(self, company_id: str, customer_ids: Sequence[str]) -> BatchResult:
        """
        Score every customer, collecting per-customer failures.

        Duplicate ids are scored once, keeping first-seen order, so no two
        workers ever upsert the same customer. A failure never aborts the
        batch: engine errors keep their code and status, anything else is
        recorded as CHURN_ENGINE_ERROR (500).
        """
        result = BatchResult()
        unique_ids = list(dict.fromkeys(customer_ids))
        with ThreadPoolExecutor(max_workers=self.chunk_size) as executor:
            for chunk in self.chunks(unique_ids):
                futures = [
                    (customer_id, executor.submit(self.score_one, company_id, customer_id))
                    for customer_id in chunk
                ]
                for customer_id, future in futures:
                    try:
                        result.scores[customer_id] = future.result()
                    except ChurnEngineError as exc:
                        logger.warning(
                            "Churn scoring failed for customer %s: %s (%s)",
                            customer_id,
                            exc.message,
                            exc.code,
                        )
                        result.failures[customer_id] = BatchFailure(
                            customer_id=customer_id,
                            code=exc.code,
                            message=exc.message,
                            http_status=exc.http_status,
                        )
                    except Exception as exc:
                        logger.exception("Unexpected error scoring customer %s", customer_id)
                        result.failures[customer_id] = BatchFailure(
                            customer_id=customer_id,
                            code=ChurnEngineError.code,
                            message=f"{exc.__class__.__name__}: {exc}",
                            http_status=ChurnEngineError.http_status,
                        )

        logger.info(
            "Batch scored %d customers for company %s (%d failed)",
            len(result.scores),
            company_id,
            len(result.failures),
        )
        return result
