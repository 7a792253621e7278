"""
Data schema definitions for the churn engine.

Uses Pandera for runtime validation of signal records at the
persistence boundary and of batch output frames.
"""

from typing import Sequence

import pandas as pd
from pandera import Check, Column, DataFrameSchema

from .types import ChurnSignal, InterventionType, RiskLevel, SignalType, Urgency

SIGNAL_COLUMNS = ["type", "weight", "description", "detected_at"]


# Schema for signals before they are stored as JSON
SIGNAL_SCHEMA = DataFrameSchema(
    {
        "type": Column(
            str,
            nullable=False,
            checks=Check.isin([t.value for t in SignalType]),
            description="Signal type from the closed catalog"
        ),
        "weight": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0.0),
                Check.less_than_or_equal_to(1.0),
            ],
            description="Signal weight before recency decay"
        ),
        "description": Column(
            str,
            nullable=False,
            checks=Check.str_length(min_value=1),
            description="Human-readable explanation"
        ),
        "detected_at": Column(
            nullable=False,
            description="Detection timestamp"
        ),
    },
    strict=False,
    coerce=True,
    description="Schema for churn signals at the persistence boundary"
)


# Schema for batch output data
SCORE_OUTPUT_SCHEMA = DataFrameSchema(
    {
        "customer_id": Column(str, nullable=False, unique=True),
        "score": Column(
            int,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(100),
            ]
        ),
        "confidence": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0.0),
                Check.less_than_or_equal_to(1.0),
            ]
        ),
        "risk_level": Column(
            str,
            nullable=False,
            checks=Check.isin([level.value for level in RiskLevel])
        ),
        "urgency": Column(
            str,
            nullable=False,
            checks=Check.isin([u.value for u in Urgency])
        ),
        "recommended_action": Column(
            str,
            nullable=False,
            checks=Check.isin([a.value for a in InterventionType])
        ),
    },
    strict=False,  # Allow primary factor / timestamp columns
    coerce=True,
    description="Schema for churn engine batch output data"
)


def signals_frame(signals: Sequence[ChurnSignal]) -> pd.DataFrame:
    """Tabular view of signals, one row per signal."""
    return pd.DataFrame(
        [
            {
                "type": signal.type.value,
                "weight": signal.weight,
                "description": signal.description,
                "detected_at": signal.detected_at,
            }
            for signal in signals
        ],
        columns=SIGNAL_COLUMNS,
    )


def validate_signals(signals: Sequence[ChurnSignal]) -> None:
    """
    Validate signals before persisting them.

    Raises:
        pandera.errors.SchemaError: If any signal is out of range
    """
    if not signals:
        return
    SIGNAL_SCHEMA.validate(signals_frame(signals))


__all__ = [
    "SIGNAL_SCHEMA",
    "SCORE_OUTPUT_SCHEMA",
    "signals_frame",
    "validate_signals",
]
