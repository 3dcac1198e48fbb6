"""
FraudCheck model - Persisted fraud engine snapshot
"""

from sqlalchemy import Column, String, Numeric, Uuid, JSON
from eventswap.core.common.base_model import BaseModel


class FraudCheck(BaseModel):
    """
    FraudCheck model - Audit record of one scoring run

    Never authoritative: the score is recomputed on demand. The row only
    records what the engine saw (input_snapshot) and what it answered.
    """

    __tablename__ = "fraud_checks"

    subject_type = Column(String(50), nullable=False, index=True)  # "transaction", "listing", "user", "manual"
    subject_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    score = Column(Numeric(6, 3), nullable=False)
    level = Column(String(20), nullable=False, index=True)
    recommendation = Column(String(20), nullable=False, index=True)
    signals = Column(JSON, nullable=False)  # rule id -> contribution
    hard_signals = Column(JSON, nullable=False)  # triggered hard rule ids
    input_snapshot = Column(JSON, nullable=False)
