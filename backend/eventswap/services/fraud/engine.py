"""
Fraud Scoring Engine - Pure, deterministic risk aggregation

score(params) -> FraudCheckResult

Each signal maps through one rule to a bounded contribution (negative values
reduce risk). Contributions are summed and the total is clamped to [0, 100].

Rules (id: condition -> contribution):

    account_age                  < 7 days -> +25, < 30 days -> +10, >= 365 days -> -10
    prior_completed_transactions 0 -> +5, 1..4 -> -5, >= 5 -> -15
    prior_disputes               +15 per dispute, capped at +30
    confirmed_fraud_disputes     >= 1 -> +50 and HARD (forces BLOCK)
    price_deviation              >= 0.8 -> +30, >= 0.6 -> +20, >= 0.4 -> +10
    message_exchange             0 -> +5, >= 3 -> -5
    listing_age                  < 1 hour -> +10
    email_verification           unverified -> +5
    phone_verification           unverified -> +5
    kyc_verification             verified -> -15, unverified -> +15
    new_device                   true -> +10
    geo_mismatch                 true -> +10
    offer_velocity               >= 5 offers in the last hour -> +15
    transaction_velocity         > 2 transactions in the last 24h -> +20
    past_event_date              event already happened -> +40
    new_user_high_value          account < 7 days and listing price > 10000 -> +25
    duplicate_title              same title on another recent listing -> +35
    short_description            < 50 characters -> +10
    no_images                    0 images -> +15
    same_ip                      buyer and seller share an IP -> +50
    failed_payments              >= 1 failed payment in the last 24h -> +20

Levels: [0,25) LOW, [25,50) MEDIUM, [50,75) HIGH, [75,100] CRITICAL.
Recommendation: LOW/MEDIUM -> ALLOW, HIGH -> REVIEW, CRITICAL -> BLOCK;
any hard signal forces BLOCK regardless of the aggregate.

The listing rules read params built for a listing (or a user's latest listing);
same_ip and failed_payments read params built for a transaction.

Input handling: negative numbers clamp to 0, price deviation clamps to [0, 1],
missing/NaN/infinite/non-numeric values contribute nothing. Never raises.
"""

import enum
import math
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

MIN_SCORE = 0.0
MAX_SCORE = 100.0


class FraudLevel(str, enum.Enum):
    """Risk level derived from the aggregate score"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Recommendation(str, enum.Enum):
    """Action the caller should take"""
    ALLOW = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"


# Lower bound of each level, highest first
LEVEL_THRESHOLDS: Tuple[Tuple[float, FraudLevel], ...] = (
    (75.0, FraudLevel.CRITICAL),
    (50.0, FraudLevel.HIGH),
    (25.0, FraudLevel.MEDIUM),
    (0.0, FraudLevel.LOW),
)

LEVEL_RECOMMENDATIONS: Dict[FraudLevel, Recommendation] = {
    FraudLevel.LOW: Recommendation.ALLOW,
    FraudLevel.MEDIUM: Recommendation.ALLOW,
    FraudLevel.HIGH: Recommendation.REVIEW,
    FraudLevel.CRITICAL: Recommendation.BLOCK,
}


@dataclass(frozen=True)
class FraudCheckParams:
    """
    Signals about one trade. Every field is optional; None is risk-neutral.

    Account and history fields describe the counterparty being assessed,
    velocity fields describe the party initiating the trade.
    """
    account_age_days: Optional[float] = None
    prior_completed_transactions: Optional[int] = None
    prior_disputes: Optional[int] = None
    confirmed_fraud_disputes: Optional[int] = None
    price_deviation: Optional[float] = None  # |original - price| / original
    message_count: Optional[int] = None
    listing_age_hours: Optional[float] = None
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None
    kyc_verified: Optional[bool] = None
    new_device: Optional[bool] = None
    geo_mismatch: Optional[bool] = None
    offers_last_hour: Optional[int] = None
    transactions_last_24h: Optional[int] = None
    # Listing quality
    event_in_past: Optional[bool] = None
    listing_price: Optional[float] = None
    duplicate_title: Optional[bool] = None
    description_length: Optional[int] = None
    image_count: Optional[int] = None
    # Transaction behaviour
    same_ip: Optional[bool] = None
    failed_payment_attempts: Optional[int] = None

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy of the inputs for audit storage"""
        return {key: _json_safe(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class FraudCheckResult:
    score: float
    level: FraudLevel
    recommendation: Recommendation
    signals: Dict[str, float] = field(default_factory=dict)
    hard_signals: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "recommendation": self.recommendation.value,
            "signals": dict(self.signals),
            "hard_signals": list(self.hard_signals),
        }


@dataclass(frozen=True)
class Rule:
    id: str
    description: str
    evaluate: Callable[[FraudCheckParams], float]
    hard: Callable[[FraudCheckParams], bool] = lambda params: False


def _number(value: Any) -> Optional[float]:
    """Finite, non-negative float, or None when the value carries no signal"""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, Decimal)):
        return None
    try:
        number = float(value)
    except (OverflowError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return max(0.0, number)


def _flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    return value


def _account_age(params: FraudCheckParams) -> float:
    days = _number(params.account_age_days)
    if days is None:
        return 0.0
    if days < 7:
        return 25.0
    if days < 30:
        return 10.0
    if days >= 365:
        return -10.0
    return 0.0


def _prior_completed(params: FraudCheckParams) -> float:
    count = _number(params.prior_completed_transactions)
    if count is None:
        return 0.0
    if count < 1:
        return 5.0
    if count < 5:
        return -5.0
    return -15.0


def _prior_disputes(params: FraudCheckParams) -> float:
    count = _number(params.prior_disputes)
    if count is None:
        return 0.0
    return min(30.0, 15.0 * math.floor(count))


def _confirmed_fraud(params: FraudCheckParams) -> float:
    return 50.0 if _has_confirmed_fraud(params) else 0.0


def _has_confirmed_fraud(params: FraudCheckParams) -> bool:
    count = _number(params.confirmed_fraud_disputes)
    return count is not None and count >= 1


def _price_deviation(params: FraudCheckParams) -> float:
    ratio = _number(params.price_deviation)
    if ratio is None:
        return 0.0
    ratio = min(1.0, ratio)
    if ratio >= 0.8:
        return 30.0
    if ratio >= 0.6:
        return 20.0
    if ratio >= 0.4:
        return 10.0
    return 0.0


def _message_exchange(params: FraudCheckParams) -> float:
    count = _number(params.message_count)
    if count is None:
        return 0.0
    if count < 1:
        return 5.0
    if count >= 3:
        return -5.0
    return 0.0


def _listing_age(params: FraudCheckParams) -> float:
    hours = _number(params.listing_age_hours)
    if hours is None:
        return 0.0
    return 10.0 if hours < 1 else 0.0


def _unverified(attribute: str, weight: float) -> Callable[[FraudCheckParams], float]:
    def evaluate(params: FraudCheckParams) -> float:
        return weight if _flag(getattr(params, attribute)) is False else 0.0
    return evaluate


def _kyc(params: FraudCheckParams) -> float:
    verified = _flag(params.kyc_verified)
    if verified is None:
        return 0.0
    return -15.0 if verified else 15.0


def _raised(attribute: str, weight: float) -> Callable[[FraudCheckParams], float]:
    def evaluate(params: FraudCheckParams) -> float:
        return weight if _flag(getattr(params, attribute)) is True else 0.0
    return evaluate


def _offer_velocity(params: FraudCheckParams) -> float:
    count = _number(params.offers_last_hour)
    return 15.0 if count is not None and count >= 5 else 0.0


def _transaction_velocity(params: FraudCheckParams) -> float:
    count = _number(params.transactions_last_24h)
    return 20.0 if count is not None and count > 2 else 0.0


def _new_user_high_value(params: FraudCheckParams) -> float:
    days = _number(params.account_age_days)
    price = _number(params.listing_price)
    if days is None or price is None:
        return 0.0
    return 25.0 if days < 7 and price > 10000 else 0.0


def _short_description(params: FraudCheckParams) -> float:
    length = _number(params.description_length)
    return 10.0 if length is not None and length < 50 else 0.0


def _no_images(params: FraudCheckParams) -> float:
    count = _number(params.image_count)
    return 15.0 if count is not None and count < 1 else 0.0


def _failed_payments(params: FraudCheckParams) -> float:
    count = _number(params.failed_payment_attempts)
    return 20.0 if count is not None and count >= 1 else 0.0


RULES: Tuple[Rule, ...] = (
    Rule("account_age", "Young accounts raise risk, accounts older than a year lower it", _account_age),
    Rule("prior_completed_transactions", "Trade history lowers risk, none raises it slightly", _prior_completed),
    Rule("prior_disputes", "Each past dispute raises risk, capped", _prior_disputes),
    Rule("confirmed_fraud_disputes", "Confirmed fraud forces BLOCK", _confirmed_fraud, hard=_has_confirmed_fraud),
    Rule("price_deviation", "Prices far from the original value raise risk", _price_deviation),
    Rule("message_exchange", "Offers without conversation raise risk", _message_exchange),
    Rule("listing_age", "Freshly published listings raise risk", _listing_age),
    Rule("email_verification", "Unverified email raises risk", _unverified("email_verified", 5.0)),
    Rule("phone_verification", "Unverified phone raises risk", _unverified("phone_verified", 5.0)),
    Rule("kyc_verification", "KYC lowers risk, its absence raises it", _kyc),
    Rule("new_device", "Unrecognized device raises risk", _raised("new_device", 10.0)),
    Rule("geo_mismatch", "Geolocation inconsistent with profile raises risk", _raised("geo_mismatch", 10.0)),
    Rule("offer_velocity", "Burst of offers raises risk", _offer_velocity),
    Rule("transaction_velocity", "Burst of transactions raises risk", _transaction_velocity),
    Rule("past_event_date", "Listing for an event that already happened", _raised("event_in_past", 40.0)),
    Rule("new_user_high_value", "Young account listing a high-value reservation", _new_user_high_value),
    Rule("duplicate_title", "Title repeated on another recent listing", _raised("duplicate_title", 35.0)),
    Rule("short_description", "Listing description too short", _short_description),
    Rule("no_images", "Listing without images", _no_images),
    Rule("same_ip", "Buyer and seller on the same IP", _raised("same_ip", 50.0)),
    Rule("failed_payments", "Recent failed payment attempts", _failed_payments),
)


def level_for(score: float) -> FraudLevel:
    """Map a clamped score to its level"""
    for lower_bound, level in LEVEL_THRESHOLDS:
        if score >= lower_bound:
            return level
    return FraudLevel.LOW


def score(params: FraudCheckParams) -> FraudCheckResult:
    """
    Evaluate every rule and aggregate.

    Pure: identical params always yield an identical result.
    """
    signals: Dict[str, float] = {}
    hard_signals = []
    total = 0.0

    for rule in RULES:
        contribution = rule.evaluate(params)
        if contribution:
            signals[rule.id] = contribution
            total += contribution
        if rule.hard(params):
            hard_signals.append(rule.id)

    clamped = min(MAX_SCORE, max(MIN_SCORE, total))
    level = level_for(clamped)
    recommendation = Recommendation.BLOCK if hard_signals else LEVEL_RECOMMENDATIONS[level]

    return FraudCheckResult(
        score=clamped,
        level=level,
        recommendation=recommendation,
        signals=signals,
        hard_signals=tuple(hard_signals),
    )
