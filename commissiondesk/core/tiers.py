"""Tier qualification and commission arithmetic.

Everything here is pure: values in, values out, no database access. The
service layer loads profiles and period facts and hands them to
:func:`compute_commission`.

Monetary values stay unrounded ``Decimal`` until the final outputs, which are
quantized to cents with ``ROUND_HALF_UP``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Iterable, Sequence

from commissiondesk.errors import ConfigurationError

MONEY_QUANT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


class CalculationMethod(str, Enum):
    PROGRESSIVE = "PROGRESSIVE"
    GRADUATED = "GRADUATED"
    FLAT = "FLAT"


class TriggerType(str, Enum):
    NONE = "NONE"
    SESSION_COUNT = "SESSION_COUNT"
    SALES_VOLUME = "SALES_VOLUME"
    EITHER_OR = "EITHER_OR"
    BOTH_AND = "BOTH_AND"


SALES_TRIGGERS = frozenset({TriggerType.SALES_VOLUME, TriggerType.EITHER_OR, TriggerType.BOTH_AND})


def to_decimal(value) -> Decimal | None:
    """Coerce numeric input (``Decimal``, ``int``, ``float``, ``str``) to ``Decimal``."""

    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TierSpec:
    """One rung of a commission ladder."""

    tier_level: int
    name: str = ""
    session_threshold: int | None = None
    sales_threshold: Decimal | None = None
    session_commission_percent: Decimal | None = None
    session_flat_fee: Decimal | None = None
    sales_commission_percent: Decimal | None = None
    sales_flat_fee: Decimal | None = None
    tier_bonus: Decimal | None = None

    def __post_init__(self) -> None:
        for name in (
            "sales_threshold",
            "session_commission_percent",
            "session_flat_fee",
            "sales_commission_percent",
            "sales_flat_fee",
            "tier_bonus",
        ):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @property
    def has_thresholds(self) -> bool:
        return self.session_threshold is not None or self.sales_threshold is not None

    @property
    def first_session(self) -> int:
        """1-based number of the first session paid at this tier's rate."""
        return max(self.session_threshold or 0, 1)

    @property
    def pays_sales(self) -> bool:
        return bool(self.sales_flat_fee or self.sales_commission_percent)

    @property
    def bonus(self) -> Decimal:
        return self.tier_bonus or ZERO

    def session_amount(self, sessions, value: Decimal) -> Decimal:
        """Session pay for ``sessions`` worth ``value``; a flat fee wins over a percentage."""

        if self.session_flat_fee:
            return self.session_flat_fee * sessions
        if self.session_commission_percent:
            return value * self.session_commission_percent / HUNDRED
        return ZERO

    def sales_amount(self, sales, value: Decimal) -> Decimal:
        if self.sales_flat_fee:
            return self.sales_flat_fee * sales
        if self.sales_commission_percent:
            return value * self.sales_commission_percent / HUNDRED
        return ZERO


@dataclass(frozen=True)
class ProfileSpec:
    """A commission profile with its tiers sorted by ascending ``tier_level``."""

    calculation_method: CalculationMethod
    trigger_type: TriggerType
    tiers: tuple[TierSpec, ...]
    profile_id: int | None = None
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "calculation_method", CalculationMethod(self.calculation_method))
        object.__setattr__(self, "trigger_type", TriggerType(self.trigger_type))
        object.__setattr__(self, "tiers", tuple(sorted(self.tiers, key=lambda tier: tier.tier_level)))

    @property
    def label(self) -> str:
        if self.name:
            return f"'{self.name}'"
        return f"#{self.profile_id}" if self.profile_id is not None else "(unsaved)"

    @property
    def requires_sales(self) -> bool:
        """True when qualification or pay depends on sales volume."""
        return self.trigger_type in SALES_TRIGGERS or any(tier.pays_sales for tier in self.tiers)


@dataclass(frozen=True)
class PeriodFacts:
    """Scalar activity facts for one trainer over one period."""

    session_count: int = 0
    total_session_value: Decimal = ZERO
    sales_volume: Decimal = ZERO
    sales_count: int = 0
    # Individual session values in date order; empty when only totals are known.
    session_values: tuple[Decimal, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_session_value", to_decimal(self.total_session_value))
        object.__setattr__(self, "sales_volume", to_decimal(self.sales_volume))
        object.__setattr__(self, "session_values", tuple(to_decimal(v) for v in self.session_values))

    @classmethod
    def from_session_values(
        cls,
        values: Iterable,
        sales_volume=ZERO,
        sales_count: int = 0,
    ) -> "PeriodFacts":
        ordered = tuple(to_decimal(value) for value in values)
        return cls(
            session_count=len(ordered),
            total_session_value=sum(ordered, ZERO),
            sales_volume=sales_volume,
            sales_count=sales_count,
            session_values=ordered,
        )

    def bracket_value(self, first_session: int, count: int) -> Decimal:
        """Value of ``count`` sessions starting at 1-based ``first_session``."""

        if count <= 0 or self.session_count == 0:
            return ZERO
        if len(self.session_values) == self.session_count:
            start = first_session - 1
            return sum(self.session_values[start:start + count], ZERO)
        return self.total_session_value * count / self.session_count


@dataclass(frozen=True)
class TierBreakdown:
    tier_level: int
    reached: bool
    sessions: int = 0
    session_value: Decimal = ZERO
    sales_value: Decimal = ZERO
    session_commission: Decimal = ZERO
    sales_commission: Decimal = ZERO
    bonus: Decimal = ZERO

    def as_dict(self) -> dict:
        return {
            "tier_level": self.tier_level,
            "reached": self.reached,
            "sessions": self.sessions,
            "session_value": float(quantize_money(self.session_value)),
            "sales_value": float(quantize_money(self.sales_value)),
            "session_commission": float(quantize_money(self.session_commission)),
            "sales_commission": float(quantize_money(self.sales_commission)),
            "bonus": float(quantize_money(self.bonus)),
        }


@dataclass(frozen=True)
class CommissionResult:
    """Commission for one trainer and period, rounded to cents."""

    calculation_method: CalculationMethod
    session_commission: Decimal
    sales_commission: Decimal
    tier_bonus: Decimal
    total_commission: Decimal
    tier_reached: int
    total_sessions: int
    total_session_value: Decimal
    sales_volume: Decimal
    total_sales_count: int = 0
    breakdown: tuple[TierBreakdown, ...] = field(default_factory=tuple)

    def snapshot(self) -> dict:
        """JSON-friendly breakdown stored alongside a saved calculation."""

        return {
            "method": self.calculation_method.value,
            "tier_reached": self.tier_reached,
            "session_count": self.total_sessions,
            "session_value": float(self.total_session_value),
            "sales_volume": float(self.sales_volume),
            "sales_count": self.total_sales_count,
            "tiers": [item.as_dict() for item in self.breakdown],
        }


# --- Step 1: tier qualification ----------------------------------------------

def _configured_axis_checks(tier: TierSpec, facts: PeriodFacts) -> list[bool]:
    checks: list[bool] = []
    if tier.session_threshold is not None:
        checks.append(facts.session_count >= tier.session_threshold)
    if tier.sales_threshold is not None:
        checks.append(facts.sales_volume >= tier.sales_threshold)
    return checks


def _reached_without_trigger(tier: TierSpec, facts: PeriodFacts) -> bool:
    return not tier.has_thresholds


def _reached_by_sessions(tier: TierSpec, facts: PeriodFacts) -> bool:
    return facts.session_count >= (tier.session_threshold or 0)


def _reached_by_sales(tier: TierSpec, facts: PeriodFacts) -> bool:
    return facts.sales_volume >= (tier.sales_threshold or ZERO)


def _reached_by_either(tier: TierSpec, facts: PeriodFacts) -> bool:
    checks = _configured_axis_checks(tier, facts)
    return any(checks) if checks else True


def _reached_by_both(tier: TierSpec, facts: PeriodFacts) -> bool:
    return all(_configured_axis_checks(tier, facts))


QUALIFIERS: dict[TriggerType, Callable[[TierSpec, PeriodFacts], bool]] = {
    TriggerType.NONE: _reached_without_trigger,
    TriggerType.SESSION_COUNT: _reached_by_sessions,
    TriggerType.SALES_VOLUME: _reached_by_sales,
    TriggerType.EITHER_OR: _reached_by_either,
    TriggerType.BOTH_AND: _reached_by_both,
}


def reached_tiers(facts: PeriodFacts, profile: ProfileSpec) -> list[TierSpec]:
    """Tiers whose trigger is met, in ascending ``tier_level`` order."""

    qualifies = QUALIFIERS[profile.trigger_type]
    return [tier for tier in profile.tiers if qualifies(tier, facts)]


def determine_tier_reached(facts: PeriodFacts, profile: ProfileSpec) -> int:
    """Highest reached ``tier_level``, or 0 when no tier qualifies."""

    reached = reached_tiers(facts, profile)
    return reached[-1].tier_level if reached else 0


# --- Step 2: rate application ------------------------------------------------

@dataclass
class _Amounts:
    session: Decimal = ZERO
    sales: Decimal = ZERO
    bonus: Decimal = ZERO
    tier_reached: int = 0
    breakdown: list[TierBreakdown] = field(default_factory=list)


def _whole_period_breakdown(
    profile: ProfileSpec, paid: TierSpec | None, reached: Sequence[TierSpec], facts: PeriodFacts, amounts: _Amounts
) -> list[TierBreakdown]:
    reached_levels = {tier.tier_level for tier in reached}
    rows: list[TierBreakdown] = []
    for tier in profile.tiers:
        if paid is not None and tier.tier_level == paid.tier_level:
            rows.append(
                TierBreakdown(
                    tier_level=tier.tier_level,
                    reached=tier.tier_level in reached_levels,
                    sessions=facts.session_count,
                    session_value=facts.total_session_value,
                    sales_value=facts.sales_volume,
                    session_commission=amounts.session,
                    sales_commission=amounts.sales,
                    bonus=amounts.bonus,
                )
            )
        else:
            rows.append(TierBreakdown(tier_level=tier.tier_level, reached=tier.tier_level in reached_levels))
    return rows


def _apply_flat(facts: PeriodFacts, profile: ProfileSpec) -> _Amounts:
    tier = next((item for item in profile.tiers if item.tier_level == 1), profile.tiers[0])
    amounts = _Amounts(
        session=tier.session_amount(facts.session_count, facts.total_session_value),
        sales=tier.sales_amount(facts.sales_count, facts.sales_volume),
        tier_reached=tier.tier_level,
    )
    amounts.breakdown = _whole_period_breakdown(profile, tier, [tier], facts, amounts)
    return amounts


def _apply_progressive(facts: PeriodFacts, profile: ProfileSpec) -> _Amounts:
    reached = reached_tiers(facts, profile)
    if not reached:
        return _Amounts(breakdown=_whole_period_breakdown(profile, None, [], facts, _Amounts()))
    tier = reached[-1]
    amounts = _Amounts(
        session=tier.session_amount(facts.session_count, facts.total_session_value),
        sales=tier.sales_amount(facts.sales_count, facts.sales_volume),
        bonus=tier.bonus,
        tier_reached=tier.tier_level,
    )
    amounts.breakdown = _whole_period_breakdown(profile, tier, reached, facts, amounts)
    return amounts


def _bracket_tiers(reached: Sequence[TierSpec], threshold: str) -> list[TierSpec]:
    """Reached tiers that take part in one axis's brackets.

    A tier joins when it sets a threshold on that axis, or sets none at all.
    A tier gated only on the other axis pays nothing from these brackets.
    """

    return [tier for tier in reached if getattr(tier, threshold) is not None or not tier.has_thresholds]


def _session_brackets(facts: PeriodFacts, tiers: Sequence[TierSpec]) -> dict[int, tuple[int, Decimal]]:
    """Allocate whole sessions to bracket tiers; the last one is open-ended."""

    brackets: dict[int, tuple[int, Decimal]] = {}
    for index, tier in enumerate(tiers):
        first = tier.first_session
        if index + 1 < len(tiers):
            last = min(facts.session_count, tiers[index + 1].first_session - 1)
        else:
            last = facts.session_count
        count = max(0, last - first + 1)
        brackets[tier.tier_level] = (count, facts.bracket_value(first, count))
    return brackets


def _sales_brackets(facts: PeriodFacts, tiers: Sequence[TierSpec]) -> dict[int, Decimal]:
    """Split sales volume between consecutive sales thresholds, proportional by value."""

    brackets: dict[int, Decimal] = {}
    volume = facts.sales_volume
    for index, tier in enumerate(tiers):
        lower = tier.sales_threshold or ZERO
        if index + 1 < len(tiers):
            upper = min(volume, tiers[index + 1].sales_threshold or ZERO)
        else:
            upper = volume
        brackets[tier.tier_level] = max(ZERO, upper - lower)
    return brackets


def _apply_graduated(facts: PeriodFacts, profile: ProfileSpec) -> _Amounts:
    reached = reached_tiers(facts, profile)
    if not reached:
        return _Amounts(breakdown=_whole_period_breakdown(profile, None, [], facts, _Amounts()))
    top = reached[-1]
    amounts = _Amounts(tier_reached=top.tier_level)

    # No bracket tier on an axis: the top reached tier pays that whole axis.
    session_tiers = _bracket_tiers(reached, "session_threshold")
    sales_tiers = _bracket_tiers(reached, "sales_threshold")
    session_slices = _session_brackets(facts, session_tiers) if session_tiers else {}
    sales_slices = _sales_brackets(facts, sales_tiers) if sales_tiers else {}

    reached_levels = {tier.tier_level for tier in reached}
    for tier in profile.tiers:
        if tier.tier_level not in reached_levels:
            amounts.breakdown.append(TierBreakdown(tier_level=tier.tier_level, reached=False))
            continue

        if session_tiers:
            sessions, session_value = session_slices.get(tier.tier_level, (0, ZERO))
        elif tier is top:
            sessions, session_value = facts.session_count, facts.total_session_value
        else:
            sessions, session_value = 0, ZERO

        if sales_tiers:
            sales_value = sales_slices.get(tier.tier_level, ZERO)
            sales_units = (
                facts.sales_count * sales_value / facts.sales_volume if facts.sales_volume else ZERO
            )
        elif tier is top:
            sales_value, sales_units = facts.sales_volume, facts.sales_count
        else:
            sales_value, sales_units = ZERO, 0

        session_pay = tier.session_amount(sessions, session_value)
        sales_pay = tier.sales_amount(sales_units, sales_value)
        amounts.session += session_pay
        amounts.sales += sales_pay
        amounts.bonus += tier.bonus
        amounts.breakdown.append(
            TierBreakdown(
                tier_level=tier.tier_level,
                reached=True,
                sessions=sessions,
                session_value=session_value,
                sales_value=sales_value,
                session_commission=session_pay,
                sales_commission=sales_pay,
                bonus=tier.bonus,
            )
        )
    return amounts


CALCULATORS: dict[CalculationMethod, Callable[[PeriodFacts, ProfileSpec], _Amounts]] = {
    CalculationMethod.FLAT: _apply_flat,
    CalculationMethod.PROGRESSIVE: _apply_progressive,
    CalculationMethod.GRADUATED: _apply_graduated,
}


# --- Validation ----------------------------------------------------------------

def validate_profile(profile: ProfileSpec) -> None:
    """Reject profiles the engine cannot compute with."""

    if not profile.tiers:
        raise ConfigurationError(f"Commission profile {profile.label} has no tiers.")
    for tier in profile.tiers:
        if tier.tier_level < 1:
            raise ConfigurationError(
                f"Commission profile {profile.label} has tier level {tier.tier_level}; levels start at 1."
            )
        if tier.session_threshold is not None and tier.session_threshold < 0:
            raise ConfigurationError(
                f"Commission profile {profile.label} tier {tier.tier_level} has a negative session threshold."
            )
        for name in (
            "sales_threshold",
            "session_commission_percent",
            "session_flat_fee",
            "sales_commission_percent",
            "sales_flat_fee",
            "tier_bonus",
        ):
            value = getattr(tier, name)
            if value is not None and value < ZERO:
                raise ConfigurationError(
                    f"Commission profile {profile.label} tier {tier.tier_level} has a negative {name.replace('_', ' ')}."
                )


def validate_facts(facts: PeriodFacts) -> None:
    if facts.session_count < 0 or facts.sales_count < 0:
        raise ConfigurationError("Session and sales counts cannot be negative.")
    if facts.total_session_value < ZERO or facts.sales_volume < ZERO:
        raise ConfigurationError("Session value and sales volume cannot be negative.")
    if any(value < ZERO for value in facts.session_values):
        raise ConfigurationError("Session values cannot be negative.")


def compute_commission(facts: PeriodFacts, profile: ProfileSpec) -> CommissionResult:
    """Compute the commission ``facts`` earn under ``profile``.

    Reaching no tier is a valid zero result. Only unusable configuration or
    negative input raises :class:`ConfigurationError`.
    """

    validate_profile(profile)
    validate_facts(facts)

    amounts = CALCULATORS[profile.calculation_method](facts, profile)
    total = amounts.session + amounts.sales + amounts.bonus
    return CommissionResult(
        calculation_method=profile.calculation_method,
        session_commission=quantize_money(amounts.session),
        sales_commission=quantize_money(amounts.sales),
        tier_bonus=quantize_money(amounts.bonus),
        total_commission=quantize_money(total),
        tier_reached=amounts.tier_reached,
        total_sessions=facts.session_count,
        total_session_value=quantize_money(facts.total_session_value),
        sales_volume=quantize_money(facts.sales_volume),
        total_sales_count=facts.sales_count,
        breakdown=tuple(amounts.breakdown),
    )


__all__ = [
    "CALCULATORS",
    "CalculationMethod",
    "CommissionResult",
    "MONEY_QUANT",
    "PeriodFacts",
    "ProfileSpec",
    "QUALIFIERS",
    "SALES_TRIGGERS",
    "TierBreakdown",
    "TierSpec",
    "TriggerType",
    "compute_commission",
    "determine_tier_reached",
    "quantize_money",
    "reached_tiers",
    "to_decimal",
    "validate_facts",
    "validate_profile",
]
