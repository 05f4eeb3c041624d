"""
Module: ledger_engines.lot_allocation
Responsibility:
    Split one transaction amount across the lots of a project, either evenly
    or by user-entered amounts, so that the allocations always sum exactly to
    the transaction total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Conservation: sum(allocation.amount) == total exactly.
    - Even split: every selected lot gets total/N floored to cents and the
      last selected lot (in selection order) absorbs the remainder, e.g.
      100.00 over 3 lots -> 33.33, 33.33, 33.34.
    - Manual split: accepted only when |total - allocated| < 0.01.
    - Any manual edit of one amount turns even-split mode off.

Failure modes:
    - ValidationError when no lot is selected or a part count is < 1.
    - AllocationMismatchError when manual amounts do not sum to the total.

Usage:
    from ledger_engines.lot_allocation import LotAllocationEngine

    allocations = LotAllocationEngine().allocate(Decimal("100.00"), [lot_a, lot_b, lot_c])
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import (
    MONEY_TOLERANCE,
    ZERO,
    floor_money,
    money_from_int,
    to_cents,
    to_money,
)
from ledger_kernel.exceptions import AllocationMismatchError, ValidationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.lot_allocation")


class AllocationMode(str, Enum):
    EVEN = "even"
    MANUAL = "manual"


@dataclass(frozen=True)
class LotAllocation:
    """Amount assigned to one lot."""

    lot_id: UUID
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))


def split_amount(amount: Decimal | str, parts: int) -> tuple[Decimal, ...]:
    """
    Split ``amount`` into ``parts`` cents-exact pieces.

    Every piece but the last is |amount|/parts floored to the cent; the last
    piece takes whatever remains.  A negative amount is split by magnitude
    and every piece carries the sign.

        split_amount(Decimal("100.00"), 3)  -> (33.33, 33.33, 33.34)
        split_amount(Decimal("0.03"), 3)    -> (0.01, 0.01, 0.01)
        split_amount(Decimal("-100.00"), 3) -> (-33.33, -33.33, -33.34)
    """
    if parts < 1:
        raise ValidationError(f"Cannot split an amount into {parts} parts", field="parts")
    cents = to_cents(to_money(amount))
    sign = -1 if cents < 0 else 1
    magnitude = abs(cents)
    base = magnitude // parts
    pieces = [base] * (parts - 1)
    pieces.append(magnitude - base * (parts - 1))
    return tuple(money_from_int(sign * piece) for piece in pieces)


def split_by_weights(amount: Decimal | str, weights: Sequence[Decimal]) -> tuple[Decimal, ...]:
    """
    Split ``amount`` in proportion to ``weights``.

    Shares are floored to the cent toward zero and the last positive weight
    takes the remainder.  Non-positive weights get nothing; when no weight
    is positive the amount is split evenly.

        split_by_weights(Decimal("600.00"), [Decimal("100"), Decimal("200")]) -> (200.00, 400.00)
    """
    if not weights:
        raise ValidationError("Cannot split an amount across no weights", field="weights")
    amount = to_money(amount)
    weights = [to_money(weight) for weight in weights]
    weight_total = sum((weight for weight in weights if weight > ZERO), ZERO)
    if weight_total <= ZERO:
        return split_amount(amount, len(weights))
    pieces = [
        floor_money(amount * weight / weight_total) if weight > ZERO else ZERO
        for weight in weights
    ]
    last = max(i for i, weight in enumerate(weights) if weight > ZERO)
    pieces[last] += amount - sum(pieces, ZERO)
    return tuple(pieces)


class LotAllocationEngine:
    """
    Stateless allocator used by the lot services and by AllocationSession.

    Contract:
        Pure functions, deterministic for identical inputs.  Lots are
        allocated in the order given; the order is the selection order.
    """

    @traced_engine("lot_allocation", "1.0", fingerprint_fields=("total", "mode"))
    def allocate(
        self,
        total: Decimal | str,
        lots: Sequence[UUID],
        mode: AllocationMode | str = AllocationMode.EVEN,
        amounts: Mapping[UUID, Decimal] | None = None,
    ) -> tuple[LotAllocation, ...]:
        """
        Allocate ``total`` across ``lots``.

        Args:
            total: Transaction amount.
            lots: Selected lot ids, in selection order.  Duplicates are
                collapsed to their first occurrence.
            mode: "even" or "manual".
            amounts: Per-lot amounts for manual mode; a selected lot with
                no entry is allocated zero.
        """
        total = to_money(total)
        mode = AllocationMode(mode)
        selected = list(dict.fromkeys(lots))
        if not selected:
            raise ValidationError("At least one lot must be selected", field="lots")

        if mode == AllocationMode.EVEN:
            allocations = tuple(
                LotAllocation(lot_id, piece)
                for lot_id, piece in zip(selected, split_amount(total, len(selected)))
            )
        else:
            given = amounts or {}
            allocations = tuple(
                LotAllocation(lot_id, given.get(lot_id, ZERO)) for lot_id in selected
            )
            allocated = sum((a.amount for a in allocations), ZERO)
            if abs(total - allocated) >= MONEY_TOLERANCE:
                logger.warning(
                    "lot_allocation_mismatch",
                    extra={"total": str(total), "allocated": str(allocated)},
                )
                raise AllocationMismatchError(total, allocated)

        logger.debug(
            "lot_allocation_computed",
            extra={"total": str(total), "mode": mode.value, "lot_count": len(selected)},
        )
        return allocations


class AllocationSession:
    """
    Mutable state behind a lot allocation dialog.

    Starts with every available lot selected and even split on.  Toggling
    a lot off zeroes its amount; while even split is on every toggle
    recomputes the selected amounts.  ``set_amount`` switches to manual
    mode until ``enable_even_split`` is called again.
    """

    def __init__(
        self,
        total: Decimal | str,
        lot_ids: Sequence[UUID],
        selected: Sequence[UUID] | None = None,
    ):
        self._total = to_money(total)
        self._lot_ids = list(dict.fromkeys(lot_ids))
        self._selected: list[UUID] = list(
            dict.fromkeys(self._lot_ids if selected is None else selected)
        )
        unknown = set(self._selected) - set(self._lot_ids)
        if unknown:
            raise ValidationError(
                f"Unknown lot selected: {sorted(unknown, key=str)[0]}", field="lots"
            )
        self._amounts: dict[UUID, Decimal] = {lot_id: ZERO for lot_id in self._lot_ids}
        self.even_split = True
        self._recompute()

    # -- queries -----------------------------------------------------------

    @property
    def total(self) -> Decimal:
        return self._total

    @property
    def selected(self) -> tuple[UUID, ...]:
        return tuple(self._selected)

    @property
    def amounts(self) -> dict[UUID, Decimal]:
        return dict(self._amounts)

    def amount_for(self, lot_id: UUID) -> Decimal:
        return self._amounts[lot_id]

    @property
    def allocated(self) -> Decimal:
        return sum((self._amounts[lot_id] for lot_id in self._selected), ZERO)

    @property
    def difference(self) -> Decimal:
        """Total minus allocated; zero when the split is exact."""
        return self._total - self.allocated

    @property
    def is_valid(self) -> bool:
        return bool(self._selected) and abs(self.difference) < MONEY_TOLERANCE

    def percentage(self, lot_id: UUID) -> Decimal:
        if self._total == ZERO:
            return ZERO
        return to_money(self._amounts[lot_id] / self._total * 100)

    # -- commands ----------------------------------------------------------

    def toggle(self, lot_id: UUID) -> bool:
        """Flip selection of ``lot_id``.  Returns the new selected state."""
        if lot_id not in self._amounts:
            raise ValidationError(f"Unknown lot: {lot_id}", field="lots")
        if lot_id in self._selected:
            self._selected.remove(lot_id)
            self._amounts[lot_id] = ZERO
            now_selected = False
        else:
            self._selected.append(lot_id)
            now_selected = True
        self._recompute()
        return now_selected

    def set_amount(self, lot_id: UUID, amount: Decimal | str) -> None:
        """Manually set one lot's amount.  Disables even split."""
        if lot_id not in self._amounts:
            raise ValidationError(f"Unknown lot: {lot_id}", field="lots")
        if lot_id not in self._selected:
            self._selected.append(lot_id)
        self._amounts[lot_id] = to_money(amount)
        self.even_split = False

    def enable_even_split(self) -> None:
        self.even_split = True
        self._recompute()

    def set_total(self, total: Decimal | str) -> None:
        self._total = to_money(total)
        self._recompute()

    def result(self) -> tuple[LotAllocation, ...]:
        """
        Final allocations for the selected lots.

        Raises:
            ValidationError: No lot selected.
            AllocationMismatchError: Manual amounts do not sum to the total.
        """
        return LotAllocationEngine().allocate(
            self._total,
            self._selected,
            mode=AllocationMode.MANUAL,
            amounts=self._amounts,
        )

    def _recompute(self) -> None:
        if not self.even_split or not self._selected:
            return
        for lot_id, piece in zip(
            self._selected, split_amount(self._total, len(self._selected))
        ):
            self._amounts[lot_id] = piece
