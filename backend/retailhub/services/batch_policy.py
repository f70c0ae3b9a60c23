"""
批次出库策略
按组织的库存策略对可用批次排序并分配出库数量：
- fifo: 按入库日期升序（先进先出）
- lifo: 按入库日期降序（后进先出）
- fefo: 按到期日升序，无到期日的排最后，再按入库日期升序（先到期先出）
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Sequence, Tuple

from retailhub.core.constants import InventoryPolicy


class InsufficientStockError(Exception):
    """批次库存不足以满足出库数量"""

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(f"库存不足：可用 {available}，需要 {requested}")


def _received(batch: Any) -> datetime:
    return batch.received_date or datetime.min


def sort_batches(policy: str, batches: Sequence[Any]) -> List[Any]:
    """按出库策略排序批次（id 作为最后的排序依据，保证顺序稳定）"""
    if policy == InventoryPolicy.FIFO.value:
        return sorted(batches, key=lambda b: (_received(b), b.id or 0))
    if policy == InventoryPolicy.LIFO.value:
        return sorted(batches, key=lambda b: (_received(b), b.id or 0), reverse=True)
    if policy == InventoryPolicy.FEFO.value:
        return sorted(
            batches,
            key=lambda b: (
                b.expiry_date is None,
                b.expiry_date or datetime.max,
                _received(b),
                b.id or 0,
            )
        )
    raise ValueError(f"未知的库存策略: {policy}")


def select_batches(policy: str, batches: Sequence[Any], quantity: Decimal) -> List[Tuple[Any, Decimal]]:
    """
    从批次中分配出库数量

    Args:
        policy: fifo / lifo / fefo
        batches: 候选批次（需有 current_quantity / received_date / expiry_date）
        quantity: 出库数量，必须大于 0

    Returns:
        [(批次, 本批出库数量), ...]，数量之和等于 quantity

    Raises:
        InsufficientStockError: 批次合计数量不足
    """
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        raise ValueError("出库数量必须大于0")

    candidates = [b for b in batches if (b.current_quantity or Decimal("0")) > 0]
    available = sum((Decimal(str(b.current_quantity)) for b in candidates), Decimal("0"))
    if available < quantity:
        raise InsufficientStockError(quantity, available)

    allocations: List[Tuple[Any, Decimal]] = []
    remaining = quantity
    for batch in sort_batches(policy, candidates):
        if remaining <= 0:
            break
        take = min(Decimal(str(batch.current_quantity)), remaining)
        allocations.append((batch, take))
        remaining -= take

    return allocations
