# storefront/services/cart_service.py
import json
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError as SchemaError

from storefront.domain.schemas import CartItem, cart_item_adapter, cart_items_adapter
from storefront.repos.cart_repo import CartRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

LineKey = Tuple[str, bool, str | None]


def _line_key(item_id: str, custom_option_name: str | None = None) -> LineKey:
    return (item_id, custom_option_name is not None, custom_option_name)


def _upgrade_record(record: Any) -> Dict[str, Any] | None:
    """Bring a stored record to the current shape, None when it can't be read."""
    if not isinstance(record, dict):
        return None

    upgraded = dict(record)
    #older records kept no quantity, or 0 after a bad edit
    if not upgraded.get("quantity"):
        upgraded["quantity"] = 1
    upgraded["isCustom"] = upgraded.get("isCustom") in (True, "true")
    return upgraded


class CartService:
    """
    Cart kept client-side, persisted whole on every change.
    query: get, subtotal
    commands: set, add, update_quantity, remove, clear
    """

    def __init__(self, repo: CartRepo):
        self.repo = repo

    #query
    def get(self) -> List[CartItem]:
        raw = self.repo.load()
        if not raw:
            return []

        try:
            records = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Cart {self.repo.key} is not valid JSON, starting empty")
            return []

        if not isinstance(records, list):
            logger.warning(f"Cart {self.repo.key} is not a list, starting empty")
            return []

        items: List[CartItem] = []
        for record in records:
            upgraded = _upgrade_record(record)
            if upgraded is None:
                logger.warning(f"Dropping unreadable cart record: {record!r}")
                continue
            try:
                items.append(cart_item_adapter.validate_python(upgraded))
            except SchemaError as e:
                logger.warning(f"Dropping invalid cart record {record!r}: {e.error_count()} error(s)")
        return items

    def subtotal(self) -> Decimal:
        return sum((i.line_total for i in self.get()), Decimal("0.00"))

    #commands
    def set(self, items: List[CartItem]) -> None:
        document = cart_items_adapter.dump_json(items, by_alias=True)
        self.repo.save(document.decode("utf-8"))
        logger.info(f"Cart {self.repo.key} saved with {len(items)} line(s)")

    def add(self, item: CartItem) -> List[CartItem]:
        """Same template and option already in the cart: bump its quantity instead of adding a line."""
        items = self.get()
        for i, existing in enumerate(items):
            if existing.line_key == item.line_key:
                items[i] = existing.model_copy(
                    update={"quantity": existing.quantity + item.quantity}
                )
                break
        else:
            items.append(item)

        self.set(items)
        return items

    def update_quantity(
        self,
        item_id: str,
        delta: int,
        custom_option_name: str | None = None,
    ) -> List[CartItem]:
        key = _line_key(item_id, custom_option_name)
        items = self.get()

        for i, existing in enumerate(items):
            if existing.line_key != key:
                continue
            #never below 1, removing is an explicit remove()
            quantity = max(1, existing.quantity + delta)
            if quantity == existing.quantity:
                return items
            items[i] = existing.model_copy(update={"quantity": quantity})
            self.set(items)
            return items

        logger.info(f"Item {item_id} not in cart, nothing to update")
        return items

    def remove(self, item_id: str, custom_option_name: str | None = None) -> List[CartItem]:
        key = _line_key(item_id, custom_option_name)
        items = [i for i in self.get() if i.line_key != key]
        self.set(items)
        return items

    def clear(self) -> None:
        self.repo.delete()
        logger.info(f"Cart {self.repo.key} cleared")
