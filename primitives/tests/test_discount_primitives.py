"""
Discount primitive tests.

validate walks its checks in a fixed order and stops at the first failure.
apply/remove recompute totals from the current subtotal, so repeating
them changes nothing.
"""

from datetime import timedelta

import pytest

from primitives.catalog.discount import DiscountState, compute_discount, discount_state
from primitives.catalog.memory import seed_cart, seed_order
from primitives.catalog.records import (
    ApplyTo,
    Discount,
    DiscountType,
    DiscountUsage,
    OrderStatus,
    now_utc,
)
from primitives.kernel.types import ErrorKind


def add_discount(store, **fields):
    fields.setdefault("code", "SAVE10")
    fields.setdefault("type", DiscountType.PERCENTAGE)
    fields.setdefault("value", 10)
    fields.setdefault("starts_at", now_utc() - timedelta(days=1))
    return store.discounts.add(Discount(**fields))


# ============================================================================
# Pure rules
# ============================================================================


class TestDiscountState:
    def test_state_precedence(self):
        now = now_utc()
        base = dict(code="X", type=DiscountType.FIXED, value=100, starts_at=now - timedelta(days=1))
        assert discount_state(Discount(**base), now) == DiscountState.ACTIVE
        assert discount_state(Discount(**base, enabled=False, expires_at=now - timedelta(hours=1)), now) == (
            DiscountState.DISABLED
        )
        assert discount_state(Discount(**{**base, "starts_at": now + timedelta(days=1)}), now) == (
            DiscountState.NOT_YET_ACTIVE
        )
        assert discount_state(Discount(**base, expires_at=now - timedelta(seconds=1)), now) == DiscountState.EXPIRED
        assert discount_state(Discount(**base, usage_limit=5, usage_count=5), now) == DiscountState.EXHAUSTED

    def test_percentage_floored_and_capped(self):
        d = Discount(code="X", type=DiscountType.PERCENTAGE, value=15)
        assert compute_discount(d, 999) == 149
        capped = Discount(code="X", type=DiscountType.PERCENTAGE, value=50, max_discount=1_000)
        assert compute_discount(capped, 10_000) == 1_000

    def test_fixed_capped_at_subtotal(self):
        d = Discount(code="X", type=DiscountType.FIXED, value=2_500)
        assert compute_discount(d, 1_000) == 1_000
        assert compute_discount(d, 5_000) == 2_500


# ============================================================================
# discount.validate
# ============================================================================


class TestValidate:
    async def test_usage_limit_reached(self, store, invoke):
        add_discount(store, usage_count=100, usage_limit=100)
        result = await invoke("discount.validate", code="SAVE10")

        assert result.success is True
        assert result.data["valid"] is False
        assert result.data["error"].endswith("reached its usage limit")
        assert result.message == result.data["error"]

    async def test_unknown_code(self, invoke):
        result = await invoke("discount.validate", code="NOPE")
        assert result.data == {"valid": False, "error": "Invalid discount code", "message": "Invalid discount code"}

    async def test_code_is_case_insensitive(self, store, invoke):
        add_discount(store)
        result = await invoke("discount.validate", code="  save10 ")
        assert result.data["valid"] is True

    async def test_disabled_checked_before_dates(self, store, invoke):
        add_discount(store, enabled=False, expires_at=now_utc() - timedelta(days=1))
        result = await invoke("discount.validate", code="SAVE10")
        assert result.data["error"] == "This discount code is no longer active"

    async def test_not_yet_active(self, store, invoke):
        add_discount(store, starts_at=now_utc() + timedelta(days=2))
        result = await invoke("discount.validate", code="SAVE10")
        assert result.data["error"] == "This discount code is not yet active"

    async def test_expired(self, store, invoke):
        add_discount(store, expires_at=now_utc() - timedelta(minutes=1))
        result = await invoke("discount.validate", code="SAVE10")
        assert result.data["error"] == "This discount code has expired"

    @pytest.mark.parametrize("order_total", [0, 1, 4_999])
    async def test_below_minimum_order(self, store, invoke, order_total):
        add_discount(store, min_order_value=5_000)
        result = await invoke("discount.validate", code="SAVE10", orderTotal=order_total)
        assert result.data["valid"] is False
        assert result.data["error"] == "Minimum order of $50.00 required"

    async def test_minimum_order_met(self, store, invoke):
        add_discount(store, min_order_value=5_000)
        result = await invoke("discount.validate", code="SAVE10", orderTotal=5_000)
        assert result.data["valid"] is True
        assert result.data["discountAmount"] == 500
        assert result.data["savings"] == "$5.00"

    async def test_per_customer_limit(self, store, invoke):
        d = add_discount(store, per_customer=1)
        store.discounts.add_usage(DiscountUsage(discount_id=d.id, email="ann@example.com", discount_amount=100))

        result = await invoke("discount.validate", code="SAVE10", email="Ann@Example.com")
        assert result.data["error"] == "You have already used this discount code the maximum number of times"

    async def test_per_customer_skipped_without_customer(self, store, invoke):
        d = add_discount(store, per_customer=1)
        store.discounts.add_usage(DiscountUsage(discount_id=d.id, email="ann@example.com"))
        result = await invoke("discount.validate", code="SAVE10")
        assert result.data["valid"] is True

    async def test_first_order_only(self, store, invoke):
        add_discount(store, first_order_only=True)
        seed_order(store, customer_id="c1", subtotal=1_000)
        result = await invoke("discount.validate", code="SAVE10", customerId="c1")
        assert result.data["error"] == "This discount code is only valid for first orders"

    async def test_first_order_ignores_cancelled(self, store, invoke):
        add_discount(store, first_order_only=True)
        seed_order(store, customer_id="c1", subtotal=1_000, status=OrderStatus.CANCELLED)
        result = await invoke("discount.validate", code="SAVE10", customerId="c1")
        assert result.data["valid"] is True

    async def test_product_applicability(self, store, invoke):
        add_discount(store, apply_to=ApplyTo.PRODUCT, product_ids=["p1", "p2"])
        miss = await invoke("discount.validate", code="SAVE10", productIds=["p9"])
        hit = await invoke("discount.validate", code="SAVE10", productIds=["p9", "p2"])
        assert miss.data["error"] == "This discount does not apply to items in your cart"
        assert hit.data["valid"] is True

    async def test_category_applicability(self, store, invoke):
        add_discount(store, apply_to=ApplyTo.CATEGORY, category_ids=["shoes"])
        result = await invoke("discount.validate", code="SAVE10", categoryIds=["hats"])
        assert result.data["valid"] is False

    async def test_missing_code_is_validation_error(self, invoke):
        result = await invoke("discount.validate", orderTotal=100)
        assert result.success is False
        assert result.error_kind == ErrorKind.VALIDATION


# ============================================================================
# discount.apply / discount.remove
# ============================================================================


class TestApply:
    async def test_apply_to_order(self, store, invoke):
        add_discount(store, value=10)
        order = seed_order(store, subtotal=10_000, shipping_total=500, tax_total=800)

        result = await invoke("discount.apply", code="SAVE10", orderId=order.id)

        assert result.success is True
        assert result.data["discountAmount"] == 1_000
        assert result.data["newTotal"] == 10_300
        saved = await store.orders.get(order.id)
        assert saved.discount_total == 1_000
        assert saved.total == 10_300
        assert saved.discount_code == "SAVE10"

    async def test_apply_twice_is_idempotent(self, store, invoke):
        add_discount(store, value=10)
        order = seed_order(store, subtotal=10_000, shipping_total=500, tax_total=800)

        await invoke("discount.apply", code="SAVE10", orderId=order.id)
        once = (await store.orders.get(order.id)).total
        await invoke("discount.apply", code="SAVE10", orderId=order.id)
        twice = (await store.orders.get(order.id)).total

        assert once == twice == 10_300

    async def test_apply_recomputes_from_current_subtotal(self, store, invoke):
        add_discount(store, value=10)
        order = seed_order(store, subtotal=10_000)
        await invoke("discount.apply", code="SAVE10", orderId=order.id)

        store.orders.records[order.id].subtotal = 20_000
        result = await invoke("discount.apply", code="SAVE10", orderId=order.id)
        assert result.data["discountAmount"] == 2_000
        assert result.data["newTotal"] == 18_000

    async def test_apply_does_not_count_usage(self, store, invoke):
        d = add_discount(store, usage_limit=10, usage_count=3)
        order = seed_order(store, subtotal=1_000)
        await invoke("discount.apply", code="SAVE10", orderId=order.id)
        assert (await store.discounts.get(d.id)).usage_count == 3

    async def test_apply_to_cart(self, store, invoke):
        add_discount(store, code="FLAT5", type=DiscountType.FIXED, value=500)
        cart = seed_cart(store, subtotal=300, shipping_total=200)

        result = await invoke("discount.apply", code="flat5", cartId=cart.id)
        assert result.data["applied"] == "cart"
        assert result.data["discountAmount"] == 300
        assert result.data["newTotal"] == 200

    async def test_apply_expired_is_domain_violation(self, store, invoke):
        add_discount(store, expires_at=now_utc() - timedelta(days=1))
        order = seed_order(store, subtotal=1_000)

        result = await invoke("discount.apply", code="SAVE10", orderId=order.id)
        assert result.success is False
        assert result.error_kind == ErrorKind.DOMAIN_RULE
        assert result.message == "This discount code has expired"
        assert (await store.orders.get(order.id)).discount_total == 0

    async def test_apply_below_minimum_is_domain_violation(self, store, invoke):
        add_discount(store, min_order_value=5_000)
        order = seed_order(store, subtotal=1_000)
        result = await invoke("discount.apply", code="SAVE10", orderId=order.id)
        assert result.error_kind == ErrorKind.DOMAIN_RULE

    async def test_apply_unknown_order(self, store, invoke):
        add_discount(store)
        result = await invoke("discount.apply", code="SAVE10", orderId="missing")
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert result.message == "Order not found"

    async def test_apply_unknown_code(self, store, invoke):
        order = seed_order(store, subtotal=1_000)
        result = await invoke("discount.apply", code="NOPE", orderId=order.id)
        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_apply_needs_a_target(self, store, invoke):
        add_discount(store)
        result = await invoke("discount.apply", code="SAVE10")
        assert result.error_kind == ErrorKind.VALIDATION
        assert result.errors == ["Either orderId or cartId is required"]


class TestRemove:
    async def test_remove_resets_discount_and_total(self, store, invoke):
        add_discount(store)
        order = seed_order(store, subtotal=10_000, shipping_total=500, tax_total=800)
        await invoke("discount.apply", code="SAVE10", orderId=order.id)

        result = await invoke("discount.remove", orderId=order.id)

        assert result.data["newTotal"] == 11_300
        saved = await store.orders.get(order.id)
        assert saved.discount_total == 0
        assert saved.discount_code is None
        assert saved.discount_code_id is None

    async def test_remove_without_discount_is_harmless(self, store, invoke):
        cart = seed_cart(store, subtotal=1_000, tax_total=100)
        result = await invoke("discount.remove", cartId=cart.id)
        assert result.success is True
        assert result.data["newTotal"] == 1_100


# ============================================================================
# discount.get / list / create
# ============================================================================


class TestManagement:
    async def test_get_by_code_reports_state(self, store, invoke):
        d = add_discount(store, usage_limit=1, usage_count=1)
        store.discounts.add_usage(DiscountUsage(discount_id=d.id, order_id="o1", discount_amount=50))

        result = await invoke("discount.get", code="save10", includeUsages=True)
        info = result.data["discount"]
        assert info["state"] == "exhausted"
        assert info["isActive"] is False
        assert info["usages"][0]["orderId"] == "o1"

    async def test_get_not_found(self, invoke):
        result = await invoke("discount.get", id="missing")
        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_get_requires_id_or_code(self, invoke):
        result = await invoke("discount.get")
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_list_active_only(self, store, invoke):
        add_discount(store, code="LIVE")
        add_discount(store, code="OLD", expires_at=now_utc() - timedelta(days=1))
        add_discount(store, code="OFF", enabled=False)

        result = await invoke("discount.list", active=True)
        assert [d["code"] for d in result.data["discounts"]] == ["LIVE"]
        assert result.data["pagination"]["total"] == 1

    async def test_list_paginates(self, store, invoke):
        for i in range(5):
            add_discount(store, code=f"CODE{i}")
        result = await invoke("discount.list", page=2, limit=2)
        assert len(result.data["discounts"]) == 2
        assert result.data["pagination"] == {
            "page": 2,
            "limit": 2,
            "total": 5,
            "totalPages": 3,
            "hasNext": True,
            "hasPrev": True,
        }

    async def test_create(self, store, invoke):
        result = await invoke("discount.create", code="summer-24", type="FIXED", value=1_500, usageLimit=50)
        assert result.success is True
        created = await store.discounts.get_by_code("SUMMER-24")
        assert created.value == 1_500
        assert created.usage_limit == 50
        assert created.enabled is True

    async def test_create_duplicate_rejected(self, store, invoke):
        add_discount(store)
        result = await invoke("discount.create", code="save10", type="FIXED", value=100)
        assert result.error_kind == ErrorKind.DOMAIN_RULE

    async def test_create_percentage_over_100_rejected(self, invoke):
        result = await invoke("discount.create", code="HUGE", type="PERCENTAGE", value=150)
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_create_bad_date_rejected(self, invoke):
        result = await invoke("discount.create", code="DATES", type="FIXED", value=100, expiresAt="next tuesday")
        assert result.error_kind == ErrorKind.VALIDATION
