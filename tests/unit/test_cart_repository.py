"""Unit tests for the Redis cart repository (fakeredis backend)."""

import json
from unittest.mock import patch

import pytest
import redis

from services.cart_service.cart import ShippingPolicy
from services.cart_service.cart_repository import CartRepository
from services.cart_service.errors import (
    CartItemNotFoundError,
    CartNotFoundError,
    InternalError,
    InvalidInputError,
)

USER = "user-1"


class TestGetCart:
    def test_absent_cart(self, cart_repository):
        assert cart_repository.get_cart(USER) is None

    def test_stored_as_json_document(self, cart_repository, redis_client):
        cart_repository.add_item(USER, "PROD-1", 2, 1000)

        stored = json.loads(redis_client.get(f"cart:{USER}"))
        assert stored["user_id"] == USER
        assert stored["items"] == [{"product_id": "PROD-1", "quantity": 2, "price": 1000.0}]
        assert stored["total"] == 3500


class TestAddItem:
    def test_first_add_creates_cart(self, cart_repository):
        cart = cart_repository.add_item(USER, "PROD-1", 2, 1000)

        assert cart.subtotal == 2000
        assert cart.shipping == 1500
        assert cart.total == 3500
        assert cart_repository.get_cart(USER).total == 3500

    def test_merge(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 2, 1000)
        cart = cart_repository.add_item(USER, "PROD-1", 3, 1000)

        assert cart.items[0].quantity == 5
        assert cart.subtotal == 5000
        assert cart.total == 6500

    @pytest.mark.parametrize(
        "quantities",
        [[1], [2, 3], [1, 1, 1, 1, 1], [7, 20, 30], [49, 1]],
    )
    def test_stored_quantity_is_sum_of_adds(self, cart_repository, quantities):
        for step, quantity in enumerate(quantities):
            cart_repository.add_item(USER, "PROD-1", quantity, 1000 + step * 100)

        stored = cart_repository.get_cart(USER)
        total_quantity = sum(quantities)
        assert stored.items[0].quantity == total_quantity
        assert stored.items[0].price == 1000
        assert stored.subtotal == total_quantity * 1000
        assert stored.total == stored.subtotal + stored.shipping

    def test_invalid_quantity_leaves_store_untouched(self, cart_repository, redis_client):
        with pytest.raises(InvalidInputError):
            cart_repository.add_item(USER, "PROD-1", 0, 1000)
        assert redis_client.get(f"cart:{USER}") is None

    def test_carts_are_isolated_per_user(self, cart_repository):
        cart_repository.add_item("alice", "PROD-1", 1, 1000)
        cart_repository.add_item("bob", "PROD-2", 1, 500)

        assert [i.product_id for i in cart_repository.get_cart("alice").items] == ["PROD-1"]
        assert [i.product_id for i in cart_repository.get_cart("bob").items] == ["PROD-2"]

    def test_ttl_applied_when_configured(self, redis_client):
        repo = CartRepository(redis_client, ShippingPolicy(), ttl=3600)
        repo.add_item(USER, "PROD-1", 1, 1000)
        assert 0 < redis_client.ttl(f"cart:{USER}") <= 3600

    def test_no_ttl_by_default(self, cart_repository, redis_client):
        cart_repository.add_item(USER, "PROD-1", 1, 1000)
        assert redis_client.ttl(f"cart:{USER}") == -1


class TestUpdateItemQuantity:
    def test_updates_totals(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 2, 1000)
        cart = cart_repository.update_item_quantity(USER, "PROD-1", 60)

        assert cart.items[0].quantity == 60
        assert cart.subtotal == 60000
        assert cart.shipping == 0
        assert cart.total == 60000

    def test_no_cart(self, cart_repository):
        with pytest.raises(CartNotFoundError):
            cart_repository.update_item_quantity(USER, "PROD-1", 1)

    def test_no_line(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 1, 1000)
        with pytest.raises(CartItemNotFoundError):
            cart_repository.update_item_quantity(USER, "PROD-2", 1)

    def test_zero_rejected(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 2, 1000)
        with pytest.raises(InvalidInputError):
            cart_repository.update_item_quantity(USER, "PROD-1", 0)
        assert cart_repository.get_cart(USER).items[0].quantity == 2


class TestRemoveItem:
    def test_remove(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 1, 1000)
        cart_repository.add_item(USER, "PROD-2", 1, 2000)

        cart, removed = cart_repository.remove_item(USER, "PROD-1")

        assert removed is True
        assert [i.product_id for i in cart.items] == ["PROD-2"]
        assert cart.total == 3500

    def test_remove_absent_product_is_noop(self, cart_repository):
        before = cart_repository.add_item(USER, "PROD-1", 1, 1000)

        cart, removed = cart_repository.remove_item(USER, "PROD-404")

        assert removed is False
        assert (cart.subtotal, cart.shipping, cart.total) == (before.subtotal, before.shipping, before.total)

    def test_remove_last_line_keeps_empty_cart(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 1, 1000)
        cart, _ = cart_repository.remove_item(USER, "PROD-1")

        stored = cart_repository.get_cart(USER)
        assert stored is not None
        assert stored.is_empty
        assert (cart.subtotal, cart.shipping, cart.total) == (0, 0, 0)

    def test_no_cart(self, cart_repository):
        with pytest.raises(CartNotFoundError):
            cart_repository.remove_item(USER, "PROD-1")


class TestClearCart:
    def test_clear(self, cart_repository):
        cart_repository.add_item(USER, "PROD-1", 1, 1000)
        cart_repository.add_item(USER, "PROD-2", 1, 2000)

        cart, removed = cart_repository.clear_cart(USER)

        assert removed == 2
        assert cart.is_empty
        assert cart.total == 0

    def test_no_cart(self, cart_repository):
        with pytest.raises(CartNotFoundError):
            cart_repository.clear_cart(USER)


class TestConcurrentModification:
    def test_conflicting_write_is_retried_on_fresh_state(self, cart_repository):
        """A write that lands between WATCH and EXEC forces a re-read instead of being overwritten."""
        cart_repository.add_item(USER, "PROD-1", 1, 1000)
        attempts = []

        def change(cart):
            attempts.append(cart.find_item("PROD-1").quantity)
            if len(attempts) == 1:
                # Another request commits while this one is between read and write
                cart_repository.add_item(USER, "PROD-1", 4, 1000)
            cart.add_item("PROD-1", 1, 1000)

        cart = cart_repository._mutate(USER, change)

        assert attempts == [1, 5]
        assert cart.items[0].quantity == 6
        assert cart_repository.get_cart(USER).items[0].quantity == 6
        assert cart.subtotal == 6000

    def test_redis_failure_is_internal_error(self, cart_repository, redis_client):
        with patch.object(redis_client, "transaction", side_effect=redis.ConnectionError("down")):
            with pytest.raises(InternalError, match="Failed to save cart"):
                cart_repository.add_item(USER, "PROD-1", 1, 1000)
