"""
Unit tests for Configurator main service.
"""

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_configurator.app.main import ConfiguratorService
from service_configurator.app.cache import NullCache
from service_configurator.app.rules.models import (
    CompatibilityType, VariantCompatibilityRule, PriceAdjustmentRule
)
from shared.errors import RuleStoreError


class TestConfiguratorService:
    """Test cases for ConfiguratorService."""

    @pytest.fixture
    def rules(self, store, bike):
        """Seed the bike catalog with one exclusion and one price rule."""
        exclusion = VariantCompatibilityRule(
            id=str(uuid.uuid4()),
            product_id=bike.product.id,
            part_variant_1_id=bike.diamond_small_frame.id,
            part_variant_2_id=bike.chrome_finish_variant.id,
            compatibility_type=CompatibilityType.EXCLUDE,
        )
        premium = PriceAdjustmentRule(
            id=str(uuid.uuid4()),
            product_id=bike.product.id,
            option_value_1_id=bike.diamond_frame.id,
            option_value_2_id=bike.matte_finish.id,
            amount=Decimal("15.00"),
            name="Premium Matte on Diamond",
        )
        store.variant_rules[exclusion.id] = exclusion
        store.price_rules[premium.id] = premium
        return bike

    @pytest.fixture
    def service(self, store):
        """Create ConfiguratorService over the in-memory store."""
        return ConfiguratorService(store=store, cache=NullCache())

    @pytest.fixture
    def client(self, service):
        """Create test client."""
        with TestClient(service.app) as client:
            yield client

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "configurator"
        assert "compatibility" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health check endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"cache": "ok", "rule_store": "ok"}

    def test_request_id_is_echoed(self, client):
        """Test that the request ID header is returned."""
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_metrics_endpoint(self, client):
        """Test Prometheus metrics endpoint."""
        client.get("/")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_resolve_compatibility(self, client, rules):
        """Test compatibility resolution keeps target order and drops excluded variants."""
        finishes = [
            rules.chrome_finish_variant.id,
            rules.glossy_finish_variant.id,
            rules.matte_finish_variant.id,
        ]

        response = client.post("/configurator/compatibility/resolve", json={
            "product_id": rules.product.id,
            "selected_variant_ids": [rules.diamond_small_frame.id],
            "target_variant_ids": finishes,
        })

        assert response.status_code == 200
        assert response.json()["compatible_variant_ids"] == finishes[1:]

    def test_resolve_without_selection(self, client, rules):
        """Test that every target is compatible with an empty selection."""
        response = client.post("/configurator/compatibility/resolve", json={
            "product_id": rules.product.id,
            "target_variant_ids": [rules.chrome_finish_variant.id],
        })

        assert response.status_code == 200
        assert response.json()["compatible_variant_ids"] == [rules.chrome_finish_variant.id]

    def test_resolve_rejects_unknown_variants(self, client, rules):
        """Test that unknown variant IDs are a 404 listing every missing ID."""
        response = client.post("/configurator/compatibility/resolve", json={
            "product_id": rules.product.id,
            "selected_variant_ids": ["missing-variant"],
            "target_variant_ids": [rules.matte_finish_variant.id, "missing-target"],
        })

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert data["details"]["variant_ids"] == ["missing-variant", "missing-target"]

    def test_check_rejects_unknown_variants(self, client, bike):
        """Test that a set containing a nonexistent variant is not vouched for."""
        response = client.post("/configurator/compatibility/check", json={
            "product_id": bike.product.id,
            "variant_ids": [bike.diamond_small_frame.id, "missing-variant"],
        })

        assert response.status_code == 404
        assert response.json()["details"]["variant_ids"] == ["missing-variant"]

    def test_unknown_product(self, client, bike):
        """Test that an unknown product is a 404."""
        response = client.post("/configurator/compatibility/resolve", json={
            "product_id": "missing-product",
            "target_variant_ids": [bike.matte_finish_variant.id],
        })

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert "missing-product" in data["message"]

    def test_invalid_request(self, client):
        """Test that a request without targets is rejected."""
        response = client.post("/configurator/compatibility/resolve", json={"product_id": "p"})

        assert response.status_code == 422

    def test_check_compatibility(self, client, rules):
        """Test pairwise compatibility checks."""
        compatible = client.post("/configurator/compatibility/check", json={
            "product_id": rules.product.id,
            "variant_ids": [rules.diamond_small_frame.id, rules.matte_finish_variant.id],
        })
        incompatible = client.post("/configurator/compatibility/check", json={
            "product_id": rules.product.id,
            "variant_ids": [
                rules.diamond_small_frame.id,
                rules.matte_finish_variant.id,
                rules.chrome_finish_variant.id,
            ],
        })

        assert compatible.json()["compatible"] is True
        assert incompatible.json()["compatible"] is False

    def test_price_adjustments(self, client, rules):
        """Test price adjustment lookup and total."""
        response = client.post("/configurator/pricing/adjustments", json={
            "product_id": rules.product.id,
            "selected_variant_ids": [rules.diamond_large_frame.id],
            "target_variant_ids": [v.id for v in rules.part_variants("finish")],
        })

        assert response.status_code == 200
        data = response.json()
        assert len(data["adjustments"]) == 1
        adjustment = data["adjustments"][0]
        assert {adjustment["variant_1_id"], adjustment["variant_2_id"]} == {
            rules.diamond_large_frame.id, rules.matte_finish_variant.id
        }
        assert adjustment["variant_1_id"] < adjustment["variant_2_id"]
        assert adjustment["name"] == "Premium Matte on Diamond"
        assert Decimal(adjustment["amount"]) == Decimal("15.00")
        assert Decimal(data["total"]) == Decimal("15.00")

    def test_price_adjustments_without_rules(self, client, bike):
        """Test that no rules give a zero total."""
        response = client.post("/configurator/pricing/adjustments", json={
            "product_id": bike.product.id,
            "selected_variant_ids": [bike.diamond_large_frame.id],
            "target_variant_ids": [bike.matte_finish_variant.id],
        })

        assert response.status_code == 200
        assert response.json()["adjustments"] == []
        assert Decimal(response.json()["total"]) == 0

    def test_cache_invalidate(self, client):
        """Test cache invalidation endpoint."""
        response = client.post("/configurator/cache/invalidate", json={"domain": "price_adjustments"})

        assert response.status_code == 200
        assert response.json() == {"domain": "price_adjustments", "purged": {"price_adjustments": 0}}

    def test_cache_invalidate_defaults_to_all(self, client):
        """Test that invalidation purges both domains by default."""
        response = client.post("/configurator/cache/invalidate", json={})

        assert response.status_code == 200
        assert response.json()["purged"] == {"compatibility": 0, "price_adjustments": 0}

    def test_stats_endpoint(self, client):
        """Test stats endpoint."""
        response = client.get("/configurator/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["cache"] == {"backend": "null"}
        assert data["config"]["cache_backend"] == "NullCache"
        assert data["config"]["rule_batch_size"] == 200

    def test_rule_store_unavailable(self, client, service, bike, monkeypatch):
        """Test that rule store failures map to 503."""

        async def broken(product_id, batch_size=200):
            raise RuleStoreError(details={"error": "connection refused"})
            yield  # pragma: no cover

        monkeypatch.setattr(service.store, "active_variant_rules", broken)

        response = client.post("/configurator/compatibility/resolve", json={
            "product_id": bike.product.id,
            "selected_variant_ids": [bike.diamond_small_frame.id],
            "target_variant_ids": [bike.matte_finish_variant.id],
        })

        assert response.status_code == 503
        assert response.json()["code"] == "RULE_STORE_UNAVAILABLE"

    def test_store_attached_to_invalidator(self, service, store):
        """Test that the service wires its invalidator into the store."""
        assert store.invalidator is service.invalidator
