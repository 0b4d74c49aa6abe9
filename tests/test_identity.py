"""
Tests for the external identity map.
"""

import json

import pytest

from skeinsync.models import (
    Colorway,
    EntityKind,
    ExternalIdentifier,
    ExternalKind,
    Integration,
)
from skeinsync.services import identity


def _rows(integration):
    return ExternalIdentifier.query.filter_by(integration_id=integration.id).all()


class TestRecord:
    """Recording mappings."""

    def test_same_mapping_twice_is_one_row(self, db, integration, colorway):
        first = identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        second = identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert first.id == second.id
        assert len(_rows(integration)) == 1

    def test_changed_remote_id_replaces_row(self, db, integration, colorway):
        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/2")
        db.session.commit()

        assert identity.resolve(integration, colorway, ExternalKind.PRODUCT) == "gid://shopify/Product/2"
        assert identity.resolve_internal(
            integration, ExternalKind.PRODUCT, "gid://shopify/Product/1", EntityKind.COLORWAY
        ) is None
        assert len(_rows(integration)) == 1

    def test_claimed_remote_id_keeps_existing_owner(self, db, account, integration, colorway):
        other = Colorway(account_id=account.id, name="Harbor Fog")
        db.session.add(other)
        db.session.commit()

        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        kept = identity.record(integration, other, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert kept.identifiable_id == colorway.id
        assert identity.resolve(integration, other, ExternalKind.PRODUCT) is None
        assert len(_rows(integration)) == 1

    def test_external_ids_are_stored_as_strings(self, db, integration, colorway):
        identity.record(integration, colorway, ExternalKind.PRODUCT_HANDLE, "moss-garden")
        identity.record(integration, colorway, ExternalKind.PRODUCT, 1234)
        db.session.commit()

        assert identity.resolve(integration, colorway, ExternalKind.PRODUCT) == "1234"

    def test_mappings_are_scoped_per_connection(self, db, account, integration, colorway):
        second = Integration(
            account_id=account.id,
            type="shopify",
            credentials=json.dumps({"access_token": "shpat_other"}),
            settings={"shop": "other.myshopify.com"},
        )
        db.session.add(second)
        db.session.commit()

        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        identity.record(second, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert ExternalIdentifier.query.count() == 2

    def test_records_unsaved_entity(self, db, account, integration):
        fresh = Colorway(account_id=account.id, name="Ember")
        db.session.add(fresh)

        row = identity.record(integration, fresh, ExternalKind.PRODUCT, "gid://shopify/Product/9")
        db.session.commit()

        assert fresh.id is not None
        assert row.identifiable_id == fresh.id

    def test_rejects_non_entities(self, integration):
        with pytest.raises(TypeError):
            identity.record(integration, object(), ExternalKind.PRODUCT, "x")


class TestLookups:
    """Forward and reverse resolution."""

    def test_resolve_both_directions(self, db, integration, colorway):
        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert identity.resolve(integration, colorway, ExternalKind.PRODUCT) == "gid://shopify/Product/1"
        assert identity.resolve_internal(
            integration, ExternalKind.PRODUCT, "gid://shopify/Product/1", EntityKind.COLORWAY
        ) == colorway.id
        assert identity.find_entity(
            integration, ExternalKind.PRODUCT, "gid://shopify/Product/1", EntityKind.COLORWAY
        ) is colorway

    def test_missing_mapping_is_none(self, integration, colorway):
        assert identity.resolve(integration, colorway, ExternalKind.PRODUCT) is None
        assert identity.find_entity(integration, ExternalKind.PRODUCT, "nope", EntityKind.COLORWAY) is None

    def test_reverse_lookup_checks_kind(self, db, integration, colorway):
        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert identity.resolve_internal(
            integration, ExternalKind.PRODUCT, "gid://shopify/Product/1", EntityKind.INVENTORY
        ) is None

    def test_identifier_resolves_its_entity(self, db, integration, colorway):
        row = identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert row.kind is EntityKind.COLORWAY
        assert row.identifiable() is colorway


class TestForget:
    """Dropping mappings."""

    def test_forget_removes_mapping(self, db, integration, colorway):
        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        db.session.commit()

        assert identity.forget(integration, colorway, ExternalKind.PRODUCT) is True
        db.session.commit()
        assert identity.resolve(integration, colorway, ExternalKind.PRODUCT) is None
        assert identity.forget(integration, colorway, ExternalKind.PRODUCT) is False

    def test_deleting_entity_drops_its_mappings(self, db, integration, colorway):
        identity.record(integration, colorway, ExternalKind.PRODUCT, "gid://shopify/Product/1")
        identity.record(integration, colorway, ExternalKind.PRODUCT_HANDLE, "moss-garden")
        db.session.commit()

        db.session.delete(colorway)
        db.session.commit()

        assert _rows(integration) == []
