"""
Unit tests for vault import and site domain options.
"""

from __future__ import annotations

import itertools

from cert_renewer.domain.models import DomainIdentifier, ManagedItemType, SiteBinding
from cert_renewer.importer import (
    DEFAULT_BINDING_LABEL,
    IMPORT_COMMENT,
    domain_options_for_site,
    import_managed_items,
)


def _ids():
    counter = itertools.count(1)
    return lambda: f"item-{next(counter)}"


# ─────────────────────── import_managed_items ───────────────────────


class TestImportManagedItems:
    def test_identifier_matched_to_binding(self) -> None:
        """
        GIVEN a vault identifier whose domain is bound on a site
        WHEN items are imported
        THEN the item takes the site's group, IP, port and web root.
        """
        bindings = [
            SiteBinding(
                "7", "Shop", host="shop.example.com", ip="10.0.0.5", port=8080, physical_path="/srv/shop"
            )
        ]

        (item,) = import_managed_items(
            [DomainIdentifier("h1", "shop.example.com")], bindings, id_factory=_ids()
        )

        assert item.id == "item-1"
        assert item.name == "shop.example.com : Shop"
        assert item.group_id == "7"
        assert item.item_type is ManagedItemType.WEB_SERVER
        assert item.include_in_auto_renew
        assert item.comments == IMPORT_COMMENT
        config = item.request_config
        assert config.primary_domain == "shop.example.com"
        assert config.subject_alternative_names == ("shop.example.com",)
        assert config.binding_ip_address == "10.0.0.5"
        assert config.binding_port == 8080
        assert config.website_root_path == "/srv/shop"

    def test_unbound_identifier_still_imported(self) -> None:
        (item,) = import_managed_items([DomainIdentifier("h1", "lonely.test")], [], id_factory=_ids())

        assert item.name == "lonely.test"
        assert item.group_id is None
        assert item.request_config.binding_port is None

    def test_merge_folds_site_domains_into_one_item(self) -> None:
        """
        GIVEN two identifiers bound on the same site
        WHEN items are imported with merge_as_san
        THEN one item remains carrying both domains, named after the shorter one.
        """
        bindings = [
            SiteBinding("1", "Main", host="www.example.com"),
            SiteBinding("1", "Main", host="example.com"),
        ]
        identifiers = [DomainIdentifier("h1", "www.example.com"), DomainIdentifier("h2", "example.com")]

        items = import_managed_items(identifiers, bindings, merge_as_san=True, id_factory=_ids())

        assert len(items) == 1
        (item,) = items
        assert item.request_config.distinct_domains == ("www.example.com", "example.com")
        assert item.name == "example.com : Main"

    def test_merge_keeps_separate_sites_apart(self) -> None:
        bindings = [SiteBinding("1", "A", host="a.test"), SiteBinding("2", "B", host="b.test")]
        identifiers = [DomainIdentifier("h1", "a.test"), DomainIdentifier("h2", "b.test")]

        items = import_managed_items(identifiers, bindings, merge_as_san=True, id_factory=_ids())

        assert len(items) == 2

    def test_without_merge_each_identifier_is_an_item(self) -> None:
        bindings = [SiteBinding("1", "Main", host="a.test"), SiteBinding("1", "Main", host="b.test")]
        identifiers = [DomainIdentifier("h1", "a.test"), DomainIdentifier("h2", "b.test")]

        items = import_managed_items(identifiers, bindings, id_factory=_ids())

        assert [i.id for i in items] == ["item-1", "item-2"]


# ─────────────────────── domain_options_for_site ───────────────────────


class TestDomainOptions:
    def test_options_for_one_site_only(self) -> None:
        bindings = [
            SiteBinding("1", "Main", host="example.com"),
            SiteBinding("2", "Other", host="other.test"),
        ]

        options = domain_options_for_site(bindings, "1")

        assert [o.domain for o in options] == ["example.com"]

    def test_first_real_domain_is_primary(self) -> None:
        bindings = [
            SiteBinding("1", "Main", host=""),
            SiteBinding("1", "Main", host="example.com"),
            SiteBinding("1", "Main", host="www.example.com", protocol="https", port=443),
        ]

        options = domain_options_for_site(bindings, "1")

        assert options[0].domain == DEFAULT_BINDING_LABEL
        assert options[0].is_manual_entry
        assert not options[0].is_primary_domain
        assert options[1].is_primary_domain
        assert not options[2].is_primary_domain
        assert options[2].title == "https://www.example.com"

    def test_duplicate_hosts_are_listed_once(self) -> None:
        bindings = [
            SiteBinding("1", "Main", host="example.com", protocol="http"),
            SiteBinding("1", "Main", host="example.com", protocol="https", port=443),
        ]

        options = domain_options_for_site(bindings, "1")

        assert len(options) == 1
        assert options[0].title == "http://example.com"

    def test_specific_ip_is_shown_in_title(self) -> None:
        bindings = [
            SiteBinding("1", "Main", host="a.test", ip="192.0.2.10"),
            SiteBinding("1", "Main", host="b.test", ip="0.0.0.0"),
        ]

        options = domain_options_for_site(bindings, "1")

        assert options[0].title == "http://a.test : 192.0.2.10"
        assert options[1].title == "http://b.test"
