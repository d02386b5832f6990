"""
Vault import — build managed items from identifiers already registered with
the provider, and offer domain choices for a web-server site.

Imported items get the automated defaults: HTTP challenge, prerequisite
probe, automated binding, challenge-file placement, failure notifications
and inclusion in auto-renewal.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from uuid import uuid4

import structlog

from cert_renewer.domain.models import (
    DEFAULT_CHALLENGE_TYPE,
    DomainIdentifier,
    DomainOption,
    ManagedCertificateItem,
    ManagedItemType,
    RequestConfig,
    SiteBinding,
)

log = structlog.get_logger()

DEFAULT_BINDING_LABEL = "(default binding)"
IMPORT_COMMENT = "Imported from vault"


def _new_id() -> str:
    return str(uuid4())


def import_managed_items(
    identifiers: Sequence[DomainIdentifier],
    bindings: Sequence[SiteBinding],
    merge_as_san: bool = False,
    id_factory: Callable[[], str] = _new_id,
) -> list[ManagedCertificateItem]:
    """
    Create one managed item per provider identifier.

    Each identifier is matched to the first site binding with the same host;
    the binding supplies the site group, IP, port and web root. With
    `merge_as_san`, items of the same site are folded into the first one
    as alternative names.
    """
    items: list[ManagedCertificateItem] = []
    for identifier in identifiers:
        binding = next((b for b in bindings if b.host == identifier.domain), None)
        name = identifier.domain if binding is None else f"{identifier.domain} : {binding.site_name}"
        config = RequestConfig(
            primary_domain=identifier.domain,
            subject_alternative_names=(identifier.domain,),
            challenge_type=DEFAULT_CHALLENGE_TYPE,
            binding_ip_address=binding.ip if binding else None,
            binding_port=binding.port if binding else None,
            website_root_path=binding.physical_path if binding else None,
        )
        items.append(
            ManagedCertificateItem(
                id=id_factory(),
                name=name,
                request_config=config,
                item_type=ManagedItemType.WEB_SERVER,
                include_in_auto_renew=True,
                group_id=binding.site_id if binding else None,
                comments=IMPORT_COMMENT,
            )
        )

    if merge_as_san:
        items = _merge_site_groups(items)

    log.info("import.completed", identifiers=len(identifiers), items=len(items), merged=merge_as_san)
    return items


def _merge_site_groups(items: list[ManagedCertificateItem]) -> list[ManagedCertificateItem]:
    """Fold items sharing a site group into the first item of that group."""
    merged: list[ManagedCertificateItem] = []
    by_group: dict[str, ManagedCertificateItem] = {}

    for item in items:
        target = by_group.get(item.group_id) if item.group_id else None
        if target is None:
            if item.group_id:
                by_group[item.group_id] = item
            merged.append(item)
            continue

        target_config = target.request_config
        domain = item.request_config.primary_domain
        if domain == target_config.primary_domain:
            continue
        target.request_config = replace(
            target_config,
            subject_alternative_names=(*target_config.subject_alternative_names, domain),
        )
        # Name the merged item after the shorter domain when one contains the other.
        if domain in target_config.primary_domain:
            target.name = target.name.replace(target_config.primary_domain, domain)

    return merged


def domain_options_for_site(bindings: Sequence[SiteBinding], site_id: str) -> list[DomainOption]:
    """
    List the distinct domains bound to one site.

    A binding without a host is offered as a manual entry. The first real
    domain is promoted to primary.
    """
    options: list[DomainOption] = []
    for binding in bindings:
        if binding.site_id != site_id:
            continue

        if binding.host:
            option = DomainOption(domain=binding.host, title=f"{binding.protocol}://{binding.host}")
        else:
            option = DomainOption(
                domain=DEFAULT_BINDING_LABEL,
                title=DEFAULT_BINDING_LABEL,
                is_manual_entry=True,
            )
        if any(o.domain == option.domain for o in options):
            continue

        if binding.ip and binding.ip != "0.0.0.0":
            option = replace(option, title=f"{option.title} : {binding.ip}")
        options.append(option)

    for index, option in enumerate(options):
        if not option.is_manual_entry:
            options[index] = replace(option, is_primary_domain=True)
            break

    return options
