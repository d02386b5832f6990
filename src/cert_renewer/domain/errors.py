"""
Error types raised by adapters and collaborators.

The orchestration engine never lets these escape a single certificate
request: the per-item failure boundary converts them into a failed
CertificateRequestResult. They exist so adapters can report failures with a
type the callers (and logs) can tell apart.
"""

from __future__ import annotations


class CertRenewerError(Exception):
    """Base class for all cert-renewer errors."""


class PersistenceError(CertRenewerError):
    """Managed-item storage could not be read or written."""


class CertificateParseError(CertRenewerError):
    """A certificate artifact could not be parsed for its validity dates."""


class PluginLoadError(CertRenewerError):
    """A configured collaborator plugin could not be imported or constructed."""
