"""
cert_renewer — TLS certificate renewal orchestration engine.

Decides which managed endpoints need a new or renewed certificate, drives
domain validation for every hostname of a request, requests issuance once all
domains validate, and hands the certificate to a binding installer.

The ACME/vault client, web-server binding administrator, certificate store and
persistence are external collaborators reached through Protocol ports.
"""

__version__ = "0.1.0"
