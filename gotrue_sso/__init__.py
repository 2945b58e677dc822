"""gotrue-sso: Declarative management of SAML identity providers on GoTrue.

Wraps the GoTrue admin API (``/admin/sso/providers``) with a typed client and a
reconciler that turns a desired-state record into create/read/update/delete
calls.  Ships a ``gotrue-sso`` CLI and an Ansible action plugin.
"""

__version__ = "0.1.0"
