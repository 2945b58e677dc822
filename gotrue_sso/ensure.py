"""Idempotent present/absent drivers for one identity provider.

These play the part of a declarative host for a single record: they decide
whether to create, update or delete, call the reconciler, and report the
outcome as a plain result dict (the shape Ansible modules return)::

    {
        "changed": bool,
        "failed": bool,
        "msg": str,
        "diagnostics": [{"severity": ..., "summary": ..., ...}],
        "provider": {...},   # the record after the run
    }
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .exceptions import AdminAPIError, AdminClientError, ResourceValidationError
from .resource import IdentityProviderReconciler, SAMLIdentityProvider
from .validators import Diagnostic, has_errors

logger = logging.getLogger(__name__)


def error_diagnostics(exc: Exception) -> List[Diagnostic]:
    """Turn a failed operation into diagnostics without field attribution."""
    if isinstance(exc, ResourceValidationError):
        return list(exc.diagnostics)
    detail = ""
    if isinstance(exc, AdminAPIError) and exc.error_id:
        detail = f"error_id: {exc.error_id}"
    return [Diagnostic.error(str(exc), detail=detail)]


def _result(
    changed: bool,
    msg: str,
    record: Optional[SAMLIdentityProvider],
    diagnostics: List[Diagnostic],
) -> Dict[str, Any]:
    return {
        "changed": changed,
        "failed": has_errors(diagnostics),
        "msg": msg,
        "diagnostics": [d.to_dict() for d in diagnostics],
        "provider": record.to_dict() if record is not None else {},
    }


def ensure_present(
    reconciler: IdentityProviderReconciler,
    desired: SAMLIdentityProvider,
    state: Optional[SAMLIdentityProvider] = None,
    check_mode: bool = False,
) -> Dict[str, Any]:
    """Make the server match ``desired``.

    Without a stored id in ``state`` the provider is created.  Otherwise the
    stored provider is read back and updated when any user-set field differs.
    A provider that has gone missing on the server is reported as an error,
    not recreated.
    """
    diagnostics = reconciler.validate(desired)
    if has_errors(diagnostics):
        return _result(False, "Identity provider definition is invalid", desired, diagnostics)

    try:
        if state is None or not state.id:
            record = desired.copy()
            record.id = ""
            if check_mode:
                return _result(True, "Identity provider would be created", record, diagnostics)
            reconciler.create(record)
            return _result(True, f"Identity provider {record.id} created", record, diagnostics)

        current = state.copy()
        reconciler.read(current)

        changed = desired.changed_fields(current)
        if not changed:
            return _result(False, f"Identity provider {current.id} is up to date", current, diagnostics)

        record = desired.copy()
        record.id = current.id
        if check_mode:
            msg = f"Identity provider {record.id} would be updated: {', '.join(changed)}"
            return _result(True, msg, record, diagnostics)
        reconciler.update(record, current)
        return _result(True, f"Identity provider {record.id} updated: {', '.join(changed)}", record, diagnostics)

    except (AdminClientError, ResourceValidationError, requests.RequestException) as e:
        logger.debug("ensure_present failed: %s", e)
        return _result(False, str(e), desired, diagnostics + error_diagnostics(e))


def ensure_absent(
    reconciler: IdentityProviderReconciler,
    state: Optional[SAMLIdentityProvider],
    check_mode: bool = False,
) -> Dict[str, Any]:
    """Delete the stored provider if there is one.

    A provider the server no longer knows (HTTP 404) counts as already absent.
    """
    if state is None or not state.id:
        return _result(False, "Identity provider is absent", state, [])

    record = state.copy()
    if check_mode:
        return _result(True, f"Identity provider {record.id} would be deleted", record, [])

    try:
        reconciler.delete(record)
    except AdminAPIError as e:
        if e.not_found:
            record.id = ""
            return _result(False, "Identity provider is absent", record, [])
        return _result(False, str(e), state, error_diagnostics(e))
    except (AdminClientError, requests.RequestException) as e:
        return _result(False, str(e), state, error_diagnostics(e))

    return _result(True, f"Identity provider {state.id} deleted", record, [])
