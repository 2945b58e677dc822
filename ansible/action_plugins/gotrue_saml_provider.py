#!/usr/bin/env python
"""
Ansible Action Plugin for GoTrue SAML identity providers

Creates, updates and deletes a SAML identity provider on a GoTrue server
using gotrue-sso.  Runs on the controller; no module is shipped to hosts.

Example usage:
  - name: Register the corporate IdP
    gotrue_saml_provider:
      url: "https://auth.example.com"
      headers:
        Authorization: "Bearer {{ gotrue_service_role_key }}"
      metadata_url: "https://idp.example.com/saml/metadata"
      domains:
        - example.com
      attribute_mapping:
        keys:
          email:
            name: "urn:oid:0.9.2342.19200300.100.1.3"
      id: "{{ idp_id | default(omit) }}"
      state: present
    register: idp

  - set_fact:
      idp_id: "{{ idp.provider.id }}"
"""

from ansible.plugins.action import ActionBase

try:
    from gotrue_sso.ensure import ensure_absent, ensure_present
    from gotrue_sso.provider import ProviderConfig, configure
    from gotrue_sso.resource import IdentityProviderReconciler, SAMLIdentityProvider
    HAS_GOTRUE_SSO = True
except ImportError:
    HAS_GOTRUE_SSO = False


_RECORD_ARGS = ("id", "metadata_url", "metadata_xml", "domains", "attribute_mapping")


class ActionModule(ActionBase):
    """Ansible action plugin for gotrue_saml_identity_provider resources."""

    def run(self, tmp=None, task_vars=None):
        """Execute the provider action."""
        if task_vars is None:
            task_vars = dict()

        result = super(ActionModule, self).run(tmp, task_vars)
        del tmp  # tmp no longer has any effect

        if not HAS_GOTRUE_SSO:
            result['failed'] = True
            result['msg'] = (
                "gotrue-sso is not installed. "
                "Install it with: pip install gotrue-sso"
            )
            return result

        args = self._task.args
        state = args.get('state', 'present')
        if state not in ['present', 'absent']:
            result['failed'] = True
            result['msg'] = f"State must be 'present' or 'absent', got: {state}"
            return result

        config = ProviderConfig.from_env(
            url=args.get('url'),
            headers=args.get('headers') or {},
            timeout=args.get('timeout', 30),
            tls_no_verify=args.get('validate_certs', True) is False,
            ca_bundle=args.get('ca_bundle'),
            proxy=args.get('proxy'),
        )
        client, diagnostics = configure(config)
        warnings = [str(d) for d in diagnostics if d.severity == 'warning']
        if client is None:
            result['failed'] = True
            result['msg'] = "Invalid GoTrue connection settings:\n" + "\n".join(
                f"  - {d}" for d in diagnostics
            )
            result['diagnostics'] = [d.to_dict() for d in diagnostics]
            return result

        reconciler = IdentityProviderReconciler(client)
        record = SAMLIdentityProvider.from_dict({k: args.get(k) for k in _RECORD_ARGS})
        stored = SAMLIdentityProvider(id=record.id) if record.id else None

        if state == 'present':
            outcome = ensure_present(reconciler, record, stored, check_mode=self._play_context.check_mode)
        else:
            outcome = ensure_absent(reconciler, stored, check_mode=self._play_context.check_mode)

        result.update(outcome)
        if warnings:
            result['warnings'] = warnings
        if outcome['failed']:
            result['msg'] = f"{outcome['msg']}\n" + "\n".join(
                f"  - {d['summary']}" for d in outcome['diagnostics']
            )
        return result
