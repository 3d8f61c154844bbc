"""Administrative tooling for importing local private keys into cloud KMS.

Submodules import their cloud SDK at load time; import the one you need:
- cloudsign.provisioning.aws: KeyAliasClient, require_key_alias
- cloudsign.provisioning.gcp: KeyRingClient
"""
