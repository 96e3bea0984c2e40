"""On-disk persistence of the active credential.

The main entry point is :class:`CredentialStore`; the ``*_to_stored_credentials``
helpers build the :class:`~qwen_auth.models.StoredCredentials` it writes.
"""

from qwen_auth.storage.credential_store import (
    CredentialStore,
    api_key_to_stored_credentials,
    jwt_config_to_stored_credentials,
    migrate_credentials,
    token_info_to_stored_credentials,
)

__all__ = [
    "CredentialStore",
    "api_key_to_stored_credentials",
    "jwt_config_to_stored_credentials",
    "migrate_credentials",
    "token_info_to_stored_credentials",
]
