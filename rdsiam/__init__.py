"""AWS RDS IAM token authentication for long-lived database connection pools."""

from .authenticator import (
    CredentialResolutionError,
    RDSIAMAuthenticator,
    SecretInjectionError,
    TokenSigningError,
    build,
)
from .config import RDSIAMConfig, SQLConfig, StorageConfig, load_config
from .connections import RDSIAMConnector, create_connector, create_pool
from .credentials import Boto3CredentialResolver, Boto3TokenSigner, CredentialResolver, TokenSigner
from .dsn import (
    MalformedConnectionStringError,
    UnsupportedSchemeError,
    inject_secret,
    parse_descriptor,
    parse_for_credential_swap,
)
from .models import ConnectionDescriptor, RDSIAMError, Scheme

__version__ = "0.1.0"

__all__ = [
    "Boto3CredentialResolver",
    "Boto3TokenSigner",
    "ConnectionDescriptor",
    "CredentialResolutionError",
    "CredentialResolver",
    "MalformedConnectionStringError",
    "RDSIAMAuthenticator",
    "RDSIAMConfig",
    "RDSIAMConnector",
    "RDSIAMError",
    "SQLConfig",
    "Scheme",
    "SecretInjectionError",
    "StorageConfig",
    "TokenSigner",
    "TokenSigningError",
    "UnsupportedSchemeError",
    "build",
    "create_connector",
    "create_pool",
    "inject_secret",
    "load_config",
    "parse_descriptor",
    "parse_for_credential_swap",
]
