"""SecureVault - Resolução de aliases de segredos com cifragem por keystore.

Este pacote fornece:
- Leitura de chaves mestras com prioridade fixa e realocação de arquivo
- Cifragem RSA e AES-GCM com keystore PKCS#12
- Repositórios de segredos em cadeia legada ou por provedores nomeados
- Substituição de marcadores $secret{alias} em texto
"""

from .cipher import KeyStoreCipherEngine, KeyStoreHandle
from .config import ComponentConfig, MasterKeyStore, ProviderConfig, SecureVaultConfig
from .context import ComponentDirectory, ComponentRegistry, VaultContext
from .exceptions import (
    CodecError,
    ConfigurationError,
    CyclicReferenceError,
    KeyMaterialError,
    ResolutionError,
    SecureVaultError,
)
from .masterkey import DefaultMasterKeyReader, MasterKey, MasterKeyReader, get_master_key
from .registry import SecretRegistry
from .repository import (
    DefaultSecretRepository,
    DefaultSecretRepositoryProvider,
    SecretRepository,
    SecretRepositoryProvider,
)
from .tokens import (
    ProtectedToken,
    RegistrySecretResolver,
    SecretResolver,
    extract_protected_tokens,
    get_protected_token,
    resolve,
)
from .utils import substitute_variables
from .vault import SecureVault, initialize_secure_vault

__version__ = "0.1.0"

__all__ = [
    # Fachada
    "SecureVault",
    "VaultContext",
    "initialize_secure_vault",
    # Componentes
    "DefaultMasterKeyReader",
    "MasterKey",
    "MasterKeyReader",
    "get_master_key",
    "KeyStoreCipherEngine",
    "KeyStoreHandle",
    "SecretRepository",
    "DefaultSecretRepository",
    "SecretRepositoryProvider",
    "DefaultSecretRepositoryProvider",
    "SecretRegistry",
    "ComponentRegistry",
    "ComponentDirectory",
    # Marcadores
    "ProtectedToken",
    "SecretResolver",
    "RegistrySecretResolver",
    "extract_protected_tokens",
    "get_protected_token",
    "resolve",
    # Configuração
    "ComponentConfig",
    "ProviderConfig",
    "SecureVaultConfig",
    "MasterKeyStore",
    "substitute_variables",
    # Erros
    "SecureVaultError",
    "ConfigurationError",
    "KeyMaterialError",
    "ResolutionError",
    "CyclicReferenceError",
    "CodecError",
]
