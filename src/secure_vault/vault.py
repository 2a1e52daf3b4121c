"""SecureVault - fachada de resolução e inicialização do cofre."""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .config import DEFAULT_TYPE, SecureVaultConfig
from .context import VaultContext
from .exceptions import ConfigurationError
from .masterkey import MasterKeyReader
from .registry import SecretRegistry
from .repository import SecretRepository
from .tokens import RegistrySecretResolver, resolve
from .utils import path_from_system_variable


SECURE_VAULT_YAML_PROPERTY = "secure.vault.yaml"
SECURE_VAULT_YAML_ENV = "SECURE_VAULT_YAML"

logger = logging.getLogger(__name__)


class SecureVault:
    """Fachada do cofre inicializado.

    Esta classe fornece:
    - Resolução de aliases simples ou qualificados
    - Substituição de marcadores $secret{alias} em texto
    - Cifragem/decifragem com o repositório principal

    O repositório principal também é a cadeia legada, exceto quando
    secretRepositories é declarado ou quando há apenas secretProviders e o
    secretRepository não declara tipo. Nesse último caso um alias simples
    vai para o par provedor/repositório, se for único.

    Attributes:
        repository: Repositório principal (secretRepository)
        registry: Registro que roteia os aliases
    """

    def __init__(self, repository: SecretRepository, registry: SecretRegistry):
        self.repository = repository
        self.registry = registry
        self._resolver = RegistrySecretResolver(registry)

    def resolve(self, alias: str) -> bytes:
        """Resolve o alias para o segredo em bytes UTF-8.

        Alias desconhecido devolve o próprio alias.

        Raises:
            ResolutionError: Se o formato do alias for inválido
        """
        if not self.registry.is_initialized():
            return alias.encode("utf-8")
        return self.registry.resolve_secret(alias).encode("utf-8")

    def resolve_text(self, text: str) -> str:
        """Substitui os marcadores $secret{alias} reconhecidos no texto."""
        return resolve(text, self._resolver)

    def encrypt(self, plaintext: bytes) -> bytes:
        return self.repository.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self.repository.decrypt(ciphertext)

    def shutdown(self) -> None:
        self.registry.shutdown()


def resolve_config_path(context: VaultContext, config_path: Optional[str | Path] = None) -> Path:
    """Caminho do YAML do cofre: argumento, propriedade de sistema, ambiente.

    Raises:
        ConfigurationError: Se nenhuma fonte definir o caminho
    """
    if config_path:
        return Path(config_path)
    path = path_from_system_variable(
        SECURE_VAULT_YAML_PROPERTY,
        SECURE_VAULT_YAML_ENV,
        context.system_properties,
        context.environ,
    )
    if path is None:
        raise ConfigurationError(
            f"Caminho da configuração do cofre não definido "
            f"(propriedade '{SECURE_VAULT_YAML_PROPERTY}' ou variável '{SECURE_VAULT_YAML_ENV}')"
        )
    return path


def load_config(context: VaultContext, config_path: Optional[str | Path] = None) -> SecureVaultConfig:
    """Carrega o YAML do cofre resolvendo placeholders com o contexto."""
    path = resolve_config_path(context, config_path)
    return SecureVaultConfig.from_file(
        path,
        environ=context.environ,
        system_properties=context.system_properties,
        logger=context.logger,
    )


def create_components(
    context: VaultContext, config: SecureVaultConfig
) -> Optional[Tuple[MasterKeyReader, SecretRepository]]:
    """Cria e inicializa o leitor e o repositório principal.

    Os segredos não são carregados. Com um diretório externo no contexto,
    os componentes vêm dele; devolve None enquanto algum estiver ausente.
    """
    if context.directory is not None:
        reader = context.directory.get_master_key_reader()
        repository = context.directory.get_secret_repository()
        if reader is None or repository is None:
            logger.debug("Aguardando componentes do diretório externo")
            return None
    else:
        reader = context.components.create_master_key_reader(
            config.master_key_reader.type or DEFAULT_TYPE, context
        )
        repository = context.components.create_secret_repository(
            config.secret_repository.type or DEFAULT_TYPE, context
        )

    reader.init(config.master_key_reader)
    repository.init(config.secret_repository, reader)
    return reader, repository


def _legacy_chain(config: SecureVaultConfig, repository: SecretRepository) -> Optional[List[SecretRepository]]:
    """Cadeia legada a registrar; None a constrói de config.legacy_repositories."""
    if config.secret_repositories:
        return None
    if config.secret_providers and not config.secret_repository.type:
        return None
    return [repository]


def initialize_secure_vault(
    context: VaultContext, config_path: Optional[str | Path] = None
) -> Optional[SecureVault]:
    """Inicializa o cofre do contexto no máximo uma vez.

    Chamadas concorrentes são serializadas pelo lock do contexto; quem chega
    depois recebe a instância já inicializada. Falhas se propagam e deixam o
    contexto não inicializado.

    Returns:
        SecureVault inicializado, ou None se o diretório externo ainda não
        tiver fornecido os componentes

    Raises:
        ConfigurationError: Configuração ausente ou inválida
        KeyMaterialError: Chave mestra ou keystore inválidos
    """
    with context.lock:
        if context.initialized:
            return context.vault

        config = load_config(context, config_path)

        components = create_components(context, config)
        if components is None:
            return None
        reader, repository = components
        repository.load_secrets(config.secret_repository)

        registry = SecretRegistry(context)
        registry.init(config, reader, repositories=_legacy_chain(config, repository))

        context.vault = SecureVault(repository, registry)
        context.initialized = True
        logger.info("Cofre de segredos inicializado")
        return context.vault
