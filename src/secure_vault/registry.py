"""SecretRegistry - roteia aliases simples ou qualificados ao repositório certo."""

import logging
from threading import RLock
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from .config import SecureVaultConfig
from .exceptions import ConfigurationError, ResolutionError
from .masterkey import MasterKeyReader
from .repository import SecretRepository

if TYPE_CHECKING:
    from .context import VaultContext


DELIMITER = ":"


class SecretRegistry:
    """Registro de repositórios nos dois modelos suportados.

    Modelo legado: lista ordenada de repositórios; o primeiro é a cabeça e o
    pai de cada repositório seguinte é o anterior. Aliases simples são
    resolvidos pela cabeça.

    Modelo de provedores: {provedor: {repositório: SecretRepository}}; um
    alias qualificado "provedor:repositório:alias" vai exatamente ao
    repositório indicado.

    Examples:
        >>> registry.resolve_secret("vault:hashicorp:dbPassword")
        >>> registry.resolve_secret("dbPassword")
    """

    def __init__(self, context: Optional["VaultContext"] = None, logger: Optional[logging.Logger] = None):
        self._context = context
        self._logger = logger or logging.getLogger(__name__)
        self._legacy: List[SecretRepository] = []
        self._providers: Dict[str, Dict[str, SecretRepository]] = {}
        self._initialized = False
        self._lock = RLock()

    def init(
        self,
        config: SecureVaultConfig,
        master_key_reader: MasterKeyReader,
        repositories: Optional[Sequence[SecretRepository]] = None,
    ) -> None:
        """Constrói e carrega os repositórios configurados (no máximo uma vez).

        Args:
            config: Configuração do cofre
            master_key_reader: Leitor já inicializado
            repositories: Cadeia legada já carregada; quando ausente, a cadeia
                          é construída a partir de config.legacy_repositories

        Raises:
            ConfigurationError: Se um tipo de componente não estiver registrado
        """
        with self._lock:
            if self._initialized:
                self._logger.debug("Registro de segredos já inicializado")
                return
            if not config.enabled:
                self._logger.info("Cofre de segredos desabilitado na configuração")
                return
            if self._context is None and (repositories is None or config.secret_providers):
                raise ConfigurationError("Registro de segredos sem contexto para criar componentes")

            # Monta tudo antes de publicar; uma falha não deixa estado parcial
            legacy: List[SecretRepository] = []
            if repositories is not None:
                for repository in repositories:
                    if legacy and repository.parent is None:
                        repository.parent = legacy[-1]
                    legacy.append(repository)
            else:
                for repo_config in config.legacy_repositories:
                    repository = self._context.components.create_secret_repository(
                        repo_config.require_type("repositório"), self._context
                    )
                    if legacy:
                        repository.parent = legacy[-1]
                    repository.init(repo_config, master_key_reader)
                    repository.load_secrets(repo_config)
                    legacy.append(repository)

            providers: Dict[str, Dict[str, SecretRepository]] = {}
            for provider_name, provider_config in config.secret_providers.items():
                provider = self._context.components.create_repository_provider(
                    provider_config.type, self._context, master_key_reader
                )
                providers[provider_name] = provider.init_provider(
                    provider_config.repositories, provider_config.type
                )

            self._legacy = legacy
            self._providers = providers
            self._initialized = True
            self._logger.info(
                f"Registro de segredos inicializado "
                f"({len(self._legacy)} legados, {len(self._providers)} provedores)"
            )

    def add_repository(self, repository: SecretRepository) -> None:
        """Acrescenta um repositório já carregado ao fim da cadeia legada."""
        with self._lock:
            if self._legacy and repository.parent is None:
                repository.parent = self._legacy[-1]
            self._legacy.append(repository)
            self._initialized = True

    def add_provider(self, name: str, repositories: Dict[str, SecretRepository]) -> None:
        """Registra os repositórios nomeados (já carregados) de um provedor."""
        with self._lock:
            self._providers.setdefault(name, {}).update(repositories)
            self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def head(self) -> Optional[SecretRepository]:
        """Cabeça da cadeia legada."""
        return self._legacy[0] if self._legacy else None

    @property
    def providers(self) -> Dict[str, Dict[str, SecretRepository]]:
        return {name: dict(repositories) for name, repositories in self._providers.items()}

    def _unique_pair(self) -> Optional[SecretRepository]:
        pairs = [repo for repositories in self._providers.values() for repo in repositories.values()]
        return pairs[0] if len(pairs) == 1 else None

    def _route(self, annotation: str) -> Tuple[Optional[SecretRepository], str]:
        """Retorna (repositório, alias) para a anotação.

        Raises:
            ResolutionError: Para aridade diferente de 1 ou 3
        """
        parts = annotation.split(DELIMITER)

        if len(parts) == 1:
            if self._legacy:
                return self._legacy[0], annotation
            # Sem cadeia legada, só um par provedor/repositório único é destino implícito
            return self._unique_pair(), annotation

        if len(parts) == 3:
            provider, repository, alias = parts
            return self._providers.get(provider, {}).get(repository), alias

        raise ResolutionError(
            f"Formato de alias inválido: '{annotation}'. Esperado: alias ou provedor:repositório:alias"
        )

    def resolve_secret(self, annotation: str) -> str:
        """Resolve um alias simples ou qualificado.

        Alias desconhecido, provedor ou repositório inexistente devolvem o
        próprio alias.

        Raises:
            ResolutionError: Se a anotação não tiver 1 ou 3 partes
        """
        repository, alias = self._route(annotation)
        if repository is None:
            self._logger.debug(f"Nenhum repositório registrado para '{annotation}'")
            return alias
        return repository.get_secret(alias)

    def is_protected(self, annotation: str) -> bool:
        """Indica se a anotação corresponde a um segredo conhecido."""
        if not annotation or not self._initialized:
            return False
        try:
            repository, alias = self._route(annotation)
        except ResolutionError:
            return False
        return repository is not None and repository.has_secret(alias)

    def get_secret(self, alias: str) -> str:
        """Segredo do alias na cadeia legada, ou o alias se não houver."""
        head = self.head
        return head.get_secret(alias) if head is not None else alias

    def get_secret_from(self, provider: str, repository: str, alias: str) -> str:
        """Segredo do alias no repositório nomeado de um provedor."""
        target = self._providers.get(provider, {}).get(repository)
        if target is None:
            self._logger.debug(f"Repositório '{provider}:{repository}' não registrado")
            return alias
        return target.get_secret(alias)

    def get_encrypted_data(self, alias: str) -> str:
        """Texto cifrado do alias na cadeia legada, ou o alias se não houver."""
        head = self.head
        return head.get_encrypted_data(alias) if head is not None else alias

    def shutdown(self) -> None:
        """Descarta os repositórios registrados."""
        with self._lock:
            self._legacy.clear()
            self._providers.clear()
            self._initialized = False
        self._logger.info("Registro de segredos encerrado")
