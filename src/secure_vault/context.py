"""Contexto de processo e registro de componentes plugáveis."""

import logging
import os
from threading import RLock
from typing import TYPE_CHECKING, Callable, Dict, Mapping, MutableMapping, Optional, Protocol

from .config import DEFAULT_TYPE
from .exceptions import ConfigurationError
from .masterkey import DefaultMasterKeyReader, MasterKeyReader
from .repository import (
    DefaultSecretRepository,
    DefaultSecretRepositoryProvider,
    SecretRepository,
    SecretRepositoryProvider,
)

if TYPE_CHECKING:
    from .vault import SecureVault


ReaderFactory = Callable[["VaultContext"], MasterKeyReader]
RepositoryFactory = Callable[["VaultContext"], SecretRepository]
ProviderFactory = Callable[["VaultContext", MasterKeyReader], SecretRepositoryProvider]


class ComponentRegistry:
    """Mapeia identificadores de tipo para fábricas de componentes.

    Tipos embutidos: leitor "default", repositório "default" e provedor
    "default". Plugins registram os seus com register_*().
    """

    def __init__(self, register_defaults: bool = True):
        self._readers: Dict[str, ReaderFactory] = {}
        self._repositories: Dict[str, RepositoryFactory] = {}
        self._providers: Dict[str, ProviderFactory] = {}
        if register_defaults:
            self.register_master_key_reader(
                DEFAULT_TYPE,
                lambda context: DefaultMasterKeyReader(context.system_properties, context.environ),
            )
            self.register_secret_repository(DEFAULT_TYPE, lambda context: DefaultSecretRepository())
            self.register_repository_provider(
                DEFAULT_TYPE,
                lambda context, reader: DefaultSecretRepositoryProvider(context, reader),
            )

    def register_master_key_reader(self, type_id: str, factory: ReaderFactory) -> None:
        self._readers[type_id] = factory

    def register_secret_repository(self, type_id: str, factory: RepositoryFactory) -> None:
        self._repositories[type_id] = factory

    def register_repository_provider(self, type_id: str, factory: ProviderFactory) -> None:
        self._providers[type_id] = factory

    @staticmethod
    def _factory(kind: str, factories: Mapping[str, Callable], type_id: str) -> Callable:
        if type_id not in factories:
            raise ConfigurationError(
                f"Tipo de {kind} '{type_id}' não registrado. "
                f"Tipos disponíveis: {sorted(factories)}"
            )
        return factories[type_id]

    def create_master_key_reader(self, type_id: str, context: "VaultContext") -> MasterKeyReader:
        return self._factory("leitor de chaves mestras", self._readers, type_id)(context)

    def create_secret_repository(self, type_id: str, context: "VaultContext") -> SecretRepository:
        return self._factory("repositório", self._repositories, type_id)(context)

    def create_repository_provider(
        self, type_id: str, context: "VaultContext", master_key_reader: MasterKeyReader
    ) -> SecretRepositoryProvider:
        return self._factory("provedor", self._providers, type_id)(context, master_key_reader)


class ComponentDirectory(Protocol):
    """Diretório externo de componentes (ciclo de vida gerenciado pelo host).

    Os getters devolvem None enquanto o componente não estiver disponível.
    """

    def get_master_key_reader(self) -> Optional[MasterKeyReader]: ...

    def get_secret_repository(self) -> Optional[SecretRepository]: ...


class VaultContext:
    """Estado de processo do cofre.

    Attributes:
        system_properties: Propriedades de sistema (e.g., definidas com -D na CLI)
        environ: Variáveis de ambiente (padrão: os.environ)
        components: Registro de fábricas de componentes
        directory: Diretório externo opcional; quando presente substitui o registro
        vault: Cofre inicializado, ou None
        initialized: Se a inicialização já foi concluída
        lock: Serializa a inicialização
    """

    def __init__(
        self,
        system_properties: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        components: Optional[ComponentRegistry] = None,
        directory: Optional[ComponentDirectory] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.system_properties: MutableMapping[str, str] = dict(system_properties or {})
        self.environ = environ if environ is not None else os.environ
        self.components = components or ComponentRegistry()
        self.directory = directory
        self.logger = logger or logging.getLogger(__name__)
        self.vault: Optional["SecureVault"] = None
        self.initialized = False
        self.lock = RLock()

    def set_system_property(self, name: str, value: str) -> None:
        self.system_properties[name] = value
