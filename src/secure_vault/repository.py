"""Repositórios de segredos: cache por alias de segredos decifrados."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional

from .cipher import KEY_STORE_PASSWORD, PRIVATE_KEY_PASSWORD, KeyStoreCipherEngine
from .config import ComponentConfig
from .exceptions import CodecError, ConfigurationError, CyclicReferenceError
from .masterkey import MasterKey, MasterKeyReader
from .utils import (
    CHECKSUM_KEY,
    CIPHER_TEXT,
    PLAIN_TEXT,
    base64_decode,
    base64_encode,
    read_properties,
    secrets_checksum,
    split_secret,
    tag_secret,
    write_secrets_file,
)

if TYPE_CHECKING:
    from .context import VaultContext


LOCATION = "location"


class SecretRepository(ABC):
    """Contrato dos repositórios de segredos.

    Um repositório pode ter um pai, cujo papel é fornecer as chaves mestras
    do próprio repositório (e.g., a senha do keystore). O pai não é usado
    como fallback na busca de segredos.
    """

    def __init__(self) -> None:
        self._parent: Optional["SecretRepository"] = None

    @property
    def parent(self) -> Optional["SecretRepository"]:
        return self._parent

    @parent.setter
    def parent(self, repository: Optional["SecretRepository"]) -> None:
        """Define o repositório pai.

        Raises:
            CyclicReferenceError: Se a atribuição criar um ciclo na cadeia
        """
        if repository is not None:
            if repository is self or any(p is self for p in repository.iter_parents()):
                raise CyclicReferenceError("Referência cíclica na cadeia de repositórios")
        self._parent = repository

    def iter_parents(self) -> Iterator["SecretRepository"]:
        """Percorre a cadeia de pais, do mais próximo ao mais distante."""
        visited = {id(self)}
        current = self._parent
        while current is not None:
            if id(current) in visited:
                raise CyclicReferenceError("Referência cíclica na cadeia de repositórios")
            visited.add(id(current))
            yield current
            current = current.parent

    @abstractmethod
    def init(self, config: ComponentConfig, master_key_reader: MasterKeyReader) -> None:
        """Obtém o material de chave e prepara a cifra."""

    @abstractmethod
    def load_secrets(self, config: ComponentConfig) -> None:
        """Carrega e decifra todos os segredos do armazenamento configurado."""

    @abstractmethod
    def persist_secrets(self, config: ComponentConfig) -> None:
        """Cifra os segredos em texto claro do armazenamento configurado."""

    @abstractmethod
    def get_secret(self, alias: str) -> str:
        """Valor decifrado do alias, ou o próprio alias se ausente."""

    @abstractmethod
    def get_encrypted_data(self, alias: str) -> str:
        """Texto cifrado do alias, ou o próprio alias se ausente."""

    @abstractmethod
    def has_secret(self, alias: str) -> bool:
        """Indica se o alias está presente no repositório."""

    @abstractmethod
    def encrypt(self, plaintext: bytes) -> bytes:
        pass

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> bytes:
        pass


class DefaultSecretRepository(SecretRepository):
    """Repositório baseado em arquivo de segredos e keystore PKCS#12.

    Chaves mestras solicitadas: keyStorePassword e privateKeyPassword. As que
    o leitor não resolver são buscadas no repositório pai, se houver.

    Formato do arquivo (parâmetro "location"):
        apiKey="plainText <texto claro>"
        dbPassword="cipherText <base64>"
        SECURE_VAULT_CHECKSUM="<sha256>"
    """

    MASTER_KEY_NAMES = (KEY_STORE_PASSWORD, PRIVATE_KEY_PASSWORD)

    def __init__(
        self,
        cipher_engine: Optional[KeyStoreCipherEngine] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__()
        self._logger = logger or logging.getLogger(__name__)
        self._cipher = cipher_engine or KeyStoreCipherEngine()
        self._secrets: Dict[str, str] = {}
        self._encrypted_data: Dict[str, str] = {}
        self._initialized = False
        self._lock = RLock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def cipher_engine(self) -> KeyStoreCipherEngine:
        return self._cipher

    def init(self, config: ComponentConfig, master_key_reader: MasterKeyReader) -> None:
        """Resolve as chaves mestras e inicializa o motor de cifra.

        Raises:
            ConfigurationError: Se faltar parâmetro obrigatório
            KeyMaterialError: Se a senha não for resolvida ou o keystore for inválido
        """
        master_keys = [MasterKey(name) for name in self.MASTER_KEY_NAMES]
        try:
            missing = master_key_reader.read_master_keys(master_keys)
            if missing and self.parent is not None:
                self._read_from_parent(master_keys)
            self._cipher.init(config, master_keys)
        finally:
            for master_key in master_keys:
                master_key.cleanup()

        self._initialized = True
        self._logger.info(f"Repositório de segredos inicializado: {config.name or config.type}")

    def _read_from_parent(self, master_keys: List[MasterKey]) -> None:
        for master_key in master_keys:
            if master_key.is_resolved:
                continue
            value = self.parent.get_secret(master_key.name)
            # get_secret devolve o próprio alias quando não encontra
            if value and value != master_key.name:
                master_key.set_value(value)
                self._logger.debug(f"Chave mestra '{master_key.name}' lida do repositório pai")

    def _read_store(self, config: ComponentConfig) -> Dict[str, str]:
        path = Path(config.require_parameter(LOCATION))
        if not path.exists():
            raise ConfigurationError(f"Arquivo de segredos não encontrado: {path}")
        try:
            return read_properties(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(f"Falha ao ler o arquivo de segredos: {path}") from exc

    def load_secrets(self, config: ComponentConfig) -> None:
        """Carrega o arquivo de segredos.

        Entradas cipherText são decifradas; entradas plainText são usadas
        como estão. Valores vazios ficam em encrypted_data sem decifrar.

        Raises:
            ConfigurationError: Se o arquivo não existir
            CodecError: Se o checksum não conferir, uma entrada não tiver tag
                válida ou um valor não decifrar
        """
        entries = self._read_store(config)

        checksum = entries.pop(CHECKSUM_KEY, None)
        if checksum is not None and checksum != secrets_checksum(entries):
            raise CodecError(f"Checksum do arquivo de segredos não confere: {config.get_parameter(LOCATION)}")

        secrets: Dict[str, str] = {}
        encrypted_data: Dict[str, str] = {}
        for alias, value in entries.items():
            if not value.strip():
                encrypted_data[alias] = value
                continue
            tag, payload = split_secret(alias, value)
            if tag == PLAIN_TEXT:
                secrets[alias] = payload
                continue
            encrypted_data[alias] = payload.strip()
            if encrypted_data[alias]:
                secrets[alias] = self._decrypt_value(alias, encrypted_data[alias])

        with self._lock:
            self._secrets = secrets
            self._encrypted_data = encrypted_data

        self._logger.info(f"{len(secrets)} segredos carregados de {config.get_parameter(LOCATION)}")

    def _decrypt_value(self, alias: str, ciphertext: str) -> str:
        try:
            plaintext = self._cipher.decrypt(base64_decode(ciphertext))
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CodecError(f"Segredo '{alias}' não é texto UTF-8 válido") from exc
        except CodecError as exc:
            raise CodecError(f"Falha ao decifrar o segredo '{alias}'") from exc

    def persist_secrets(self, config: ComponentConfig) -> None:
        """Cifra as entradas plainText do arquivo de segredos e o regrava.

        Entradas cipherText e valores vazios são mantidos como estão, de modo
        que rodar de novo sobre um arquivo já cifrado não o altera. Todas as
        entradas são cifradas antes de o arquivo ser tocado; uma falha deixa
        o arquivo inalterado.

        Após a gravação, o cache de texto claro contém apenas as entradas
        cifradas nesta chamada; load_secrets decifra as demais.

        Raises:
            CodecError: Se uma entrada não tiver tag válida ou a cifragem falhar
        """
        path = Path(config.require_parameter(LOCATION))
        entries = self._read_store(config)
        entries.pop(CHECKSUM_KEY, None)

        stored: Dict[str, str] = {}
        secrets: Dict[str, str] = {}
        encrypted_data: Dict[str, str] = {}
        for alias, value in entries.items():
            if not value.strip():
                stored[alias] = encrypted_data[alias] = value
                continue
            tag, payload = split_secret(alias, value)
            if tag == CIPHER_TEXT:
                encrypted_data[alias] = payload.strip()
            else:
                secrets[alias] = payload
                encrypted_data[alias] = base64_encode(self._cipher.encrypt(payload.encode("utf-8")))
            stored[alias] = tag_secret(CIPHER_TEXT, encrypted_data[alias])

        write_secrets_file(path, stored, header="Segredos cifrados pelo secure-vault")

        with self._lock:
            self._secrets = secrets
            self._encrypted_data = encrypted_data

        self._logger.info(f"{len(secrets)} de {len(stored)} segredos cifrados em {path}")

    def get_secret(self, alias: str) -> str:
        if not alias or not self._initialized:
            return alias
        with self._lock:
            return self._secrets.get(alias, alias)

    def get_encrypted_data(self, alias: str) -> str:
        if not alias or not self._initialized:
            return alias
        with self._lock:
            return self._encrypted_data.get(alias, alias)

    def has_secret(self, alias: str) -> bool:
        if not alias or not self._initialized:
            return False
        with self._lock:
            return alias in self._secrets

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._cipher.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self._cipher.decrypt(ciphertext)


class SecretRepositoryProvider(ABC):
    """Cria e inicializa os repositórios nomeados de um provedor."""

    @abstractmethod
    def init_provider(
        self, configs: Mapping[str, ComponentConfig], provider_type: str
    ) -> Dict[str, SecretRepository]:
        """Retorna os repositórios do provedor, já carregados, por nome."""


class DefaultSecretRepositoryProvider(SecretRepositoryProvider):
    """Instancia cada repositório pelo registro de componentes do contexto.

    Repositórios sem tipo declarado usam o tipo do provedor.
    """

    def __init__(
        self,
        context: "VaultContext",
        master_key_reader: MasterKeyReader,
        logger: Optional[logging.Logger] = None,
    ):
        self._context = context
        self._master_key_reader = master_key_reader
        self._logger = logger or logging.getLogger(__name__)

    def init_provider(
        self, configs: Mapping[str, ComponentConfig], provider_type: str
    ) -> Dict[str, SecretRepository]:
        repositories: Dict[str, SecretRepository] = {}
        for name, config in configs.items():
            repository_type = config.type or provider_type
            repository = self._context.components.create_secret_repository(repository_type, self._context)
            repository.init(config, self._master_key_reader)
            repository.load_secrets(config)
            repositories[name] = repository
            self._logger.debug(f"Repositório '{name}' do tipo '{repository_type}' inicializado")
        return repositories
