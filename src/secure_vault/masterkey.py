"""Leitura de chaves mestras com prioridade fixa e realocação de arquivo."""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Set

from .config import ComponentConfig, MasterKeyStore
from .exceptions import CyclicReferenceError, KeyMaterialError
from .utils import path_from_system_variable


MASTER_KEY_FILE = "masterKeyFile"
MASTER_KEY_FILE_PROPERTY = "secure.vault.master.key.file"
MASTER_KEY_FILE_ENV = "SECURE_VAULT_MASTER_KEY_FILE"


@dataclass
class MasterKey:
    """Chave mestra nomeada, preenchida uma única vez pelo leitor.

    NOTA DE SEGURANÇA: o valor é guardado em bytearray para permitir limpeza
    explícita via cleanup(). Nunca é persistido nem registrado em log.

    Attributes:
        name: Nome da chave (e.g., "keyStorePassword")
        value: Valor resolvido, ou None enquanto não resolvida
    """

    name: str
    value: Optional[bytearray] = None

    def __repr__(self) -> str:
        state = "resolvida" if self.is_resolved else "não resolvida"
        return f"MasterKey(name={self.name!r}, {state})"

    @property
    def is_resolved(self) -> bool:
        return self.value is not None

    def set_value(self, value: str | bytes) -> None:
        """Define o valor da chave.

        Raises:
            KeyMaterialError: Se a chave já tiver sido resolvida
        """
        if self.value is not None:
            raise KeyMaterialError(f"Chave mestra '{self.name}' já foi resolvida")
        if isinstance(value, str):
            value = value.encode("utf-8")
        self.value = bytearray(value)

    def text(self) -> Optional[str]:
        """Valor como str UTF-8, ou None se não resolvida."""
        return None if self.value is None else bytes(self.value).decode("utf-8")

    def cleanup(self) -> None:
        """Zera de forma segura o valor da chave na memória.

        Segurança de melhor esforço: o coletor de lixo do Python pode manter
        outras cópias. Após cleanup() a chave continua marcada como resolvida.
        """
        if self.value:
            for i in range(len(self.value)):
                self.value[i] = 0


def get_master_key(master_keys: Iterable[MasterKey], name: str) -> MasterKey:
    """Retorna a chave mestra com o nome dado.

    Raises:
        KeyMaterialError: Se não houver chave com esse nome
    """
    for master_key in master_keys:
        if master_key.name == name:
            return master_key
    raise KeyMaterialError(f"Nenhuma chave mestra encontrada com o nome '{name}'")


class MasterKeyReader(ABC):
    """Contrato dos leitores de chaves mestras."""

    @abstractmethod
    def init(self, config: ComponentConfig) -> None:
        """Prepara o leitor para read_master_keys()."""

    @abstractmethod
    def read_master_keys(self, master_keys: List[MasterKey]) -> List[str]:
        """Preenche os valores das chaves informadas.

        Returns:
            List[str]: Nomes das chaves que continuaram sem valor
        """


class DefaultMasterKeyReader(MasterKeyReader):
    """Leitor padrão de chaves mestras.

    Ordem de tentativa para cada chave:
    1. Propriedade de sistema com o mesmo nome
    2. Variável de ambiente com o mesmo nome
    3. Arquivo de chaves mestras (seguindo realocações)
    4. Deixa a chave sem valor; o chamador decide o fallback

    Attributes:
        system_properties: Propriedades de sistema do processo
        environ: Variáveis de ambiente (padrão: os.environ)
    """

    def __init__(
        self,
        system_properties: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.system_properties = system_properties if system_properties is not None else {}
        self.environ = environ if environ is not None else os.environ
        self._logger = logger or logging.getLogger(__name__)
        self._master_key_file: Optional[Path] = None
        self._store: Optional[MasterKeyStore] = None

    @property
    def master_key_file(self) -> Optional[Path]:
        return self._master_key_file

    def init(self, config: ComponentConfig) -> None:
        """Define o arquivo de chaves mestras.

        O caminho vem do parâmetro masterKeyFile; na ausência dele, da
        propriedade de sistema secure.vault.master.key.file e, por fim, da
        variável SECURE_VAULT_MASTER_KEY_FILE. O arquivo só é lido quando
        alguma chave não for encontrada nas fontes de maior prioridade.
        """
        configured = config.get_parameter(MASTER_KEY_FILE)
        if configured:
            self._master_key_file = Path(configured)
        else:
            self._master_key_file = path_from_system_variable(
                MASTER_KEY_FILE_PROPERTY,
                MASTER_KEY_FILE_ENV,
                self.system_properties,
                self.environ,
            )
        self._store = None
        self._logger.debug(f"Leitor de chaves mestras inicializado (arquivo: {self._master_key_file})")

    def read_master_keys(self, master_keys: List[MasterKey]) -> List[str]:
        """Resolve as chaves ainda sem valor, na ordem de prioridade.

        Raises:
            ConfigurationError: Se o arquivo de chaves for necessário e não
                                puder ser lido
            CyclicReferenceError: Se as realocações formarem um ciclo
        """
        missing = []
        for master_key in master_keys:
            if master_key.is_resolved:
                continue

            value = self.system_properties.get(master_key.name)
            source = "propriedade de sistema"
            if not value:
                value = self.environ.get(master_key.name)
                source = "variável de ambiente"
            if not value:
                store = self._load_store()
                value = store.master_keys.get(master_key.name) if store else None
                source = "arquivo de chaves mestras"

            if value:
                master_key.set_value(value)
                self._logger.debug(f"Chave mestra '{master_key.name}' lida de: {source}")
            else:
                missing.append(master_key.name)
                self._logger.debug(f"Chave mestra '{master_key.name}' não encontrada")

        return missing

    def _load_store(self) -> Optional[MasterKeyStore]:
        """Carrega (uma vez) o arquivo terminal da cadeia de realocação."""
        if self._store is not None or self._master_key_file is None:
            return self._store

        visited: Set[Path] = set()
        path = self._master_key_file
        while True:
            resolved = path.resolve()
            if resolved in visited:
                raise CyclicReferenceError(
                    f"Referência cíclica na realocação de chaves mestras: {resolved}"
                )
            visited.add(resolved)

            store = MasterKeyStore.from_file(resolved)
            if not store.relocation:
                break

            relocated = Path(store.relocation)
            if not relocated.is_absolute():
                relocated = resolved.parent / relocated
            self._logger.debug(f"Arquivo de chaves mestras realocado: {resolved} -> {relocated}")
            path = relocated

        self._store = store
        return store
