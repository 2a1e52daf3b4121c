"""Configurações e dataclasses para o secure_vault."""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Self

import yaml

from .exceptions import ConfigurationError
from .utils import locked_file, read_properties, substitute_variables


SECRET_REPOSITORY = "secretRepository"
MASTER_KEY_READER = "masterKeyReader"
SECRET_REPOSITORIES = "secretRepositories"
SECRET_PROVIDERS = "secretProviders"
ENABLED = "secVault.enabled"

DEFAULT_TYPE = "default"


def _load_yaml(text: str, source: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"YAML inválido em {source}") from exc


def _string_map(data: Any, where: str) -> Dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"'{where}' deve ser um dicionário")
    return {str(k): "" if v is None else str(v) for k, v in data.items()}


@dataclass
class ComponentConfig:
    """Configuração de um componente plugável (leitor ou repositório).

    Attributes:
        type: Identificador registrado do tipo (e.g., "default")
        parameters: Parâmetros livres nome -> valor
        name: Nome lógico (usado na cadeia legada e nos provedores)
    """

    type: Optional[str] = None
    parameters: Dict[str, str] = field(default_factory=dict)
    name: Optional[str] = None

    def get_parameter(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Retorna o parâmetro sem espaços nas bordas, ou o padrão se vazio."""
        value = self.parameters.get(key)
        if value is None or not value.strip():
            return default
        return value.strip()

    def require_parameter(self, key: str) -> str:
        """Retorna o parâmetro obrigatório.

        Raises:
            ConfigurationError: Se o parâmetro estiver ausente ou vazio
        """
        value = self.get_parameter(key)
        if value is None:
            raise ConfigurationError(f"Parâmetro obrigatório '{key}' não configurado")
        return value

    def require_type(self, kind: str) -> str:
        """Retorna o tipo configurado; obrigatório para instanciar o componente."""
        if not self.type:
            raise ConfigurationError(f"Tipo de {kind} é obrigatório")
        return self.type

    @classmethod
    def from_mapping(cls, data: Any, where: str, name: Optional[str] = None) -> Self:
        """Cria a configuração a partir de {type, parameters}."""
        if data is None:
            return cls(name=name)
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"'{where}' deve ser um dicionário")
        component_type = data.get("type")
        return cls(
            type=str(component_type) if component_type else None,
            parameters=_string_map(data.get("parameters"), f"{where}.parameters"),
            name=str(data.get("name", name)) if data.get("name", name) else None,
        )


@dataclass
class ProviderConfig:
    """Provedor nomeado (e.g., "vault") e seus repositórios nomeados."""

    name: str
    type: str = DEFAULT_TYPE
    repositories: Dict[str, ComponentConfig] = field(default_factory=dict)


@dataclass
class SecureVaultConfig:
    """Configuração do cofre.

    Attributes:
        secret_repository: Repositório principal {type, parameters}
        master_key_reader: Leitor de chaves mestras {type, parameters}
        secret_repositories: Cadeia legada explícita (opcional, ordenada)
        secret_providers: Provedores nomeados e seus repositórios (opcional)
        enabled: Se False, o registro não inicializa repositórios
        logger: Logger opcional para mensagens (usa logging padrão se None)
    """

    secret_repository: ComponentConfig = field(default_factory=ComponentConfig)
    master_key_reader: ComponentConfig = field(default_factory=ComponentConfig)
    secret_repositories: List[ComponentConfig] = field(default_factory=list)
    secret_providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    enabled: bool = True
    logger: Optional[Any] = None  # logging.Logger

    def __post_init__(self) -> None:
        """Valida nomes da cadeia legada."""
        seen = set()
        for position, repository in enumerate(self.secret_repositories):
            if not repository.name:
                repository.name = f"repository{position}"
            if repository.name in seen:
                raise ConfigurationError(
                    f"Repositório '{repository.name}' declarado mais de uma vez em {SECRET_REPOSITORIES}"
                )
            seen.add(repository.name)

    @property
    def legacy_repositories(self) -> List[ComponentConfig]:
        """Cadeia legada efetiva.

        Usa secretRepositories quando declarado; senão o secretRepository
        principal, se tiver tipo.
        """
        if self.secret_repositories:
            return list(self.secret_repositories)
        if self.secret_repository.type:
            return [self.secret_repository]
        return []

    @classmethod
    def from_file(
        cls,
        filename: str | Path,
        environ: Optional[Mapping[str, str]] = None,
        system_properties: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> Self:
        """Cria configuração a partir de um arquivo YAML.

        Placeholders ${env:NOME} e ${sys:NOME} são resolvidos no texto bruto
        antes do parse.

        Args:
            filename: Caminho do arquivo YAML
            environ: Variáveis de ambiente (padrão: os.environ)
            system_properties: Propriedades de sistema do processo
            **kwargs: Argumentos adicionais para SecureVaultConfig

        Returns:
            SecureVaultConfig carregado do arquivo

        Raises:
            ConfigurationError: Se o arquivo não existir ou for inválido
            ResolutionError: Se um placeholder não tiver valor
        """
        path = Path(filename)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Arquivo de configuração não encontrado: {path}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Falha ao ler o arquivo de configuração: {path}") from exc

        resolved = substitute_variables(text, environ, system_properties)
        data = _load_yaml(resolved, str(path))
        return cls.from_mapping(data or {}, **kwargs)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], **kwargs: Any) -> Self:
        """Cria configuração a partir de um dicionário já parseado."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("A configuração do cofre deve ser um dicionário")

        legacy_data = data.get(SECRET_REPOSITORIES) or []
        if not isinstance(legacy_data, list):
            raise ConfigurationError(f"'{SECRET_REPOSITORIES}' deve ser uma lista")
        legacy = [
            ComponentConfig.from_mapping(item, f"{SECRET_REPOSITORIES}[{i}]")
            for i, item in enumerate(legacy_data)
        ]

        providers_data = data.get(SECRET_PROVIDERS) or {}
        if not isinstance(providers_data, Mapping):
            raise ConfigurationError(f"'{SECRET_PROVIDERS}' deve ser um dicionário")
        providers: Dict[str, ProviderConfig] = {}
        for provider_name, provider_data in providers_data.items():
            where = f"{SECRET_PROVIDERS}.{provider_name}"
            if not isinstance(provider_data, Mapping):
                raise ConfigurationError(f"'{where}' deve ser um dicionário")
            repositories_data = provider_data.get("repositories") or {}
            if not isinstance(repositories_data, Mapping):
                raise ConfigurationError(f"'{where}.repositories' deve ser um dicionário")
            providers[str(provider_name)] = ProviderConfig(
                name=str(provider_name),
                type=str(provider_data.get("type") or DEFAULT_TYPE),
                repositories={
                    str(repo_name): ComponentConfig.from_mapping(
                        repo_data, f"{where}.repositories.{repo_name}", name=str(repo_name)
                    )
                    for repo_name, repo_data in repositories_data.items()
                },
            )

        return cls(
            secret_repository=ComponentConfig.from_mapping(data.get(SECRET_REPOSITORY), SECRET_REPOSITORY),
            master_key_reader=ComponentConfig.from_mapping(data.get(MASTER_KEY_READER), MASTER_KEY_READER),
            secret_repositories=legacy,
            secret_providers=providers,
            enabled=bool(data.get("enabled", True)),
            **kwargs,
        )

    @classmethod
    def from_properties_file(cls, filename: str | Path, **kwargs: Any) -> Self:
        """Cria configuração a partir de um arquivo de propriedades (secret-conf)."""
        path = Path(filename)
        if not path.exists():
            raise ConfigurationError(f"Arquivo de propriedades não encontrado: {path}")
        return cls.from_properties(read_properties(path), **kwargs)

    @classmethod
    def from_properties(cls, properties: Mapping[str, str], **kwargs: Any) -> Self:
        """Cria configuração a partir do formato de propriedades planas.

        Formato esperado:
            secretRepositories=file
            secretRepositories.file.provider=default
            secretRepositories.file.location=cipher-text.properties
            secretProviders=vault
            secretProviders.vault.provider=default
            secretProviders.vault.repositories=hashicorp
            secretProviders.vault.repositories.hashicorp=hashicorp
            secretProviders.vault.repositories.hashicorp.properties.address=http://...
            masterKeyReader.type=default
            masterKeyReader.parameters.masterKeyFile=master-keys.yaml
            secVault.enabled=true

        Raises:
            ConfigurationError: Se um repositório legado não declarar provider
        """
        def get(key: str) -> Optional[str]:
            value = properties.get(key)
            return value.strip() if value and value.strip() else None

        def names(key: str) -> List[str]:
            value = get(key)
            return [item.strip() for item in value.split(",") if item.strip()] if value else []

        legacy = []
        for name in names(SECRET_REPOSITORIES):
            prefix = f"{SECRET_REPOSITORIES}.{name}."
            repo_type = get(prefix + "provider")
            if not repo_type:
                raise ConfigurationError(f"Provider do repositório '{name}' não pode ser vazio")
            parameters = {
                k[len(prefix):]: v
                for k, v in properties.items()
                if k.startswith(prefix) and k != prefix + "provider"
            }
            legacy.append(ComponentConfig(type=repo_type, parameters=parameters, name=name))

        providers: Dict[str, ProviderConfig] = {}
        for provider_name in names(SECRET_PROVIDERS):
            prefix = f"{SECRET_PROVIDERS}.{provider_name}."
            repos_key = prefix + "repositories"
            repositories: Dict[str, ComponentConfig] = {}
            for repo_name in names(repos_key):
                repo_type = get(f"{repos_key}.{repo_name}")
                if not repo_type:
                    continue
                props_prefix = f"{repos_key}.{repo_name}.properties."
                repositories[repo_name] = ComponentConfig(
                    type=repo_type,
                    parameters={
                        k[len(props_prefix):]: v
                        for k, v in properties.items()
                        if k.startswith(props_prefix)
                    },
                    name=repo_name,
                )
            providers[provider_name] = ProviderConfig(
                name=provider_name,
                type=get(prefix + "provider") or DEFAULT_TYPE,
                repositories=repositories,
            )

        reader_prefix = f"{MASTER_KEY_READER}.parameters."
        master_key_reader = ComponentConfig(
            type=get(f"{MASTER_KEY_READER}.type") or DEFAULT_TYPE,
            parameters={
                k[len(reader_prefix):]: v for k, v in properties.items() if k.startswith(reader_prefix)
            },
        )

        return cls(
            master_key_reader=master_key_reader,
            secret_repositories=legacy,
            secret_providers=providers,
            enabled=(get(ENABLED) or "true").lower() == "true",
            **kwargs,
        )


@dataclass
class MasterKeyStore:
    """Arquivo de chaves mestras.

    Formato YAML:
        masterKeys:
          keyStorePassword: wso2carbon
        permanent: true
        relocation: /caminho/para/outro/master-keys.yaml

    Attributes:
        master_keys: Mapeamento ordenado nome -> valor
        permanent: Política consultada pelo ciclo de vida do arquivo; o leitor
                   de chaves não age sobre ela
        relocation: Caminho opcional para outro arquivo de chaves mestras
    """

    master_keys: Dict[str, str] = field(default_factory=dict)
    permanent: bool = False
    relocation: str = ""

    @classmethod
    def from_file(cls, filename: str | Path) -> Self:
        """Carrega o arquivo de chaves mestras.

        Raises:
            ConfigurationError: Se o arquivo não existir, não puder ser lido
                                ou não tiver o formato esperado
        """
        path = Path(filename)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Arquivo de chaves mestras não encontrado: {path}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Falha ao ler o arquivo de chaves mestras: {path}") from exc

        data = _load_yaml(text, str(path)) or {}
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Arquivo de chaves mestras inválido: {path}")

        return cls(
            master_keys=_string_map(data.get("masterKeys"), "masterKeys"),
            permanent=bool(data.get("permanent", False)),
            relocation=str(data.get("relocation") or "").strip(),
        )

    def to_file(self, filename: str | Path) -> None:
        """Persiste o arquivo de chaves mestras em YAML.

        Usa lock de arquivo de melhor esforço; não é garantido em todos os sistemas.
        """
        content = yaml.safe_dump(
            {
                "masterKeys": dict(self.master_keys),
                "permanent": self.permanent,
                "relocation": self.relocation,
            },
            sort_keys=False,
        )
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        with locked_file(Path(filename)) as f:
            f.seek(0)
            f.truncate()
            f.write(f"# Atualizado em {timestamp}\n")
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
