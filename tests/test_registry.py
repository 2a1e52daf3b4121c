"""Testes para SecretRegistry."""

import logging

import pytest

from secure_vault import (
    ComponentConfig,
    ConfigurationError,
    ResolutionError,
    SecretRegistry,
    SecretRepository,
    SecureVaultConfig,
    VaultContext,
)
from secure_vault.config import ProviderConfig


class DictRepository(SecretRepository):
    """Repositório em memória que registra as consultas."""

    def __init__(self, secrets=None):
        super().__init__()
        self.secrets = dict(secrets or {})
        self.lookups = []

    def init(self, config, master_key_reader):
        pass

    def load_secrets(self, config):
        pass

    def persist_secrets(self, config):
        pass

    def get_secret(self, alias):
        self.lookups.append(alias)
        return self.secrets.get(alias, alias)

    def get_encrypted_data(self, alias):
        return f"enc:{self.secrets[alias]}" if alias in self.secrets else alias

    def has_secret(self, alias):
        return alias in self.secrets

    def encrypt(self, plaintext):
        return plaintext

    def decrypt(self, ciphertext):
        return ciphertext


def test_qualified_alias_routes_to_exact_repository():
    """Testa que provider:repositório:alias consulta só aquele repositório."""
    hashicorp = DictRepository({"dbPassword": "from-hashicorp"})
    other = DictRepository({"dbPassword": "from-other"})
    legacy = DictRepository({"dbPassword": "from-legacy"})

    registry = SecretRegistry()
    registry.add_repository(legacy)
    registry.add_provider("vault", {"hashicorp": hashicorp, "other": other})

    assert registry.resolve_secret("vault:hashicorp:dbPassword") == "from-hashicorp"
    assert hashicorp.lookups == ["dbPassword"]
    assert other.lookups == []
    assert legacy.lookups == []


def test_bare_alias_uses_legacy_chain():
    """Testa que alias simples usa a cabeça da cadeia legada."""
    head = DictRepository({"x": "head"})
    tail = DictRepository({"x": "tail"})
    provider_repo = DictRepository({"x": "provider"})

    registry = SecretRegistry()
    registry.add_repository(head)
    registry.add_repository(tail)
    registry.add_provider("vault", {"hashicorp": provider_repo})

    assert tail.parent is head
    assert registry.head is head
    assert registry.resolve_secret("x") == "head"
    assert registry.get_secret("x") == "head"
    assert provider_repo.lookups == []


def test_bare_alias_with_single_provider_pair():
    """Testa o par provedor/repositório implícito."""
    only = DictRepository({"x": "only"})
    registry = SecretRegistry()
    registry.add_provider("vault", {"hashicorp": only})

    assert registry.resolve_secret("x") == "only"


def test_bare_alias_without_destination(caplog):
    """Testa que sem cadeia legada nem par único o alias volta intacto."""
    registry = SecretRegistry()
    registry.add_provider("vault", {"a": DictRepository({"x": "1"}), "b": DictRepository({"x": "2"})})

    with caplog.at_level(logging.DEBUG):
        assert registry.resolve_secret("x") == "x"

    assert "Nenhum repositório registrado para 'x'" in caplog.text
    assert not registry.is_protected("x")
    assert registry.resolve_secret("vault:b:x") == "2"


@pytest.mark.parametrize("annotation", ["a:b", "a:b:c:d"])
def test_invalid_arity(annotation):
    """Testa erro para aridade diferente de 1 ou 3."""
    registry = SecretRegistry()
    registry.add_repository(DictRepository())

    with pytest.raises(ResolutionError, match="Formato de alias inválido"):
        registry.resolve_secret(annotation)


def test_unknown_provider_returns_alias(caplog):
    """Testa que provedor ou repositório desconhecido devolve o alias."""
    registry = SecretRegistry()
    registry.add_provider("vault", {"hashicorp": DictRepository({"x": "1"})})

    with caplog.at_level(logging.DEBUG):
        assert registry.resolve_secret("nope:hashicorp:x") == "x"
        assert registry.resolve_secret("vault:nope:x") == "x"

    assert registry.get_secret_from("vault", "hashicorp", "x") == "1"
    assert registry.get_secret_from("vault", "nope", "x") == "x"
    assert "Nenhum repositório registrado" in caplog.text


def test_unknown_alias_returns_alias():
    """Testa que alias desconhecido nunca é erro."""
    registry = SecretRegistry()
    registry.add_repository(DictRepository())

    assert registry.resolve_secret("missing") == "missing"
    assert registry.get_encrypted_data("missing") == "missing"


def test_is_protected():
    """Testa a verificação de aliases conhecidos."""
    registry = SecretRegistry()
    assert not registry.is_protected("x")

    registry.add_repository(DictRepository({"x": "1"}))
    registry.add_provider("vault", {"hashicorp": DictRepository({"y": "2"})})

    assert registry.is_protected("x")
    assert registry.is_protected("vault:hashicorp:y")
    assert not registry.is_protected("y")
    assert not registry.is_protected("a:b")


def test_empty_registry():
    """Testa registro sem repositórios."""
    registry = SecretRegistry()
    assert not registry.is_initialized()
    assert registry.get_secret("x") == "x"
    assert registry.get_encrypted_data("x") == "x"


def test_shutdown():
    """Testa que shutdown descarta os repositórios."""
    registry = SecretRegistry()
    registry.add_repository(DictRepository({"x": "1"}))
    registry.shutdown()

    assert not registry.is_initialized()
    assert registry.get_secret("x") == "x"


def _context_with(repositories):
    """Contexto cujo tipo "memory" devolve os repositórios em ordem."""
    context = VaultContext(environ={})
    pending = list(repositories)
    context.components.register_secret_repository("memory", lambda ctx: pending.pop(0))
    return context


def test_init_builds_legacy_chain_and_providers():
    """Testa init() a partir da configuração."""
    first, second, provided = DictRepository({"a": "1"}), DictRepository(), DictRepository({"b": "2"})
    context = _context_with([first, second, provided])
    config = SecureVaultConfig(
        secret_repositories=[ComponentConfig(type="memory"), ComponentConfig(type="memory")],
        secret_providers={
            "vault": ProviderConfig(name="vault", repositories={"kv": ComponentConfig(type="memory")})
        },
    )

    registry = SecretRegistry(context)
    registry.init(config, master_key_reader=None)

    assert registry.is_initialized()
    assert second.parent is first
    assert registry.resolve_secret("a") == "1"
    assert registry.resolve_secret("vault:kv:b") == "2"
    assert registry.providers == {"vault": {"kv": provided}}


def test_init_at_most_once():
    """Testa que uma segunda chamada de init() não reconstrói nada."""
    context = _context_with([DictRepository({"a": "1"})])
    config = SecureVaultConfig(secret_repositories=[ComponentConfig(type="memory")])

    registry = SecretRegistry(context)
    registry.init(config, master_key_reader=None)
    registry.init(config, master_key_reader=None)

    assert registry.resolve_secret("a") == "1"


def test_init_disabled():
    """Testa que secVault.enabled=false não inicializa o registro."""
    registry = SecretRegistry(VaultContext(environ={}))
    registry.init(SecureVaultConfig(enabled=False), master_key_reader=None)

    assert not registry.is_initialized()


def test_init_unknown_type():
    """Testa erro para tipo de repositório não registrado."""
    registry = SecretRegistry(VaultContext(environ={}))
    config = SecureVaultConfig(secret_repositories=[ComponentConfig(type="missing")])

    with pytest.raises(ConfigurationError, match="não registrado"):
        registry.init(config, master_key_reader=None)

    assert not registry.is_initialized()


def test_init_without_context():
    """Testa erro ao construir repositórios sem contexto."""
    with pytest.raises(ConfigurationError, match="sem contexto"):
        SecretRegistry().init(SecureVaultConfig(), master_key_reader=None)
