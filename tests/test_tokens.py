"""Testes para extração e substituição de marcadores."""

from secure_vault import (
    ProtectedToken,
    RegistrySecretResolver,
    SecretRegistry,
    extract_protected_tokens,
    get_protected_token,
    resolve,
)

from test_registry import DictRepository


class FakeResolver:
    def __init__(self, secrets, initialized=True):
        self.secrets = secrets
        self.initialized = initialized
        self.resolved = []

    def is_initialized(self):
        return self.initialized

    def is_token_protected(self, token):
        return token in self.secrets

    def resolve(self, token):
        self.resolved.append(token)
        return self.secrets[token]


def test_extract_two_tokens_with_offsets():
    """Testa offsets exatos de dois marcadores em ordem."""
    tokens = extract_protected_tokens("a$secret{x}b$secret{y}c")

    assert tokens == [ProtectedToken(1, 10, "x"), ProtectedToken(12, 21, "y")]


def test_extract_first_closing_brace_terminates():
    """Testa que marcadores aninhados não são tratados."""
    tokens = extract_protected_tokens("$secret{a$secret{b}}")

    assert tokens == [ProtectedToken(0, 18, "a$secret{b")]


def test_extract_unterminated_marker_ends_scan():
    """Testa que abertura sem fechamento encerra a busca."""
    assert extract_protected_tokens("x$secret{open") == []
    assert extract_protected_tokens("$secret{a} $secret{open") == [ProtectedToken(0, 9, "a")]


def test_extract_no_tokens():
    """Testa texto sem marcadores."""
    assert extract_protected_tokens("") == []
    assert extract_protected_tokens("plain {text}") == []


def test_get_protected_token():
    """Testa alias do primeiro marcador."""
    assert get_protected_token("u=$secret{user} p=$secret{pass}") == "user"
    assert get_protected_token("nada") is None


def test_resolve_replaces_only_protected_tokens():
    """Testa que x é substituído e y permanece literal."""
    resolver = FakeResolver({"x": "SECRET"})

    result = resolve("a$secret{x}b$secret{y}c", resolver)

    assert result == "aSECRETb$secret{y}c"
    assert resolver.resolved == ["x"]


def test_resolve_replacements_of_different_lengths():
    """Testa offsets preservados com valores de tamanhos diferentes."""
    resolver = FakeResolver({"x": "", "y": "a-much-longer-value"})

    assert resolve("[$secret{x}][$secret{y}][$secret{x}]", resolver) == "[][a-much-longer-value][]"


def test_resolve_whole_text_shortcut():
    """Testa que texto sem marcadores é resolvido se for um alias."""
    resolver = FakeResolver({"dbPassword": "s3cr3t"})

    assert resolve("dbPassword", resolver) == "s3cr3t"
    assert resolve("other", resolver) == "other"


def test_resolve_uninitialized_or_missing_resolver():
    """Testa que o texto volta intacto sem resolvedor pronto."""
    text = "a$secret{x}"

    assert resolve(text, None) == text
    assert resolve(text, FakeResolver({"x": "1"}, initialized=False)) == text


def test_registry_secret_resolver():
    """Testa a adaptação do SecretRegistry ao protocolo."""
    registry = SecretRegistry()
    registry.add_repository(DictRepository({"x": "legacy"}))
    registry.add_provider("vault", {"kv": DictRepository({"y": "provided"})})
    resolver = RegistrySecretResolver(registry)

    text = "$secret{x} $secret{vault:kv:y} $secret{z} $secret{a:b}"
    assert resolve(text, resolver) == "legacy provided $secret{z} $secret{a:b}"
