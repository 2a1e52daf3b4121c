"""Extração e substituição de marcadores $secret{alias} em texto."""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from .registry import SecretRegistry


SECRET_PREFIX = "$secret{"
SECRET_SUFFIX = "}"


@dataclass(frozen=True)
class ProtectedToken:
    """Ocorrência de um marcador dentro de um texto.

    Attributes:
        start_index: Posição do "$" que abre o marcador
        end_index: Posição do "}" que fecha o marcador
        value: Alias entre as chaves
    """

    start_index: int
    end_index: int
    value: str


class SecretResolver(Protocol):
    """Resolve aliases para a substituição de marcadores."""

    def is_initialized(self) -> bool: ...

    def is_token_protected(self, token: str) -> bool: ...

    def resolve(self, token: str) -> str: ...


class RegistrySecretResolver:
    """Adapta um SecretRegistry ao protocolo SecretResolver."""

    def __init__(self, registry: SecretRegistry):
        self.registry = registry

    def is_initialized(self) -> bool:
        return self.registry.is_initialized()

    def is_token_protected(self, token: str) -> bool:
        return self.registry.is_protected(token)

    def resolve(self, token: str) -> str:
        return self.registry.resolve_secret(token)


def extract_protected_tokens(text: str) -> List[ProtectedToken]:
    """Localiza os marcadores $secret{...} da esquerda para a direita.

    Marcadores aninhados não são tratados: o primeiro "}" depois da abertura
    sempre encerra o marcador. Uma abertura sem fechamento encerra a busca.

    Examples:
        >>> extract_protected_tokens("a$secret{x}b")
        [ProtectedToken(start_index=1, end_index=10, value='x')]
    """
    tokens = []
    if not text:
        return tokens

    position = 0
    while True:
        start = text.find(SECRET_PREFIX, position)
        if start < 0:
            break
        value_start = start + len(SECRET_PREFIX)
        end = text.find(SECRET_SUFFIX, value_start)
        if end < 0:
            break
        tokens.append(ProtectedToken(start, end, text[value_start:end]))
        position = end + 1

    return tokens


def get_protected_token(text: str) -> Optional[str]:
    """Alias do primeiro marcador do texto, ou None."""
    tokens = extract_protected_tokens(text)
    return tokens[0].value if tokens else None


def resolve(text: str, resolver: Optional[SecretResolver]) -> str:
    """Substitui no texto os marcadores que o resolvedor reconhece.

    Sem marcadores, o texto inteiro é tratado como alias se o resolvedor o
    reconhecer. Marcadores não reconhecidos permanecem literais.

    Args:
        text: Texto com zero ou mais marcadores $secret{alias}
        resolver: Resolvedor; None ou não inicializado devolve o texto intacto

    Returns:
        str: Texto com os segredos reconhecidos substituídos
    """
    if not text or resolver is None or not resolver.is_initialized():
        return text

    tokens = extract_protected_tokens(text)
    if not tokens:
        if resolver.is_token_protected(text):
            return resolver.resolve(text)
        return text

    # Do maior deslocamento ao menor, mantendo válidos os anteriores
    for token in reversed(tokens):
        if resolver.is_token_protected(token.value):
            secret = resolver.resolve(token.value)
            text = text[: token.start_index] + secret + text[token.end_index + 1 :]

    return text
