"""Hierarquia de erros do secure_vault."""


class SecureVaultError(Exception):
    """Erro base do cofre de segredos.

    Todas as falhas do pacote derivam desta classe; o chamador decide se a
    falha é fatal a partir do contexto (inicialização, CLI, resolução).
    """

    pass


class ConfigurationError(SecureVaultError):
    """Configuração ausente ou inválida (tipo obrigatório, arquivo, parâmetro)."""

    pass


class KeyMaterialError(SecureVaultError):
    """Keystore ilegível, alias inexistente ou senha incorreta."""

    pass


class ResolutionError(SecureVaultError):
    """Placeholder sem valor ou alias qualificado com aridade inválida."""

    pass


class CyclicReferenceError(SecureVaultError):
    """Ciclo em cadeia de realocação ou de repositórios pais."""

    pass


class CodecError(SecureVaultError):
    """Registro de texto cifrado malformado."""

    pass
