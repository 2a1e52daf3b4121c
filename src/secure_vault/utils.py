"""Funções auxiliares para o secure_vault."""

import base64
import binascii
import hashlib
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, Mapping, Optional, TextIO, Tuple

from dotenv import dotenv_values

from .exceptions import CodecError, ResolutionError


CHECKSUM_KEY = "SECURE_VAULT_CHECKSUM"

# Tags do arquivo de segredos: "alias=plainText <valor>" ou "alias=cipherText <base64>"
PLAIN_TEXT = "plainText"
CIPHER_TEXT = "cipherText"
SECRET_TAGS = (PLAIN_TEXT, CIPHER_TEXT)

_VAR_PATTERN_ENV = re.compile(r"\$\{env:([^}]*)}")
_VAR_PATTERN_SYS = re.compile(r"\$\{sys:([^}]*)}")


def tag_secret(tag: str, payload: str) -> str:
    """Monta o valor armazenado de uma entrada do arquivo de segredos."""
    if tag not in SECRET_TAGS:
        raise CodecError(f"Tag de segredo desconhecida: {tag}")
    return f"{tag} {payload}"


def split_secret(alias: str, value: str) -> Tuple[str, str]:
    """Separa o valor armazenado em (tag, conteúdo).

    A tag vai até o primeiro espaço; o restante é o conteúdo, preservado
    como está para plainText.

    Examples:
        >>> split_secret("db", "plainText Hello@123")
        ('plainText', 'Hello@123')

    Raises:
        CodecError: Se o valor não começar por plainText ou cipherText
    """
    tag, _, payload = value.lstrip().partition(" ")
    if tag not in SECRET_TAGS:
        raise CodecError(
            f"Entrada '{alias}' do arquivo de segredos deve começar por '{PLAIN_TEXT}' ou '{CIPHER_TEXT}'"
        )
    return tag, payload


def secrets_checksum(entries: Mapping[str, str]) -> str:
    """SHA256 das entradas do arquivo de segredos, em ordem de alias.

    A entrada de checksum não participa do cálculo.
    """
    digest = hashlib.sha256()
    for alias in sorted(entries):
        if alias == CHECKSUM_KEY:
            continue
        digest.update(f"{alias}={entries[alias]}\n".encode("utf-8"))
    return digest.hexdigest()


def read_properties(path: Path) -> Dict[str, str]:
    """Lê um arquivo chave=valor com python-dotenv, sem interpolação."""
    values = dotenv_values(path, interpolate=False, encoding="utf-8")
    return {key: value for key, value in values.items() if value is not None}


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _set_lock(file_handle: TextIO, locked: bool) -> None:
    if os.name == "nt":
        import msvcrt

        file_handle.seek(0)
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_LOCK if locked else msvcrt.LK_UNLCK, 1)
        return

    import fcntl

    fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX if locked else fcntl.LOCK_UN)


@contextmanager
def locked_file(path: Path) -> Iterator[TextIO]:
    """Abre o arquivo para escrita com lock exclusivo."""
    file_handle = path.open("a+", encoding="utf-8", errors="strict")
    _set_lock(file_handle, True)
    try:
        yield file_handle
    finally:
        _set_lock(file_handle, False)
        file_handle.close()


def write_secrets_file(path: Path, entries: Mapping[str, str], header: Optional[str] = None) -> None:
    """Regrava o arquivo de segredos com as entradas e o checksum ao final.

    O conteúdo é montado antes de abrir o arquivo; o lock cobre apenas
    truncar e escrever.
    """
    lines = [f"# {header}\n"] if header else []
    lines.extend(f"{alias}={_quote(entries[alias])}\n" for alias in sorted(entries) if alias != CHECKSUM_KEY)
    lines.append(f"{CHECKSUM_KEY}={_quote(secrets_checksum(entries))}\n")

    with locked_file(path) as f:
        f.seek(0)
        f.truncate()
        f.writelines(lines)


def _substitute(
    pattern: "re.Pattern[str]", value: str, lookup: Callable[[str], Optional[str]]
) -> str:
    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        resolved = lookup(name)
        if not resolved:
            raise ResolutionError(f"Nenhum valor definido para o placeholder '{name}'")
        return resolved

    return pattern.sub(replace, value)


def substitute_variables(
    value: str,
    environ: Optional[Mapping[str, str]] = None,
    system_properties: Optional[Mapping[str, str]] = None,
) -> str:
    """Substitui placeholders ${env:NOME} e ${sys:NOME} no texto.

    Args:
        value: Texto bruto (e.g., conteúdo de um arquivo YAML)
        environ: Variáveis de ambiente (padrão: os.environ)
        system_properties: Propriedades de sistema do processo

    Returns:
        str: Texto com os placeholders substituídos

    Raises:
        ResolutionError: Se algum placeholder não tiver valor

    Examples:
        >>> substitute_variables("${env:HOME}/conf", {"HOME": "/opt"})
        '/opt/conf'
    """
    env = os.environ if environ is None else environ
    props = system_properties or {}

    if _VAR_PATTERN_ENV.search(value):
        value = _substitute(_VAR_PATTERN_ENV, value, env.get)
    if _VAR_PATTERN_SYS.search(value):
        value = _substitute(_VAR_PATTERN_SYS, value, props.get)
    return value


def path_from_system_variable(
    system_property: str,
    environment_variable: str,
    system_properties: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[Path]:
    """Obtém um caminho da propriedade de sistema ou, em seguida, do ambiente."""
    env = os.environ if environ is None else environ
    path = (system_properties or {}).get(system_property) or env.get(environment_variable)
    return Path(path) if path else None


def base64_encode(data: bytes) -> str:
    """Codifica bytes em base64 padrão (ASCII)."""
    return base64.b64encode(data).decode("ascii")


def base64_decode(data: str | bytes) -> bytes:
    """Decodifica base64 padrão, validando o alfabeto.

    Raises:
        CodecError: Se o valor não for base64 válido
    """
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecError("Valor base64 inválido") from exc
