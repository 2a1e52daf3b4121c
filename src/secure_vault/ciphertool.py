"""secure-vault-ciphertool: cifragem offline de segredos.

Sem comando de texto, cifra as entradas plainText do arquivo de segredos do
repositório principal. Exemplos:

    secure-vault-ciphertool --config-path secure-vault.yaml
    secure-vault-ciphertool -D keyStorePassword=senha --encrypt-text "s3cr3t"
    secure-vault-ciphertool --decrypt-text "<base64>"
"""

import argparse
import importlib
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from . import __version__
from .context import ComponentRegistry, VaultContext
from .exceptions import ConfigurationError, SecureVaultError
from .utils import base64_decode, base64_encode
from .vault import create_components, load_config

logger = logging.getLogger(__name__)

PLUGIN_ENTRY_POINT = "register_components"


def system_property(value: str) -> Tuple[str, str]:
    """Converte "nome=valor" (argumento -D) em par."""
    name, sep, prop = value.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Propriedade inválida '{value}', esperado nome=valor")
    return name.strip(), prop


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secure-vault-ciphertool",
        description="Cifra segredos com o keystore configurado no secure-vault.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config-path",
        default=None,
        help="YAML do cofre (padrão: propriedade secure.vault.yaml ou $SECURE_VAULT_YAML)",
    )
    parser.add_argument(
        "--custom-lib-path",
        default=None,
        help="Diretório acrescentado ao caminho de importação antes de carregar plugins",
    )
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        metavar="MODULE",
        help=f"Módulo que expõe {PLUGIN_ENTRY_POINT}(registry); pode repetir",
    )
    parser.add_argument(
        "-D",
        dest="properties",
        action="append",
        default=[],
        type=system_property,
        metavar="NOME=VALOR",
        help="Define uma propriedade de sistema; pode repetir",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log em nível DEBUG")

    command = parser.add_mutually_exclusive_group()
    command.add_argument("--encrypt-text", metavar="TEXT", help="Cifra o texto e imprime em base64")
    command.add_argument("--decrypt-text", metavar="B64", help="Decifra o base64 e imprime o texto")
    return parser


def load_plugins(
    registry: ComponentRegistry, modules: Sequence[str], custom_lib_path: Optional[str] = None
) -> None:
    """Importa os módulos de plugin e chama register_components(registry).

    Raises:
        ConfigurationError: Se o módulo não existir ou não expuser o ponto de entrada
    """
    if custom_lib_path:
        sys.path.insert(0, custom_lib_path)
        importlib.invalidate_caches()

    for name in modules:
        try:
            module = importlib.import_module(name)
        except ImportError as exc:
            raise ConfigurationError(f"Plugin não encontrado: {name}") from exc

        register = getattr(module, PLUGIN_ENTRY_POINT, None)
        if not callable(register):
            raise ConfigurationError(f"Plugin '{name}' não define {PLUGIN_ENTRY_POINT}(registry)")
        register(registry)
        logger.debug(f"Plugin carregado: {name}")


def main(argv: Optional[List[str]] = None) -> int:
    """Ponto de entrada da CLI.

    Returns:
        int: 0 em sucesso, 1 em erro (uso incorreto sai com 2 pelo argparse)
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    context = VaultContext(system_properties=dict(args.properties))

    try:
        load_plugins(context.components, args.plugin, args.custom_lib_path)
        config = load_config(context, args.config_path)
        _, repository = create_components(context, config)

        if args.encrypt_text is not None:
            print(base64_encode(repository.encrypt(args.encrypt_text.encode("utf-8"))))
        elif args.decrypt_text is not None:
            plaintext = repository.decrypt(base64_decode(args.decrypt_text.strip()))
            print(plaintext.decode("utf-8", errors="replace"))
        else:
            repository.persist_secrets(config.secret_repository)
            logger.info("Segredos cifrados com sucesso")
    except SecureVaultError as exc:
        logger.error(f"Erro: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
