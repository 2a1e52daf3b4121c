"""Exemplo básico de uso do SecureVault."""

import datetime
import logging
import tempfile
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from cryptography.x509.oid import NameOID

from secure_vault import (
    ComponentConfig,
    DefaultMasterKeyReader,
    DefaultSecretRepository,
    MasterKeyStore,
    VaultContext,
    initialize_secure_vault,
)

# Configurar logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

PASSWORD = "wso2carbon"
ALIAS = "wso2carbon"


def create_keystore(path: Path) -> None:
    """Gera um keystore PKCS#12 autoassinado (apenas para demonstração)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "secure-vault-example")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            ALIAS.encode(), key, cert, None, BestAvailableEncryption(PASSWORD.encode())
        )
    )


def main():
    """Demonstra cifragem offline e resolução de aliases."""

    print("\n=== SecureVault - Exemplo Básico ===\n")

    with tempfile.TemporaryDirectory() as tmp:
        base = Path(tmp)
        keystore = base / "keystore.p12"
        secrets = base / "secrets.properties"
        master_keys = base / "master-keys.yaml"
        config_path = base / "secure-vault.yaml"

        # 1. Preparar keystore, chaves mestras e segredos em texto claro
        print("1. Criando keystore e arquivos de configuração...")
        create_keystore(keystore)
        MasterKeyStore(master_keys={"keyStorePassword": PASSWORD}).to_file(master_keys)
        secrets.write_text(
            'dbPassword="plainText super-secret-123"\napiKey="plainText sk-1234567890"\n', encoding="utf-8"
        )
        config_path.write_text(
            "\n".join(
                [
                    "secretRepository:",
                    "  type: default",
                    "  parameters:",
                    f"    location: {secrets}",
                    "    keystoreLocation: ${sys:keystore.path}",
                    f"    privateKeyAlias: {ALIAS}",
                    "masterKeyReader:",
                    "  type: default",
                    "  parameters:",
                    f"    masterKeyFile: {master_keys}",
                    "",
                ]
            ),
            encoding="utf-8",
        )

        # 2. Cifrar o arquivo de segredos (o que a CLI faz)
        print("\n2. Cifrando o arquivo de segredos...")
        reader = DefaultMasterKeyReader(environ={})
        reader.init(ComponentConfig(parameters={"masterKeyFile": str(master_keys)}))
        repo_config = ComponentConfig(
            type="default",
            parameters={"location": str(secrets), "keystoreLocation": str(keystore), "privateKeyAlias": ALIAS},
        )
        writer = DefaultSecretRepository()
        writer.init(repo_config, reader)
        writer.persist_secrets(repo_config)
        for line in secrets.read_text(encoding="utf-8").splitlines():
            print(f"   {line[:60]}...")

        # 3. Inicializar o cofre
        print("\n3. Inicializando o cofre...")
        context = VaultContext(system_properties={"keystore.path": str(keystore)}, environ={})
        vault = initialize_secure_vault(context, config_path)
        print(f"   ✓ Inicializado: {context.initialized}")

        # 4. Resolver aliases
        print("\n4. Resolvendo aliases...")
        print(f"   dbPassword -> {vault.resolve('dbPassword').decode()}")
        print(f"   desconhecido -> {vault.resolve('desconhecido').decode()}")

        # 5. Substituir marcadores em texto
        print("\n5. Substituindo marcadores...")
        text = "jdbc:mysql://db?user=app&password=$secret{dbPassword}&key=$secret{outro}"
        print(f"   {vault.resolve_text(text)}")

        # 6. Estatísticas do motor de cifra
        print("\n6. Estatísticas de uso:")
        for key, value in vault.repository.cipher_engine.get_statistics().items():
            print(f"   {key}: {value}")

    print("\n=== Fim do exemplo ===\n")


if __name__ == "__main__":
    main()
