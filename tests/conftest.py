"""Fixtures compartilhadas: keystore PKCS#12 descartável e configurações."""

import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from cryptography.x509.oid import NameOID

from secure_vault import ComponentConfig, DefaultMasterKeyReader

PASSWORD = "wso2carbon"
ALIAS = "wso2carbon"
TRUSTED_ALIAS = "trusted"


def _certificate(key: rsa.RSAPrivateKey, common_name: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def trusted_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def keystore_bytes(rsa_key, trusted_key):
    """Keystore com identidade ALIAS e certificado de confiança TRUSTED_ALIAS."""
    trusted = pkcs12.PKCS12Certificate(_certificate(trusted_key, "trusted"), TRUSTED_ALIAS.encode())
    return pkcs12.serialize_key_and_certificates(
        ALIAS.encode(),
        rsa_key,
        _certificate(rsa_key, "secure-vault"),
        [trusted],
        BestAvailableEncryption(PASSWORD.encode()),
    )


@pytest.fixture
def keystore(tmp_path, keystore_bytes):
    path = tmp_path / "keystore.p12"
    path.write_bytes(keystore_bytes)
    return path


@pytest.fixture
def secrets_file(tmp_path):
    return tmp_path / "secrets.properties"


@pytest.fixture
def repo_config(keystore, secrets_file):
    return ComponentConfig(
        type="default",
        parameters={
            "location": str(secrets_file),
            "keystoreLocation": str(keystore),
            "privateKeyAlias": ALIAS,
        },
        name="file",
    )


@pytest.fixture
def reader():
    """Leitor que obtém keyStorePassword de uma propriedade de sistema."""
    master_key_reader = DefaultMasterKeyReader(system_properties={"keyStorePassword": PASSWORD}, environ={})
    master_key_reader.init(ComponentConfig())
    return master_key_reader
