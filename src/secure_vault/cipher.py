"""Motor de cifra baseado em keystore PKCS#12.

Algoritmos suportados:
- RSA: RSA-OAEP com SHA-256 (padrão)
- RSA/ECB/PKCS1Padding: RSA PKCS#1 v1.5, para textos cifrados legados
- AES/GCM/NoPadding: AES-256-GCM, chave derivada por HKDF da chave privada

No modo GCM cada cifragem gera um IV aleatório de 96 bits que viaja junto
com o texto cifrado em um único registro JSON {"iv", "cipherText"}.

NOTA DE SEGURANÇA: Nunca registre em log texto claro ou material de chave.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Self

import orjson
from cryptography import x509
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.serialization import pkcs12

from .config import ComponentConfig
from .exceptions import CodecError, ConfigurationError, KeyMaterialError
from .masterkey import MasterKey, get_master_key
from .utils import base64_decode, base64_encode


KEY_STORE_PASSWORD = "keyStorePassword"
PRIVATE_KEY_PASSWORD = "privateKeyPassword"

KEYSTORE_LOCATION = "keystoreLocation"
PRIVATE_KEY_ALIAS = "privateKeyAlias"
ALGORITHM = "algorithm"
ENCRYPTION_MODE = "encryptionMode"
SYMMETRIC = "symmetric"

RSA_OAEP = "RSA"
RSA_PKCS1 = "RSA/ECB/PKCS1Padding"
AES_GCM = "AES/GCM/NoPadding"
DEFAULT_ASYMMETRIC_ALGORITHM = RSA_OAEP
DEFAULT_SYMMETRIC_ALGORITHM = AES_GCM
SUPPORTED_ALGORITHMS = (RSA_OAEP, RSA_PKCS1, AES_GCM)

IV = "iv"
CIPHER_TEXT = "cipherText"
NONCE_SIZE = 12  # 96-bit IV
KEY_LENGTH = 32  # AES-256


class AtomicCounter:
    """Thread-safe counter for statistics tracking.

    Uses a lock to ensure atomic increment and read operations,
    preventing race conditions under concurrent access.
    """

    def __init__(self) -> None:
        self._value = 0
        self._lock = Lock()

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass(frozen=True)
class KeyStoreHandle:
    """Material de identidade e de confiança de um keystore PKCS#12.

    Attributes:
        alias: Alias selecionado (friendly name do certificado)
        certificate: Certificado do alias; sua chave pública cifra
        private_key: Chave privada do alias, se o alias for de identidade
        trusted: Certificados de confiança adicionais por alias
    """

    alias: str
    certificate: x509.Certificate
    private_key: Optional[rsa.RSAPrivateKey] = None
    trusted: Dict[str, x509.Certificate] = field(default_factory=dict)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        key = self.certificate.public_key()
        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyMaterialError(f"Certificado do alias '{self.alias}' não tem chave RSA")
        return key

    def require_private_key(self) -> rsa.RSAPrivateKey:
        """Retorna a chave privada ou falha se o alias for só de confiança."""
        if self.private_key is None:
            raise KeyMaterialError(f"Nenhuma chave privada encontrada com o alias: {self.alias}")
        return self.private_key

    @classmethod
    def load(cls, location: str | Path, password: bytes, alias: str) -> Self:
        """Abre o keystore e seleciona o alias.

        Raises:
            KeyMaterialError: Se o arquivo não existir, a senha estiver
                              incorreta ou o alias não existir no keystore
        """
        path = Path(location)
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise KeyMaterialError(f"Keystore não encontrado no caminho: {path}") from exc
        except OSError as exc:
            raise KeyMaterialError(f"Falha ao ler o keystore: {path}") from exc

        try:
            bundle = pkcs12.load_pkcs12(data, password)
        except ValueError as exc:
            raise KeyMaterialError(f"Senha incorreta ou keystore inválido: {path}") from exc

        trusted = {}
        for extra in bundle.additional_certs:
            if extra.friendly_name:
                trusted[extra.friendly_name.decode("utf-8")] = extra.certificate

        if bundle.cert is not None and bundle.cert.friendly_name is not None:
            if bundle.cert.friendly_name.decode("utf-8") == alias:
                private_key = bundle.key
                if private_key is not None and not isinstance(private_key, rsa.RSAPrivateKey):
                    raise KeyMaterialError(f"A chave privada do alias '{alias}' não é RSA")
                return cls(
                    alias=alias,
                    certificate=bundle.cert.certificate,
                    private_key=private_key,
                    trusted=trusted,
                )

        if alias in trusted:
            return cls(alias=alias, certificate=trusted[alias], trusted=trusted)

        raise KeyMaterialError(f"Nenhum certificado encontrado com o alias: {alias}")


def derive_key(private_key: rsa.RSAPrivateKey, context: str) -> bytes:
    """Deriva uma chave AES-256 da chave privada usando HKDF-SHA256.

    Args:
        private_key: Chave privada do keystore (material de entrada)
        context: Separação de domínio (inclui o alias)

    Returns:
        bytes: Chave derivada de 32 bytes
    """
    seed = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # derivação determinística: a mesma chave deve decifrar depois
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def _asymmetric_padding(algorithm: str) -> padding.AsymmetricPadding:
    if algorithm == RSA_PKCS1:
        return padding.PKCS1v15()
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class KeyStoreCipherEngine:
    """Cifra e decifra com o material de um keystore PKCS#12.

    Esta classe fornece:
    - Abertura do keystore com a senha vinda das chaves mestras
    - Cifragem assimétrica RSA (padrão) ou simétrica AES-GCM
    - Registros GCM autodescritivos com IV novo a cada cifragem
    - Estatísticas de uso
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self._keystore: Optional[KeyStoreHandle] = None
        self._aesgcm: Optional[AESGCM] = None
        self.algorithm: Optional[str] = None
        self._stats = {
            "encryptions": AtomicCounter(),
            "decryptions": AtomicCounter(),
        }

    @property
    def is_initialized(self) -> bool:
        return self._keystore is not None

    @property
    def keystore(self) -> Optional[KeyStoreHandle]:
        return self._keystore

    def init(self, config: ComponentConfig, master_keys: List[MasterKey]) -> None:
        """Abre o keystore e prepara o algoritmo selecionado.

        Args:
            config: Parâmetros keystoreLocation, privateKeyAlias e,
                    opcionalmente, algorithm e encryptionMode
            master_keys: Chaves mestras já lidas; keyStorePassword é obrigatória

        Raises:
            ConfigurationError: Se faltar parâmetro ou o algoritmo não for suportado
            KeyMaterialError: Se o keystore, a senha ou o alias forem inválidos
        """
        location = config.require_parameter(KEYSTORE_LOCATION)
        alias = config.require_parameter(PRIVATE_KEY_ALIAS)

        symmetric = config.get_parameter(ENCRYPTION_MODE) == SYMMETRIC
        default_algorithm = DEFAULT_SYMMETRIC_ALGORITHM if symmetric else DEFAULT_ASYMMETRIC_ALGORITHM
        algorithm = config.get_parameter(ALGORITHM, default_algorithm)
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(
                f"Algoritmo '{algorithm}' não suportado. "
                f"Algoritmos disponíveis: {list(SUPPORTED_ALGORITHMS)}"
            )

        store_password = get_master_key(master_keys, KEY_STORE_PASSWORD)
        if not store_password.is_resolved:
            raise KeyMaterialError(f"Chave mestra '{KEY_STORE_PASSWORD}' não foi resolvida")
        password = bytes(store_password.value)

        try:
            key_password = get_master_key(master_keys, PRIVATE_KEY_PASSWORD)
        except KeyMaterialError:
            key_password = None
        if key_password is not None and key_password.is_resolved and bytes(key_password.value) != password:
            raise KeyMaterialError(
                "Keystores PKCS#12 usam uma única senha; "
                f"'{PRIVATE_KEY_PASSWORD}' deve ser igual a '{KEY_STORE_PASSWORD}'"
            )

        keystore = KeyStoreHandle.load(location, password, alias)

        if algorithm == AES_GCM:
            self._aesgcm = AESGCM(derive_key(keystore.require_private_key(), f"secure-vault-{alias}"))
        else:
            self._aesgcm = None

        self._keystore = keystore
        self.algorithm = algorithm
        self._logger.debug(f"Motor de cifra inicializado (alias: {alias}, algoritmo: {algorithm})")

    def _require_keystore(self) -> KeyStoreHandle:
        if self._keystore is None:
            raise KeyMaterialError("Motor de cifra não inicializado")
        return self._keystore

    def encrypt(self, plaintext: bytes) -> bytes:
        """Cifra os dados.

        Returns:
            bytes: Texto cifrado RSA bruto, ou o registro JSON {"iv", "cipherText"}
                   no modo GCM
        """
        keystore = self._require_keystore()

        if self._aesgcm is not None:
            nonce = os.urandom(NONCE_SIZE)
            ciphertext = self._aesgcm.encrypt(nonce, plaintext, None)
            payload = orjson.dumps({IV: base64_encode(nonce), CIPHER_TEXT: base64_encode(ciphertext)})
        else:
            try:
                payload = keystore.public_key.encrypt(plaintext, _asymmetric_padding(self.algorithm))
            except ValueError as exc:
                raise CodecError("Texto claro grande demais para a chave RSA") from exc

        self._stats["encryptions"].increment()
        return payload

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decifra os dados produzidos por encrypt().

        Raises:
            CodecError: Se o registro estiver malformado ou a autenticação falhar
            KeyMaterialError: Se o alias não tiver chave privada
        """
        keystore = self._require_keystore()

        if self._aesgcm is not None:
            nonce, body = self._parse_record(ciphertext)
            try:
                plaintext = self._aesgcm.decrypt(nonce, body, None)
            except InvalidTag as exc:
                raise CodecError("Falha de autenticação ao decifrar registro GCM") from exc
        else:
            private_key = keystore.require_private_key()
            try:
                plaintext = private_key.decrypt(ciphertext, _asymmetric_padding(self.algorithm))
            except ValueError as exc:
                raise CodecError("Falha ao decifrar texto cifrado RSA") from exc

        self._stats["decryptions"].increment()
        return plaintext

    @staticmethod
    def _parse_record(record: bytes) -> tuple[bytes, bytes]:
        try:
            parsed = orjson.loads(record)
        except orjson.JSONDecodeError as exc:
            raise CodecError("Texto cifrado inválido: falha no parse do JSON") from exc
        if not isinstance(parsed, dict):
            raise CodecError("Texto cifrado inválido: registro JSON esperado")

        for name in (IV, CIPHER_TEXT):
            if not isinstance(parsed.get(name), str):
                raise CodecError(f'Valor "{name}" não encontrado no JSON')

        nonce = base64_decode(parsed[IV])
        if len(nonce) != NONCE_SIZE:
            raise CodecError(f"IV com tamanho inválido: {len(nonce)} bytes (esperado {NONCE_SIZE})")
        return nonce, base64_decode(parsed[CIPHER_TEXT])

    def get_statistics(self) -> dict:
        """Retorna estatísticas de uso."""
        return {
            "encryptions": self._stats["encryptions"].value(),
            "decryptions": self._stats["decryptions"].value(),
        }
