"""Testes para leitura de chaves mestras."""

import logging

import pytest

from secure_vault import (
    ComponentConfig,
    ConfigurationError,
    CyclicReferenceError,
    DefaultMasterKeyReader,
    KeyMaterialError,
    MasterKey,
    MasterKeyStore,
    get_master_key,
)


def _reader(master_key_file=None, system_properties=None, environ=None):
    reader = DefaultMasterKeyReader(system_properties=system_properties or {}, environ=environ or {})
    parameters = {"masterKeyFile": str(master_key_file)} if master_key_file else {}
    reader.init(ComponentConfig(type="default", parameters=parameters))
    return reader


def test_master_key_set_value_once():
    """Testa que a chave é resolvida uma única vez."""
    key = MasterKey("keyStorePassword")
    assert not key.is_resolved

    key.set_value("senha")
    assert key.text() == "senha"

    with pytest.raises(KeyMaterialError, match="já foi resolvida"):
        key.set_value("outra")


def test_master_key_repr_hides_value():
    """Testa que o repr não expõe o valor."""
    key = MasterKey("keyStorePassword")
    key.set_value("segredo-super")
    assert "segredo-super" not in repr(key)


def test_master_key_cleanup():
    """Testa limpeza segura do valor."""
    key = MasterKey("k")
    key.set_value(b"abc")
    key.cleanup()
    assert key.value == bytearray(3)


def test_get_master_key():
    """Testa busca por nome."""
    keys = [MasterKey("a"), MasterKey("b")]
    assert get_master_key(keys, "b") is keys[1]

    with pytest.raises(KeyMaterialError, match="Nenhuma chave mestra"):
        get_master_key(keys, "c")


def test_priority_system_property_over_env_over_file(tmp_path):
    """Testa a ordem propriedade de sistema > ambiente > arquivo."""
    key_file = tmp_path / "master-keys.yaml"
    MasterKeyStore(master_keys={"a": "file", "b": "file", "c": "file"}).to_file(key_file)

    reader = _reader(key_file, system_properties={"a": "sys"}, environ={"a": "env", "b": "env"})
    keys = [MasterKey("a"), MasterKey("b"), MasterKey("c")]

    assert reader.read_master_keys(keys) == []
    assert [key.text() for key in keys] == ["sys", "env", "file"]


def test_unresolved_keys_are_reported(caplog):
    """Testa que chaves ausentes são devolvidas e não geram exceção."""
    reader = _reader()
    keys = [MasterKey("missing")]

    with caplog.at_level(logging.DEBUG):
        missing = reader.read_master_keys(keys)

    assert missing == ["missing"]
    assert not keys[0].is_resolved
    assert "Chave mestra 'missing' não encontrada" in caplog.text


def test_resolved_keys_are_skipped():
    """Testa que chaves já resolvidas não são relidas."""
    reader = _reader(system_properties={"a": "sys"})
    key = MasterKey("a")
    key.set_value("original")

    assert reader.read_master_keys([key]) == []
    assert key.text() == "original"


def test_file_is_read_lazily(tmp_path):
    """Testa que o arquivo não é lido se as fontes prioritárias bastarem."""
    reader = _reader(tmp_path / "does-not-exist.yaml", environ={"a": "env"})
    key = MasterKey("a")

    assert reader.read_master_keys([key]) == []
    assert key.text() == "env"


def test_missing_file_raises(tmp_path):
    """Testa erro quando o arquivo de chaves é necessário e não existe."""
    reader = _reader(tmp_path / "does-not-exist.yaml")

    with pytest.raises(ConfigurationError, match="não encontrado"):
        reader.read_master_keys([MasterKey("a")])


def test_master_key_file_from_environment(tmp_path):
    """Testa caminho do arquivo vindo da variável de ambiente."""
    key_file = tmp_path / "master-keys.yaml"
    MasterKeyStore(master_keys={"a": "file"}).to_file(key_file)

    reader = _reader(environ={"SECURE_VAULT_MASTER_KEY_FILE": str(key_file)})
    assert reader.master_key_file == key_file

    key = MasterKey("a")
    reader.read_master_keys([key])
    assert key.text() == "file"


def test_relocation_is_followed(tmp_path):
    """Testa que os valores vêm do arquivo terminal da realocação."""
    first = tmp_path / "first.yaml"
    second = tmp_path / "nested" / "second.yaml"
    second.parent.mkdir()
    MasterKeyStore(master_keys={"a": "first"}, relocation="nested/second.yaml").to_file(first)
    MasterKeyStore(master_keys={"a": "second"}).to_file(second)

    key = MasterKey("a")
    _reader(first).read_master_keys([key])
    assert key.text() == "second"


def test_relocation_cycle_raises(tmp_path):
    """Testa detecção de ciclo A -> B -> A."""
    a = tmp_path / "a.yaml"
    b = tmp_path / "b.yaml"
    MasterKeyStore(master_keys={"k": "a"}, relocation=str(b)).to_file(a)
    MasterKeyStore(master_keys={"k": "b"}, relocation=str(a)).to_file(b)

    with pytest.raises(CyclicReferenceError, match="Referência cíclica"):
        _reader(a).read_master_keys([MasterKey("k")])


def test_relocation_to_missing_file_raises(tmp_path):
    """Testa erro quando o destino da realocação não existe."""
    a = tmp_path / "a.yaml"
    MasterKeyStore(master_keys={}, relocation="missing.yaml").to_file(a)

    with pytest.raises(ConfigurationError):
        _reader(a).read_master_keys([MasterKey("k")])


def test_values_never_logged(tmp_path, caplog):
    """Testa que valores de chaves não aparecem nos logs."""
    reader = _reader(system_properties={"a": "valor-secreto"})

    with caplog.at_level(logging.DEBUG):
        reader.read_master_keys([MasterKey("a")])

    assert "valor-secreto" not in caplog.text
    assert "propriedade de sistema" in caplog.text
