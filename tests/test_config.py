import json

from startale_lotto.utils.common import normalize_tx_hash, same_address, shorten_eth_address
from startale_lotto.utils.config import _apply_env_overrides, get_config_value, load_config, save_config


def test_env_prefixes_map_to_sections() -> None:
    config = _apply_env_overrides(
        {"blockchain": {"chain_id": 1946}},
        {
            "BLOCKCHAIN_RPC_URL": "http://localhost:8545",
            "PRICE_ETH_USD": "2500",
            "LOTTO_OUTCOME_TIMEOUT_SEC": "10",
            "LOTTO_CONFIG_FILE": "ignored.conf",
            "HOME": "/root",
        },
    )
    assert config["blockchain"] == {"chain_id": 1946, "rpc_url": "http://localhost:8545"}
    assert config["price"]["eth_usd"] == "2500"
    assert config["lotto"] == {"outcome_timeout_sec": "10"}


def test_load_and_save_round_trip_through_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "lotto.conf"
    path.write_text(json.dumps({"server": {"port": 7000}}))
    monkeypatch.setenv("SERVER_HOST", "127.0.0.1")

    config = load_config(str(path))
    assert config["server"] == {"port": 7000, "host": "127.0.0.1"}

    config["server"]["port"] = 7001
    save_config(config, str(path))
    assert json.loads(path.read_text())["server"]["port"] == 7001


def test_missing_config_file_uses_environment_only(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("WALLET_PRIVATE_KEY", "0xabc")
    config = load_config(str(tmp_path / "absent.conf"))
    assert get_config_value(config, "wallet.private_key") == "0xabc"
    assert get_config_value(config, "server.port", 6080) == 6080


def test_address_and_hash_helpers() -> None:
    assert shorten_eth_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"
    assert same_address("0xABCdef", "0xabcDEF")
    assert not same_address(None, "0xabc")
    assert normalize_tx_hash(b"\xab" * 32) == "0x" + "ab" * 32
    assert normalize_tx_hash("AB" * 32) == "0x" + "ab" * 32
