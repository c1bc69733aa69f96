import pytest

from config import DEFAULT_CONFIG_PATH, ConfigError, ProviderSettings, load_settings, settings_from_dict

BUNDLED_ENV = {
    "QUICKNODE_RPC_URL": "https://qn.example/rpc",
    "ALCHEMY_RPC_URL": "https://alchemy.example/rpc",
    "ANKR_RPC_URL": "https://ankr.example/rpc",
    "DRPC_RPC_URL": "https://drpc.example/rpc",
    "PANDA_RPC_URL": "https://panda.example/rpc",
    "THIRDWEB_RPC_URL": "https://thirdweb.example/rpc",
}


def _raw(**proxy):
    return {
        "proxy": proxy,
        "providers": [
            {"name": "A", "url": "https://a.example", "rate_limit": 10, "max_errors": 3, "priority": 1},
            {"name": "B", "url": "https://b.example", "rate_limit": 5, "max_errors": 2},
        ],
    }


def test_bundled_config_loads_six_providers():
    settings = load_settings(env=BUNDLED_ENV)

    assert settings.source == str(DEFAULT_CONFIG_PATH)
    assert settings.port == 3001
    assert [p.name for p in settings.providers] == [
        "QuickNode", "Alchemy", "Ankr", "DRPC", "Public_Panda", "Public_Thirdweb",
    ]
    ankr = settings.providers[2]
    assert (ankr.url, ankr.rate_limit, ankr.max_errors, ankr.priority) == ("https://ankr.example/rpc", 20, 3, 3)
    assert (settings.max_retries, settings.cache_ttl, settings.session_timeout) == (3, 10, 300)


def test_port_env_overrides_file():
    assert load_settings(env={**BUNDLED_ENV, "PORT": "8080"}).port == 8080
    with pytest.raises(ConfigError):
        load_settings(env={**BUNDLED_ENV, "PORT": "http"})


def test_missing_provider_env_var():
    env = dict(BUNDLED_ENV)
    del env["ANKR_RPC_URL"]
    with pytest.raises(ConfigError, match="ANKR_RPC_URL"):
        load_settings(env=env)


def test_config_path_from_env(tmp_path):
    path = tmp_path / "proxy.yaml"
    path.write_text(
        "server:\n  port: 9000\n"
        "proxy:\n  max_retries: 5\n"
        "providers:\n  - name: Local\n    url: http://127.0.0.1:8545\n    rate_limit: 50\n    max_errors: 2\n",
        encoding="utf-8",
    )

    settings = load_settings(env={"RPC_PROXY_CONFIG": str(path)})

    assert settings.port == 9000
    assert settings.max_retries == 5
    assert settings.providers[0].priority == 0


def test_missing_and_malformed_files(tmp_path):
    with pytest.raises(ConfigError, match="Config not found"):
        load_settings(str(tmp_path / "nope.yaml"), env={})

    bad = tmp_path / "bad.yaml"
    bad.write_text("providers: [\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_settings(str(bad), env={})


def test_rejects_duplicate_names():
    raw = _raw()
    raw["providers"][1]["name"] = "A"
    with pytest.raises(ConfigError, match="duplicate"):
        settings_from_dict(raw, env={})


def test_rejects_empty_pool():
    with pytest.raises(ConfigError):
        settings_from_dict({"providers": []}, env={})


@pytest.mark.parametrize("field,value", [
    ("rate_limit", 0),
    ("rate_limit", -1),
    ("rate_limit", "fast"),
    ("max_errors", 0),
    ("priority", -1),
])
def test_rejects_bad_provider_values(field, value):
    kwargs = {"name": "A", "url": "https://a.example", "rate_limit": 10, "max_errors": 3, "priority": 0}
    kwargs[field] = value
    with pytest.raises(ConfigError):
        ProviderSettings(**kwargs)


def test_rejects_bad_proxy_knobs():
    with pytest.raises(ConfigError):
        settings_from_dict(_raw(max_retries=0), env={})
    with pytest.raises(ConfigError):
        settings_from_dict(_raw(request_timeout="soon"), env={})


def test_provider_entry_requires_url():
    raw = _raw()
    del raw["providers"][0]["url"]
    with pytest.raises(ConfigError, match="url"):
        settings_from_dict(raw, env={})


def test_max_retries_must_be_whole_number():
    with pytest.raises(ConfigError, match="max_retries"):
        settings_from_dict(_raw(max_retries=2.5), env={})
    assert settings_from_dict(_raw(max_retries="4"), env={}).max_retries == 4
    assert settings_from_dict(_raw(max_retries=2.0), env={}).max_retries == 2
