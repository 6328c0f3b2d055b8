import logging

from ghostsurfer.config import DEFAULT_EXCLUDE_RESOURCE_TYPES, SimulationConfig


def test_defaults_when_environment_is_empty():
    config = SimulationConfig.from_env({})

    assert config == SimulationConfig()
    assert config.total_users == 5
    assert config.wait_ms == 2000
    assert config.page_load_timeout_ms == 60000
    assert config.exclude_resource_types == DEFAULT_EXCLUDE_RESOURCE_TYPES


def test_reads_recognized_variables():
    config = SimulationConfig.from_env({
        "TARGET_URL": "https://shop.example/",
        "TOTAL_USERS": "20",
        "CONCURRENCY": "4",
        "WAIT_MS": "0",
        "PAGE_LOAD_TIMEOUT_MS": "30000",
        "EXCLUDE_RESOURCE_TYPES": "xhr, fetch ,beacon",
        "EXCLUDED_DOMAINS": "tracker.example",
        "TOP_SLOWEST_DOMAINS": "3",
        "OUTPUT_MODE": "Dashboard",
        "PROVIDER": "http",
        "HEADLESS": "false",
        "APPEND_LOG": "yes",
    })

    assert config.url == "https://shop.example/"
    assert (config.total_users, config.concurrency, config.wait_ms) == (20, 4, 0)
    assert config.page_load_timeout_ms == 30000
    assert config.exclude_resource_types == frozenset({"xhr", "fetch", "beacon"})
    assert config.excluded_domains == frozenset({"tracker.example"})
    assert config.top_n == 3
    assert config.output_mode == "dashboard"
    assert config.provider == "http"
    assert config.headless is False
    assert config.append_log is True


def test_invalid_numbers_fall_back_to_defaults(caplog):
    with caplog.at_level(logging.WARNING):
        config = SimulationConfig.from_env({
            "TOTAL_USERS": "lots",
            "CONCURRENCY": "0",
            "WAIT_MS": "-5",
            "PAGE_LOAD_TIMEOUT_MS": "1.5",
            "TOP_N": "",
        })

    assert config.total_users == 5
    assert config.concurrency == 5
    assert config.wait_ms == 2000
    assert config.page_load_timeout_ms == 60000
    assert config.top_n == 10
    assert "TOTAL_USERS" in caplog.text


def test_unknown_choices_fall_back():
    config = SimulationConfig.from_env({"OUTPUT_MODE": "pdf", "PROVIDER": "telnet", "HEADLESS": "maybe"})

    assert config.output_mode == "file"
    assert config.provider == "browser"
    assert config.headless is True


def test_empty_exclusion_list_disables_exclusion():
    assert SimulationConfig.from_env({"EXCLUDE_RESOURCE_TYPES": ""}).exclude_resource_types == frozenset()


def test_overrides_win_and_none_is_ignored():
    config = SimulationConfig.from_env({"TOTAL_USERS": "20"}, total_users=3, concurrency=None, url="https://b.example/")

    assert config.total_users == 3
    assert config.concurrency == 5
    assert config.url == "https://b.example/"


def test_invalid_override_is_replaced(caplog):
    with caplog.at_level(logging.WARNING):
        config = SimulationConfig.from_env({}, concurrency=0, output_mode="nope")

    assert config.concurrency == 5
    assert config.output_mode == "file"


def test_concurrency_above_total_users_is_accepted_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        config = SimulationConfig.from_env({"TOTAL_USERS": "2", "CONCURRENCY": "8"})

    assert config.concurrency == 8
    assert "exceeds total users" in caplog.text


def test_excluded_domains_match_lowercased_hostnames():
    config = SimulationConfig.from_env({"EXCLUDED_DOMAINS": "Tracker.Example, ADS.example"})

    assert config.excluded_domains == frozenset({"tracker.example", "ads.example"})


def test_excluded_domain_override_is_lowercased():
    config = SimulationConfig.from_env({}, excluded_domains=frozenset({"CDN.Example"}))

    assert config.excluded_domains == frozenset({"cdn.example"})
