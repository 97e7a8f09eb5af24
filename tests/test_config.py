from partscan import config


def test_bench_env_does_not_override_environment(tmp_path, monkeypatch):
    env = tmp_path / "bench.env"
    env.write_text(
        "# comment\n"
        "BENCH_WORKERS=5\n"
        "BENCH_ITERATIONS='7'\n"
        "BENCH_DELIMITER=|\n"
        "NOT A LINE\n"
    )
    # registered so teardown removes what load_bench_env sets
    for key in ("BENCH_WORKERS", "BENCH_DELIMITER"):
        monkeypatch.setenv(key, "unset")
        monkeypatch.delenv(key)
    monkeypatch.setenv("BENCH_ITERATIONS", "1")
    config.load_bench_env(env)

    assert config.get_workers() == 5
    assert config.get_iterations() == 1
    assert config.get_delimiter() == "|"


def test_defaults(monkeypatch):
    for key in (
        "BENCH_CHUNKSIZE",
        "BENCH_MP_START_METHOD",
        "BENCH_COMPRESSION",
        "BENCH_ROW_GROUP_SIZE",
        "BENCH_POLARS_ENGINE",
        "BENCH_DUCKDB_MEMORY_LIMIT",
        "BENCH_PREDICATE_COLUMN",
        "BENCH_PREDICATE_VALUE",
    ):
        monkeypatch.delenv(key, raising=False)
    assert config.get_chunksize() == 1
    assert config.get_start_method() == "spawn"
    assert config.get_compression() == "zstd"
    assert config.get_row_group_size() == 300_000
    assert config.get_polars_engine() == "auto"
    assert config.get_duckdb_memory_limit() is None
    assert config.get_predicate_column() == "hvfhs_license_num"
    assert config.get_predicate_value() == "HV0005"
