import textwrap

import pytest
from ebsresize.config import ResizeConfig, load_config, validate
from ebsresize.errors import ConfigError


def test_defaults_without_config_file(tmp_path, log):
    config = load_config(tmp_path / "missing.conf")
    assert config == ResizeConfig()
    assert log.has(
        "parse-config-not-found", config_file=str(tmp_path / "missing.conf")
    )


def test_config_file_and_overrides(tmp_path):
    config_file = tmp_path / "ebs-autoresize.conf"
    config_file.write_text(
        textwrap.dedent(
            """\
            [resize]
            increase-percent = 30
            threshold-percent = 80
            poll-interval = 5
            max-polls = 10
            continue-on-error = yes
            region = eu-central-1
            """
        )
    )

    config = load_config(config_file, threshold_percent=90, region=None)

    assert config == ResizeConfig(
        increase_percent=30.0,
        threshold_percent=90,
        poll_interval=5.0,
        max_polls=10,
        continue_on_error=True,
        region="eu-central-1",
    )


def test_invalid_value_in_config_file(tmp_path):
    config_file = tmp_path / "ebs-autoresize.conf"
    config_file.write_text("[resize]\nmax-polls = many\n")
    with pytest.raises(ConfigError):
        load_config(config_file)


def test_unknown_override():
    with pytest.raises(ConfigError):
        load_config(None, increase=20)


@pytest.mark.parametrize(
    "config",
    [
        ResizeConfig(increase_percent=0),
        ResizeConfig(increase_percent=100.5),
        ResizeConfig(threshold_percent=-1),
        ResizeConfig(threshold_percent=101),
        ResizeConfig(poll_interval=0),
        ResizeConfig(max_polls=0),
        ResizeConfig(max_volume_size_gib=0),
    ],
)
def test_validate_rejects(config):
    with pytest.raises(ConfigError):
        validate(config)


def test_validate_accepts_bounds():
    config = ResizeConfig(increase_percent=100, threshold_percent=0)
    assert validate(config) is config
