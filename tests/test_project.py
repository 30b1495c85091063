"""Tests for loading project YAML and rendering it into a relay archive."""

import pytest
from pydantic import ValidationError

from _helpers import TESTDATA, TEST_PROJECT, write_project

from dorkly.models import (
    BooleanFlagConfig,
    BooleanRolloutFlagConfig,
    FlagBase,
    FlagType,
    PercentRollout,
)
from dorkly.project.loader import ProjectLoadError, load_project
from dorkly.project.render import flag_salt, percent_to_weight, render_archive, to_wire_flag


def _rollout_weights(flag):
    return [(v.variation, v.weight) for v in flag.fallthrough.rollout.variations]


class TestLoadProject:
    def test_load_test_project(self):
        project = load_project(TESTDATA / TEST_PROJECT)
        assert project.key == "testProject1"
        assert project.description == "Human-readable description of the project."
        assert project.environments == ["production", "staging"]
        assert sorted(project.flags) == ["boolean1", "rollout1"]

        boolean1 = project.flags["boolean1"]
        assert boolean1.base.type == FlagType.BOOLEAN
        assert boolean1.env_configs["production"] == BooleanFlagConfig(variation=False)
        assert boolean1.env_configs["staging"] == BooleanFlagConfig(variation=True)

        rollout1 = project.flags["rollout1"]
        production = rollout1.env_configs["production"]
        assert isinstance(production, BooleanRolloutFlagConfig)
        assert production.percent_rollout.true_percent == 31
        assert production.percent_rollout.false_percent == 69
        staging = rollout1.env_configs["staging"]
        assert staging.percent_rollout.true_percent == 100
        assert staging.percent_rollout.false_percent == 0

    def test_not_a_directory(self, tmp_path):
        with pytest.raises(ProjectLoadError, match="is not a directory"):
            load_project(tmp_path / "nope")

    def test_missing_environment_config(self, tmp_path):
        root = write_project(
            tmp_path / "proj",
            flags={"f1": {"type": "boolean"}},
            environments={"production": {"f1": {"variation": True}}, "staging": {}},
        )
        with pytest.raises(ProjectLoadError, match=r"\[f1\] in environment \[staging\]"):
            load_project(root)

    def test_invalid_yaml(self, tmp_path):
        root = write_project(
            tmp_path / "proj",
            flags={"f1": {"type": "boolean"}},
            environments={"production": {"f1": "variation: [unclosed"}},
        )
        with pytest.raises(ProjectLoadError, match="Failed to parse YAML"):
            load_project(root)

    def test_unsupported_flag_type(self, tmp_path):
        root = write_project(
            tmp_path / "proj",
            flags={"f1": {"type": "multivariate"}},
            environments={"production": {"f1": {"variation": True}}},
        )
        with pytest.raises(ProjectLoadError, match="Invalid flag file"):
            load_project(root)

    def test_invalid_rollout(self, tmp_path):
        root = write_project(
            tmp_path / "proj",
            flags={"f1": {"type": "booleanRollout"}},
            environments={"production": {"f1": {"percentRollout": {"true": 80, "false": 30}}}},
        )
        with pytest.raises(ProjectLoadError, match="must be <= 100"):
            load_project(root)

    def test_unquoted_yaml_bool_keys(self, tmp_path):
        root = write_project(
            tmp_path / "proj",
            flags={"f1": {"type": "booleanRollout"}},
            environments={"production": {"f1": "percentRollout:\n  true: 30\n"}},
        )
        config = load_project(root).flags["f1"].env_configs["production"]
        assert config.percent_rollout.true_percent == 30
        assert config.percent_rollout.false_percent == 70

    def test_bare_percentage(self, tmp_path):
        root = write_project(
            tmp_path / "proj",
            flags={"f1": {"type": "booleanRollout"}},
            environments={"production": {"f1": "percentRollout: 10\n"}},
        )
        config = load_project(root).flags["f1"].env_configs["production"]
        assert config.percent_rollout.true_percent == 10
        assert config.percent_rollout.false_percent == 90

    def test_yaml_extension(self, tmp_path):
        root = write_project(tmp_path / "proj", flags={}, environments={"production": {}})
        (root / "flags" / "f1.yaml").write_text("type: boolean\n", encoding="utf-8")
        (root / "environments" / "production" / "f1.yaml").write_text("variation: true\n", encoding="utf-8")
        assert list(load_project(root).flags) == ["f1"]

    def test_missing_project_file(self, tmp_path):
        root = write_project(tmp_path / "proj", flags={}, environments={"production": {}})
        (root / "project.yml").unlink()
        with pytest.raises(ProjectLoadError):
            load_project(root)


class TestPercentRollout:
    @pytest.mark.parametrize(
        "data, expected",
        [
            ({"true": 31, "false": 69}, (31, 69)),
            ({"true": 100}, (100, 0)),
            ({"false": 100}, (0, 100)),
            ({"true": 25}, (25, 75)),
            ({"false": 25}, (75, 25)),
            ({True: 40}, (40, 60)),
            ({"true": 10, "false": 10}, (10, 10)),
        ],
    )
    def test_valid(self, data, expected):
        rollout = PercentRollout.model_validate(data)
        assert (rollout.true_percent, rollout.false_percent) == expected

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"true": 0, "false": 0},
            {"true": -1},
            {"false": -5, "true": 20},
            {"true": 60, "false": 41},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ValidationError):
            PercentRollout.model_validate(data)


class TestRender:
    def test_boolean_flag(self):
        flag = to_wire_flag(
            FlagBase(key="test-key", type=FlagType.BOOLEAN),
            BooleanFlagConfig(variation=True),
        )
        assert flag.key == "test-key"
        assert flag.on is True
        assert flag.variations == [True, False]
        assert flag.off_variation == 1
        assert flag.fallthrough.variation == 0
        assert flag.fallthrough.rollout is None
        assert flag.salt == "dGVzdC1rZXk="
        assert flag.client_side is True
        assert flag.client_side_availability.using_mobile_key is True
        assert flag.client_side_availability.using_environment_id is True
        assert flag.version == 0

    def test_server_side_only(self):
        flag = to_wire_flag(
            FlagBase(key="f", type=FlagType.BOOLEAN, server_side_only=True),
            BooleanFlagConfig(variation=False),
        )
        assert flag.on is False
        assert flag.client_side is False
        assert flag.client_side_availability.using_mobile_key is False

    def test_rollout_flag(self):
        flag = to_wire_flag(
            FlagBase(key="f", type=FlagType.BOOLEAN_ROLLOUT),
            BooleanRolloutFlagConfig(percent_rollout=PercentRollout(true_percent=31)),
        )
        assert flag.on is True
        assert flag.fallthrough.variation is None
        assert flag.fallthrough.rollout.kind == "rollout"
        assert flag.fallthrough.rollout.context_kind == "user"
        assert _rollout_weights(flag) == [(0, 31000), (1, 69000)]

    def test_fractional_weight(self):
        assert percent_to_weight(12.5) == 12500
        assert percent_to_weight(100) == 100000

    def test_salt(self):
        assert flag_salt("boolean1") == "Ym9vbGVhbjE="

    def test_unsupported_config(self):
        with pytest.raises(TypeError):
            to_wire_flag(FlagBase(key="f", type=FlagType.BOOLEAN), object())

    def test_render_test_project(self):
        archive = render_archive(load_project(TESTDATA / TEST_PROJECT))
        assert sorted(archive.environments) == ["production", "staging"]

        production = archive.environments["production"]
        info = production.metadata.env
        assert (info.env_id, info.env_key, info.env_name) == ("production",) * 3
        assert (info.proj_key, info.proj_name) == ("testProject1",) * 2
        assert info.sdk_key.value == "sdk-production-not-secure"
        assert info.mob_key == "mob-production-not-secure"
        assert info.version == 0
        assert production.data_id == ""

        assert production.payload.flags["boolean1"].on is False
        assert _rollout_weights(production.payload.flags["rollout1"]) == [(0, 31000), (1, 69000)]
        staging = archive.environments["staging"]
        assert staging.payload.flags["boolean1"].on is True
        assert _rollout_weights(staging.payload.flags["rollout1"]) == [(0, 100000), (1, 0)]
