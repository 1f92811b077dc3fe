"""Tests for config/settings.py and config/plan.py."""

from decimal import Decimal

import pytest
from conftest import MEMBER_A, MEMBER_B
from govdeploy.config import PlanConfig, Settings, get_plan_path, load_plan_config
from govdeploy.core.errors import ConfigurationError


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()

        assert settings.gateway_url == "http://localhost:8545"
        assert settings.concurrency == 4
        assert settings.max_attempts == 5
        assert settings.members == []

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("GOVDEPLOY_CONCURRENCY", "2")
        monkeypatch.setenv("GOVDEPLOY_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("GOVDEPLOY_MEMBERS", f'["{MEMBER_A}"]')

        settings = Settings()

        assert settings.concurrency == 2
        assert settings.max_attempts == 7
        assert settings.members == [MEMBER_A]


class TestPlanConfig:
    def test_defaults_match_charity_dao(self):
        config = PlanConfig()

        assert (config.min_delay, config.voting_delay, config.voting_period) == (5, 0, 75)
        assert (config.proposal_threshold, config.quorum_percent) == (0, 4)
        assert config.total_supply == Decimal("1000")
        assert config.per_member_amount == Decimal("50")
        assert config.contracts.governor == "CharityGovernor"

    def test_to_base_units(self):
        config = PlanConfig()
        assert config.to_base_units(Decimal("1.5")) == 15 * 10**17

    def test_to_base_units_rejects_excess_precision(self):
        config = PlanConfig(token_decimals=2)
        with pytest.raises(ConfigurationError, match="precision"):
            config.to_base_units(Decimal("0.001"))

    def test_invalid_member_address(self):
        with pytest.raises(ValueError, match="invalid member"):
            PlanConfig(members=["0x1234"])

    def test_duplicate_members_rejected(self):
        with pytest.raises(ValueError, match="unique"):
            PlanConfig(members=[MEMBER_A, MEMBER_A.lower()])

    def test_distribution_cannot_exceed_supply(self):
        with pytest.raises(ValueError, match="more than total_supply"):
            PlanConfig(members=[MEMBER_A, MEMBER_B], per_member_amount=Decimal("600"))


class TestLoadPlanConfig:
    def test_no_file_uses_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        assert get_plan_path() is None
        assert load_plan_config() == PlanConfig()

    def test_project_plan_file_found(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".govdeploy").mkdir()
        (tmp_path / ".govdeploy" / "plan.yaml").write_text("voting_period: 100\n")

        assert load_plan_config().voting_period == 100

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text(
            "min_delay: 10\n"
            "total_supply: '2000'\n"
            "per_member_amount: '25.5'\n"
            f"members:\n  - '{MEMBER_A}'\n"
            "contracts:\n  token: DaoToken\n"
        )

        config = load_plan_config(path)

        assert config.min_delay == 10
        assert config.total_supply == Decimal("2000")
        assert config.per_member_amount == Decimal("25.5")
        assert config.members == [MEMBER_A]
        assert config.contracts.token == "DaoToken"
        assert config.contracts.timelock == "CharityTimelock"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_plan_config(tmp_path / "missing.yaml")

    def test_invalid_values_wrapped(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("quorum_percent: 150\n")

        with pytest.raises(ConfigurationError, match="Invalid plan configuration"):
            load_plan_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("members: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_plan_config(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_plan_config(path)

    def test_members_from_settings(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings(members=[MEMBER_B])

        assert load_plan_config(settings=settings).members == [MEMBER_B]

    def test_file_members_take_precedence(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text(f"members: ['{MEMBER_A}']\n")

        config = load_plan_config(path, Settings(members=[MEMBER_B]))

        assert config.members == [MEMBER_A]
