"""Tests for the command-line interface."""

import argparse
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sixvoices.cli import _parse_traits, create_parser, run_cli
from sixvoices.config import ServiceConfig
from sixvoices.errors import UsageLimitExceededError
from sixvoices.meeting import Conclusion, ConversationTurn
from sixvoices.personality import TraitVector, derive_personalities
from sixvoices.service import DialogueResult


@pytest.fixture
def config(tmp_path: Path) -> ServiceConfig:
    return ServiceConfig(db_path=tmp_path / "cli.db", log_dir=tmp_path / "logs")


@pytest.fixture
def patched_config(config: ServiceConfig):
    with patch("sixvoices.cli.load_config", return_value=config):
        yield config


class TestParser:
    """Tests for argument parsing."""

    def test_parse_traits(self):
        assert _parse_traits("4, 2,5,3,2") == TraitVector(4, 2, 5, 3, 2)

    @pytest.mark.parametrize("value", ["1,2,3", "1,2,3,4,9", "a,b,c,d,e"])
    def test_parse_traits_rejects(self, value: str):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_traits(value)

    def test_meet_requires_traits(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["meet", "career change"])

    def test_no_command_prints_help(self, capsys):
        assert run_cli([]) == 0
        assert "sixvoices" in capsys.readouterr().out


class TestKeys:
    """Tests for the keys command."""

    def test_encode(self, capsys):
        assert run_cli(["keys", "encode", "-t", "4,2,5,3,2", "-g", "female"]) == 0
        assert capsys.readouterr().out.strip() == "O4_C2_E5_A3_N2_female"

    def test_encode_needs_traits(self, capsys):
        assert run_cli(["keys", "encode", "-g", "female"]) == 1

    def test_encode_bad_gender(self, capsys):
        assert run_cli(["keys", "encode", "-t", "3,3,3,3,3", "-g", "a_b"]) == 1

    def test_decode_lists_personalities(self, capsys):
        assert run_cli(["keys", "decode", "O4_C2_E5_A3_N2_female"]) == 0
        out = capsys.readouterr().out
        assert "Gender: female" in out
        assert "Opposite Self" in out
        assert "O2 C4 E1 A3 N4" in out

    def test_decode_malformed(self, capsys):
        assert run_cli(["keys", "decode", "O9_C2_E5_A3_N2_female"]) == 1
        assert "Error" in capsys.readouterr().out


class TestUsageHistoryRate:
    """Tests for commands reading the local database."""

    def test_usage(self, patched_config, capsys):
        assert run_cli(["usage", "u1"]) == 0
        out = capsys.readouterr().out
        assert "User: u1" in out
        assert "Chats today: 0" in out
        assert "Tier: free" in out

    def test_history_empty(self, patched_config, capsys):
        assert run_cli(["history", "u1"]) == 0
        assert "No meetings found." in capsys.readouterr().out

    def test_rate_missing_meeting(self, patched_config, capsys):
        assert run_cli(["rate", "missing", "4"]) == 1
        assert "not found" in capsys.readouterr().out

    def test_rate_invalid(self, patched_config, capsys):
        assert run_cli(["rate", "missing", "9"]) == 1


class TestMeet:
    """Tests for the meet command."""

    def test_requires_api_key(self, monkeypatch, capsys):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        assert run_cli(["meet", "career change", "-t", "4,2,5,3,2"]) == 1
        assert "GROQ_API_KEY" in capsys.readouterr().out

    def test_prints_meeting(self, patched_config, monkeypatch, capsys):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        personalities = derive_personalities(TraitVector(4, 2, 5, 3, 2), "female")
        result = DialogueResult(
            meeting_id="O4_C2_E5_A3_N2_female:career",
            conversation=[
                ConversationTurn("self", "Should I switch?", 0, 1),
                ConversationTurn("opposite", "Yes, now.", 1, 1),
            ],
            conclusion=Conclusion("Take the leap carefully.", ["Save money"], ["Apply this week"]),
            cache_hit=False,
            usage_count=1,
            category="career",
            model_used="qwen/qwen3-32b",
            personalities=personalities,
        )
        service = MagicMock()
        service.generate_or_reuse_dialogue = AsyncMock(return_value=result)

        with patch("sixvoices.cli.AsyncGroq") as groq_cls, patch(
            "sixvoices.cli.build_service", return_value=service
        ):
            code = run_cli(["meet", "career change", "-u", "u1", "-t", "4,2,5,3,2", "-g", "female", "-c", "career"])

        assert code == 0
        groq_cls.assert_called_once_with(api_key="test-key")
        service.generate_or_reuse_dialogue.assert_awaited_once_with(
            "u1", TraitVector(4, 2, 5, 3, 2), "female", "career change", concern_category="career"
        )
        out = capsys.readouterr().out
        assert "Present Self: Should I switch?" in out
        assert "Opposite Self: Yes, now." in out
        assert "Summary: Take the leap carefully." in out
        assert "(generated)" in out

    def test_timeout(self, patched_config, monkeypatch, capsys):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        service = MagicMock()
        service.generate_or_reuse_dialogue = AsyncMock(side_effect=TimeoutError("Request exceeded 300.0s"))

        with patch("sixvoices.cli.AsyncGroq"), patch("sixvoices.cli.build_service", return_value=service):
            assert run_cli(["meet", "x", "-t", "3,3,3,3,3"]) == 1
        assert "Request exceeded" in capsys.readouterr().out

    def test_usage_limit(self, patched_config, monkeypatch, capsys):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        service = MagicMock()
        service.generate_or_reuse_dialogue = AsyncMock(side_effect=UsageLimitExceededError("u1", 1, 1, 5))

        with patch("sixvoices.cli.AsyncGroq"), patch("sixvoices.cli.build_service", return_value=service):
            assert run_cli(["meet", "x", "-u", "u1", "-t", "3,3,3,3,3"]) == 1
        out = capsys.readouterr().out
        assert "Free meeting allowance used (1/1)" in out
        assert "premium" in out
