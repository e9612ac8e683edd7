"""Tests for the storyctx command line."""

import json

import pytest

from storyctx import cli
from storyctx.cli import build_parser, main

LAYERS = [
    {"kind": "story", "text": "The gate falls.", "importance": 9, "story_beat_id": "b1"},
    {"kind": "character", "text": "Mira distrusts the council.", "character_ids": ["mira"]},
    {"kind": "world-state", "text": "w" * 4000, "importance": 8},
]


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run every command from an empty directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("storyctx.config.user_config_dir", lambda app: str(tmp_path / "user"))


def test_module_is_documented():
    assert cli.__doc__.startswith("storyctx command line")


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_classify(capsys):
    assert main(["classify", "--type", "skill_check_result", "--prompt", "roll"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["complexity"] == "ultra-simple"
    assert out["compute_tier"] == "lite"
    assert out["source"] == "rule"


def test_classify_override(capsys):
    argv = ["classify", "--type", "x", "--prompt", "y", "--complexity", "complex"]
    assert main(argv) == 0
    assert json.loads(capsys.readouterr().out)["compute_tier"] == "advanced"


def test_select_json(tmp_path, capsys):
    path = tmp_path / "layers.json"
    path.write_text(json.dumps(LAYERS))

    argv = [
        "select",
        str(path),
        "--task",
        "npc_dialogue",
        "--max-tokens",
        "100",
        "--character",
        "mira",
        "--json",
    ]
    assert main(argv) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["selected_layers"] == ["story_0", "character_1"]
    assert out["tier_used"] == "standard"
    assert out["compression_level"] == "none"


def test_select_plain(tmp_path, capsys):
    path = tmp_path / "layers.json"
    path.write_text(json.dumps(LAYERS[:1]))

    assert main(["select", str(path), "--task", "story_progression", "--max-tokens", "50"]) == 0

    captured = capsys.readouterr()
    assert "The gate falls." in captured.out
    assert "layers=1" in captured.err


def test_select_invalid_layers(tmp_path, capsys):
    path = tmp_path / "layers.json"
    path.write_text(json.dumps([{"kind": "story"}]))

    assert main(["select", str(path), "--task", "t", "--max-tokens", "10"]) == 1
    assert "Invalid layers file" in capsys.readouterr().err


def test_select_missing_file(tmp_path, capsys):
    argv = ["select", str(tmp_path / "absent.json"), "--task", "t", "--max-tokens", "10"]
    assert main(argv) == 1
    assert "Cannot read" in capsys.readouterr().err


def test_config(tmp_path, capsys):
    (tmp_path / "storyctx.toml").write_text("[cache]\nttl_seconds = 42\n")

    assert main(["config", str(tmp_path)]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("# storyctx config: ")
    assert lines[0].endswith("storyctx.toml")
    assert "STORYCTX_CACHE_TTL=42.0" in lines


def test_config_defaults(tmp_path, capsys):
    assert main(["config", str(tmp_path)]) == 0
    assert capsys.readouterr().out.startswith("# storyctx config: defaults")


def test_config_error(tmp_path, capsys):
    (tmp_path / "storyctx.toml").write_text("[cache\n")
    assert main(["config", str(tmp_path)]) == 2
    assert "Failed to parse" in capsys.readouterr().err
