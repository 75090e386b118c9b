from __future__ import annotations

from pathlib import Path

import pytest

from promptloom.generate import _parse_args, _run


def test_generate_cli_prints_selection_and_guidance(
    capsys: pytest.CaptureFixture[str],
) -> None:
    code = _run("jazz rock", seed=7, prompt_path=None, max_mode=False)

    captured = capsys.readouterr()
    assert code == 0
    assert "genres        : jazz, rock" in captured.out
    assert "instruments   :" in captured.out
    assert "MULTI-GENRE NUANCE:" in captured.out
    assert "--- prompt ---" not in captured.out


def test_generate_cli_injects_into_prompt_file(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    prompt_path = tmp_path / "prompt.txt"
    prompt_path.write_text("Genre: afrobeat\nMood: groovy\n\n[VERSE]\nsun up", encoding="utf-8")

    code = _run("afrobeat", seed=3, prompt_path=prompt_path, max_mode=False)

    captured = capsys.readouterr()
    assert code == 0
    prompt_out = captured.out.split("--- prompt ---\n", 1)[1]
    assert prompt_out.split("\n")[2].startswith("Instruments: ")


def test_generate_cli_rejects_unknown_genre(capsys: pytest.CaptureFixture[str]) -> None:
    code = _run("polka", seed=1, prompt_path=None, max_mode=False)
    assert code == 1
    assert "no known genre in 'polka'" in capsys.readouterr().out


def test_generate_cli_arguments() -> None:
    args = _parse_args(["--genre", "lofi", "--seed", "5", "--max-mode"])
    assert args.genre == "lofi"
    assert args.seed == 5
    assert args.max_mode is True
    assert args.prompt is None
