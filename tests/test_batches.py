"""
tests/test_batches.py
---------------------
Unit tests for sources/batches.py (batch separator and SQLCMD variables).
"""
from __future__ import annotations

import pytest

from dbrepl.sources.batches import split_batches, substitute_variables


class TestSplitBatches:
    def test_splits_on_separator_lines(self) -> None:
        text = "CREATE TABLE a (id INT)\nGO\nCREATE TABLE b (id INT)\nGO\n"
        assert split_batches(text) == ["CREATE TABLE a (id INT)", "CREATE TABLE b (id INT)"]

    def test_trailing_batch_without_separator(self) -> None:
        assert split_batches("SELECT 1\nGO\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    @pytest.mark.parametrize(
        "separator",
        ["GO", "go", "  GO", "GO   ", "GO\t", "GO -- end of batch", "GO--x"],
    )
    def test_separator_variants(self, separator: str) -> None:
        assert split_batches(f"SELECT 1\n{separator}\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_repeat_count_executes_batch_once(self) -> None:
        batches = split_batches("INSERT INTO t VALUES (1)\nGO 3\n")
        assert batches == ["INSERT INTO t VALUES (1)"]

    def test_repeat_count_with_comment(self) -> None:
        assert split_batches("SELECT 1\nGO 5 -- five times\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    @pytest.mark.parametrize(
        "line",
        ["GOTO retry", "SELECT 'GO'", "GO;", "-- GO", "GO x"],
    )
    def test_lines_that_are_not_separators(self, line: str) -> None:
        assert split_batches(f"SELECT 1\n{line}\nSELECT 2") == [f"SELECT 1\n{line}\nSELECT 2"]

    def test_empty_batches_dropped(self) -> None:
        assert split_batches("GO\n\nGO\nSELECT 1\nGO\nGO") == ["SELECT 1"]

    def test_windows_line_endings(self) -> None:
        assert split_batches("SELECT 1\r\nGO\r\nSELECT 2\r\n") == ["SELECT 1", "SELECT 2"]


class TestSubstituteVariables:
    def test_known_variables_replaced(self) -> None:
        text = "FILENAME = N'$(FG_ARCHIVE_PATH_FILE)'"
        result = substitute_variables(text, {"FG_ARCHIVE_PATH_FILE": "D:\\data\\archive.ndf"})
        assert result == "FILENAME = N'D:\\data\\archive.ndf'"

    def test_unknown_variables_left_untouched(self) -> None:
        text = "SELECT '$(MISSING)', '$(KNOWN)'"
        assert substitute_variables(text, {"KNOWN": "x"}) == "SELECT '$(MISSING)', 'x'"

    def test_no_variables_is_identity(self) -> None:
        assert substitute_variables("SELECT $(A)", {}) == "SELECT $(A)"
