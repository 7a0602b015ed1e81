from pathlib import Path

import pytest

from budget_importer.detect import detect_delimiter, iter_jobs


def test_detect_delimiter_semicolon() -> None:
    assert detect_delimiter('a;b;c\n1;2;3') == ';'


def test_detect_delimiter_tab() -> None:
    assert detect_delimiter('a\tb\n1\t2\n') == '\t'


def test_detect_delimiter_single_line_defaults_to_comma() -> None:
    assert detect_delimiter('a;b;c') == ','


def test_detect_delimiter_tie_defaults_to_comma() -> None:
    assert detect_delimiter('a,b;c\n1,2;3') == ','


def test_detect_delimiter_no_candidates_defaults_to_comma() -> None:
    assert detect_delimiter('header\nvalue') == ','


def test_detect_delimiter_uses_second_line_not_header() -> None:
    assert detect_delimiter('a,b,c,d\n1;2;3') == ';'


def test_detect_delimiter_skips_blank_lines() -> None:
    assert detect_delimiter('a;b\n\n1;2\n') == ';'


def test_iter_jobs_directory(tmp_path: Path) -> None:
    csv_file = tmp_path / 'a.csv'
    csv_file.write_text('header\n', encoding='utf-8')
    tsv_file = tmp_path / 'b.tsv'
    tsv_file.write_text('header\n', encoding='utf-8')
    ignored = tmp_path / 'notes.pdf'
    ignored.write_text('ignore', encoding='utf-8')

    jobs = list(iter_jobs(tmp_path))
    assert [job.source_path for job in jobs] == [csv_file, tsv_file]


def test_iter_jobs_explicit_file_any_suffix(tmp_path: Path) -> None:
    export = tmp_path / 'export.dat'
    export.write_text('Date,Amount\n', encoding='utf-8')

    jobs = list(iter_jobs(export))
    assert len(jobs) == 1
    assert jobs[0].source_path == export


def test_iter_jobs_missing_path(tmp_path: Path) -> None:
    missing = tmp_path / 'unknown'
    with pytest.raises(FileNotFoundError):
        list(iter_jobs(missing))
