"""
Unit tests for the run_sync command line
"""

import pytest

from scripts.run_sync import parse_args


def test_cosmos_arguments():
    args = parse_args(["cosmos", "10000001", "--page", "3", "--max-pages", "2"])

    assert args.source == "cosmos"
    assert args.code == "10000001"
    assert args.page == "3"
    assert args.max_pages == 2


def test_openfoodfacts_arguments():
    args = parse_args(["openfoodfacts", "--file", "dump.jsonl", "--max-lines", "100", "--max-records", "10"])

    assert args.source == "openfoodfacts"
    assert args.file == "dump.jsonl"
    assert args.max_lines == 100
    assert args.max_records == 10


def test_source_is_required():
    with pytest.raises(SystemExit):
        parse_args([])
