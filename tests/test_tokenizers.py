from pathlib import Path

import pytest
from pyctrees.readers.tokenizers import tokenize_header, split_fields
from pyctrees.util.errors import FormatError

cwd = Path(__file__).parent
root_sources = cwd / "files"
sample_file = root_sources / "tree_0_0_0.dat"


def test_header_annotated():
    assert tokenize_header("#id(0) mvir(1) x(2)\n") == ["id", "mvir", "x"]


def test_header_plain_and_comma():
    assert tokenize_header("#id,mvir,x") == ["id", "mvir", "x"]
    assert tokenize_header("#id mvir(1),x") == ["id", "mvir", "x"]


def test_header_bytes_and_crlf():
    assert tokenize_header(b"#a(0) b(1)\r\n") == ["a", "b"]


def test_header_sample_file():
    with open(sample_file, "rb") as f:
        names = tokenize_header(f.readline())
    assert len(names) == 20
    assert names[0] == "scale"
    assert names[10] == "mvir"
    assert names[14] == "mmp?"
    assert names[-1] == "z"


def test_header_unclosed_annotation_is_not_checked():
    assert tokenize_header("#a(0) b(7") == ["a", "b"]


@pytest.mark.parametrize(
    "line",
    [
        "id(0) mvir(1)",
        " #id(0) mvir(1)",
        "",
    ],
)
def test_header_missing_sentinel(line):
    with pytest.raises(FormatError):
        tokenize_header(line)


@pytest.mark.parametrize(
    "line",
    [
        "#id(0) mvir(2)",
        "#id(1) mvir(2)",
        "#id(0) mvir(x)",
    ],
)
def test_header_bad_index(line):
    with pytest.raises(FormatError):
        tokenize_header(line)


@pytest.mark.parametrize(
    "line",
    [
        "#id(0)  mvir(1)",
        "# id(0) mvir(1)",
        "#id(0) mvir(1) ",
    ],
)
def test_header_pass_count_mismatch(line):
    with pytest.raises(FormatError):
        tokenize_header(line)


def test_header_name_too_long():
    long_name = "a" * 70
    with pytest.raises(FormatError):
        tokenize_header(f"#id(0) {long_name}(1)")
    assert tokenize_header(f"#id(0) {long_name}(1)", max_name_len=80)[1] == long_name


def test_split_fields_stops_early():
    fields = split_fields("  1 2   3 4 5", 1)
    assert fields[:2] == ["1", "2"]
    assert len(fields) == 3
    assert split_fields("1 2", 4) == ["1", "2"]
    assert split_fields("1\t2  3\r", 2) == ["1", "2", "3"]


def test_header_not_ascii():
    with pytest.raises(FormatError, match="ASCII"):
        tokenize_header(b"#id(0) m\xe9vir(1)\n")
