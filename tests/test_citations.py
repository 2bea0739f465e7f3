from pathlib import Path
import sys


PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from citations import transform_citations, transform_citations_with_count


def test_transform_citation_references():
    text = "Text with citation [1] and [2]"
    expected = "Text with citation [#citation-1](citation-1) and [#citation-2](citation-2)"
    assert transform_citations(text, 2) == expected


def test_citations_in_code_blocks_are_not_transformed():
    assert transform_citations("```[1]``` and [2]", 2) == "```[1]``` and [#citation-2](citation-2)"


def test_citations_in_latex_are_not_transformed():
    text = "$[1]$ and [2] and $$[3]$$ and [4]"
    expected = "$[1]$ and [#citation-2](citation-2) and $$[3]$$ and [#citation-4](citation-4)"
    assert transform_citations(text, 4) == expected


def test_consecutive_citations():
    assert transform_citations("[1][2]", 2) == "[#citation-1](citation-1)[#citation-2](citation-2)"


def test_no_citations_length_returns_input_unchanged():
    text = "Text with [1] and [2]"
    assert transform_citations(text) == text
    assert transform_citations(text, 0) == text
    assert transform_citations(text, None) == text


def test_citations_in_inline_code():
    text = "`[1]` and [2] and `code with [3]` and [4]"
    expected = (
        "`[1]` and [#citation-2](citation-2) and `code with [3]` and [#citation-4](citation-4)"
    )
    assert transform_citations(text, 4) == expected


def test_out_of_range_markers_are_left_alone():
    text = "See [0], [1], [3] and [12]"
    transformed, count = transform_citations_with_count(text, 2)
    assert transformed == "See [0], [#citation-1](citation-1), [3] and [12]"
    assert count == 1


def test_fenced_block_citations_survive():
    text = "Intro [1]\n```\nlist[1]\n```\nOutro [1]"
    expected = "Intro [#citation-1](citation-1)\n```\nlist[1]\n```\nOutro [#citation-1](citation-1)"
    assert transform_citations(text, 1) == expected


def test_very_long_marker_is_left_alone():
    marker = "[" + "9" * 5000 + "]"
    assert transform_citations(f"see {marker} and [2]", 3) == (
        f"see {marker} and [#citation-2](citation-2)"
    )


def test_leading_zeros_do_not_hide_an_in_range_marker():
    assert transform_citations("[02] [0] [00]", 3) == "[#citation-2](citation-2) [0] [00]"


def test_markers_inside_bracket_math_are_protected():
    text = r"\(2[1]\) and \[x[1]\] cite [1]"
    assert transform_citations(text, 1) == r"\(2[1]\) and \[x[1]\] cite [#citation-1](citation-1)"
