from pathlib import Path
import sys
import time

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

import pipeline
from cache import BoundedCache
from models import MarkdownOptions
from pipeline import MarkdownPreprocessor, preprocess_content


ALL_ON = {
    "citationsLength": 1,
    "enableCustomFootnotes": True,
    "enableLatex": True,
}


def test_process_content_with_all_options_enabled():
    output = preprocess_content("LaTeX: $x^2$ and citation [1]", ALL_ON)
    assert "$x^2$" in output
    assert "[#citation-1](citation-1)" in output


def test_skip_processing_when_options_disabled():
    text = "LaTeX: $x^2$ and citation [1]"
    assert preprocess_content(text) == text
    assert preprocess_content(text, {}) == text


@pytest.mark.parametrize(
    "text",
    [
        r"\[x\] costs $5 [1] **a:**b",
        "```\nunclosed",
        "$$dangling \\(y\\)",
    ],
)
def test_pass_through_with_empty_options(text):
    assert preprocess_content(text, {}) == text


def test_empty_content():
    assert preprocess_content("") == ""
    assert preprocess_content("", {"enableLatex": True}) == ""
    assert preprocess_content(None, {"enableLatex": True}) == ""


def test_content_with_mixed_elements():
    output = preprocess_content("```code``` $math$ [1] **bold**", ALL_ON)
    assert "```code```" in output
    assert "$math$" in output
    assert "[#citation-1](citation-1)" in output
    assert "**bold**" in output


def test_snake_case_and_model_options_are_accepted():
    text = r"\(a\) [1]"
    expected = "$a$ [#citation-1](citation-1)"
    assert preprocess_content(text, {"enable_latex": True, "enable_custom_footnotes": True, "citations_length": 1}) == expected
    assert preprocess_content(
        text, MarkdownOptions(enable_latex=True, enable_custom_footnotes=True, citations_length=1)
    ) == expected


def test_footnotes_without_length_leave_markers():
    assert preprocess_content("see [1]", {"enableCustomFootnotes": True}) == "see [1]"


def test_mhchem_and_currency_escapes_apply_around_converted_delimiters():
    text = r"\(\ce{NaCl}\) costs $3"
    assert preprocess_content(text, {"enableLatex": True}) == r"$\\ce{NaCl}$ costs \$3"


def test_citations_inside_converted_math_are_protected():
    text = r"\[ [1] \] and [1]"
    output = preprocess_content(text, ALL_ON)
    assert output == "$$ [1] $$ and [#citation-1](citation-1)"


def test_converted_math_starting_with_digit_is_not_escaped_as_currency():
    output = preprocess_content(r"Solve \(2x+1=0\) [1]", ALL_ON)
    assert output == "Solve $2x+1=0$ [#citation-1](citation-1)"


def test_citation_inside_paren_math_is_protected():
    output = preprocess_content(r"\(2[1]\) then [1]", ALL_ON)
    assert output == "$2[1]$ then [#citation-1](citation-1)"


def test_protection_invariant_for_code_spans():
    code = r"`\(x\) $5 [1] $\ce{A}$`"
    fence = "```\n\\[y\\] [1] $9\n```"
    text = f"pre {code} mid\n{fence}\npost"
    output = preprocess_content(text, {**ALL_ON, "fixMarkdownBold": True})
    assert code in output
    assert fence in output


def test_bold_fix_runs_only_when_enabled():
    text = "**注意：**内容"
    assert preprocess_content(text, {"enableLatex": True}) == text
    assert preprocess_content(text, {"fixMarkdownBold": True}) == "**注意：** 内容"


def test_metadata_counts_stages():
    preprocessor = MarkdownPreprocessor(
        enable_latex=True, enable_custom_footnotes=True, citations_length=3
    )
    text, metadata = preprocessor.process_with_metadata(r"\(a\) \[b\] $1 [1] [2] [9]")

    assert text == r"$a$ $$b$$ \$1 [#citation-1](citation-1) [#citation-2](citation-2) [9]"
    assert metadata["delimiters_converted"] == 2
    assert metadata["dollars_escaped"] == 1
    assert metadata["citations_transformed"] == 2
    assert metadata["cache_hit"] is False
    assert metadata["output_length"] == len(text)


def test_keyword_options_override_options_record():
    preprocessor = MarkdownPreprocessor({"enableLatex": True}, enable_latex=False)
    assert preprocessor.config["enable_latex"] is False


def test_cache_hit_returns_stored_output(monkeypatch):
    cache = BoundedCache(capacity=5)
    calls = []
    real = pipeline.convert_latex_delimiters_with_count

    def counting_convert(text):
        calls.append(text)
        return real(text)

    monkeypatch.setattr(pipeline, "convert_latex_delimiters_with_count", counting_convert)

    first = preprocess_content(r"\(x\)", {"enableLatex": True}, cache=cache, cache_key="msg-1")
    second = preprocess_content(r"\(x\)", {"enableLatex": True}, cache=cache, cache_key="msg-1")

    assert first == second == "$x$"
    assert len(calls) == 1
    assert cache.size == 1
    assert cache.get("msg-1") is None


def test_derived_cache_key_depends_on_options():
    cache = BoundedCache(capacity=5)
    text = r"\(x\) [1]"

    latex_only = preprocess_content(text, {"enableLatex": True}, cache=cache)
    with_footnotes = preprocess_content(text, ALL_ON, cache=cache)

    assert latex_only == "$x$ [1]"
    assert with_footnotes == "$x$ [#citation-1](citation-1)"
    assert cache.size == 2


def test_metadata_reports_cache_hit():
    cache = BoundedCache()
    preprocessor = MarkdownPreprocessor(enable_latex=True, cache=cache)
    preprocessor.process(r"\(x\)", cache_key="k")
    _, metadata = preprocessor.process_with_metadata(r"\(x\)", cache_key="k")
    assert metadata["cache_hit"] is True


def test_streamed_chunks_under_one_cache_key_are_not_served_stale():
    cache = BoundedCache(capacity=5)
    options = {"enableCustomFootnotes": True, "citationsLength": 2}

    first = preprocess_content("chunk [1]", options, cache=cache, cache_key="msg-1")
    second = preprocess_content("chunk [1] more [2]", options, cache=cache, cache_key="msg-1")

    assert first == "chunk [#citation-1](citation-1)"
    assert second == "chunk [#citation-1](citation-1) more [#citation-2](citation-2)"
    assert cache.size == 2


def test_same_cache_key_with_different_options_does_not_share_entry():
    cache = BoundedCache(capacity=5)
    text = r"\(x\) [1]"

    latex_only = preprocess_content(text, {"enableLatex": True}, cache=cache, cache_key="msg-1")
    with_footnotes = preprocess_content(text, ALL_ON, cache=cache, cache_key="msg-1")

    assert latex_only == "$x$ [1]"
    assert with_footnotes == "$x$ [#citation-1](citation-1)"
    assert cache.size == 2


def test_caller_key_separates_identical_content():
    cache = BoundedCache(capacity=5)
    preprocess_content("same", {"enableLatex": True}, cache=cache, cache_key="a")
    preprocess_content("same", {"enableLatex": True}, cache=cache, cache_key="b")
    assert cache.size == 2


def test_adversarial_input_is_processed_quickly():
    text = "$a " * 20000 + r"\(b " * 5000 + "`c " * 5000
    started = time.perf_counter()
    preprocess_content(text, {**ALL_ON, "fixMarkdownBold": True})
    assert time.perf_counter() - started < 2.0


def test_preprocessor_instance_is_callable():
    preprocessor = MarkdownPreprocessor(enable_latex=True)
    assert preprocessor(r"\(x\) costs $5") == r"$x$ costs \$5"
