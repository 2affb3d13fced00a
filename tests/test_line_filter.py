from log_advisor.streaming.line_filter import compile_line_filter, filter_lines, matches


class TestMatches:
    def test_regex_match_is_case_insensitive(self):
        assert matches("2024 ERROR connection refused", r"error|warn")
        assert matches("2024 Warn disk almost full", r"error|warn")
        assert not matches("2024 INFO all good", r"error|warn")

    def test_invalid_regex_falls_back_to_substring(self):
        assert matches("2024 [ERROR] boom", "[error")
        assert not matches("2024 [INFO] fine", "[error")

    def test_no_pattern_matches_everything(self):
        assert matches("anything", None)
        assert matches("anything", "")
        assert compile_line_filter(None) is None


class TestFilterLines:
    def test_keeps_matching_lines_with_endings(self):
        predicate = compile_line_filter("error")
        text = "a ok\nb error one\nc ok\nd ERROR two\n"
        assert filter_lines(text, predicate) == "b error one\nd ERROR two\n"

    def test_nothing_survives(self):
        predicate = compile_line_filter("panic")
        assert filter_lines("a ok\nb ok\n", predicate) == ""

    def test_without_predicate_returns_text_unchanged(self):
        assert filter_lines("a\n\nb\n", None) == "a\n\nb\n"
