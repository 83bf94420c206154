from commit_tracker.domain.models import DiffStats
from commit_tracker.infrastructure.git_cli_reader import _parse_numstat


class TestParseNumstat:
    def test_single_file(self):
        assert _parse_numstat("10\t2\tsrc/main.js") == DiffStats(10, 2)

    def test_sums_across_files(self):
        output = (
            "10\t2\ta.js\n"
            "5\t1\tb.js\n"
            "0\t7\tc.js"
        )
        result = _parse_numstat(output)
        assert result == DiffStats(15, 10)
        assert result.total == 25

    def test_binary_file_counts_zero(self):
        assert _parse_numstat("-\t-\tbinary.png") == DiffStats(0, 0)

    def test_binary_mixed_with_text(self):
        output = "-\t-\timage.png\n10\t5\tcode.js"
        assert _parse_numstat(output) == DiffStats(10, 5)

    def test_empty_output(self):
        assert _parse_numstat("") == DiffStats()

    def test_blank_lines_skipped(self):
        assert _parse_numstat("\n3\t1\ta.js\n\n") == DiffStats(3, 1)

    def test_malformed_lines_skipped(self):
        output = "not-a-valid-line\n10\t5\ta.js"
        assert _parse_numstat(output) == DiffStats(10, 5)

    def test_non_numeric_counts_zero(self):
        assert _parse_numstat("x\t4\ta.js") == DiffStats(0, 4)

    def test_path_with_tabs_and_renames(self):
        output = "4\t1\tsrc/{old => new}/file.js"
        assert _parse_numstat(output) == DiffStats(4, 1)
