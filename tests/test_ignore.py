"""Tests for IgnoreFilter."""

from pathlib import Path

from repo_sync.ignore import IgnoreFilter


class TestIgnoreFilter:
    """Tests for gitignore-style matching."""

    def test_empty_filter(self):
        """Test that an empty filter matches nothing."""
        ignore = IgnoreFilter()
        assert ignore.active is False
        assert len(ignore) == 0
        assert ignore.matches("anything.txt") is False

    def test_glob_pattern(self):
        """Test a simple extension pattern."""
        ignore = IgnoreFilter(patterns=["*.tpl"])
        assert ignore.matches("chart.tpl") is True
        assert ignore.matches("deep/dir/chart.tpl") is True
        assert ignore.matches("chart.yaml") is False

    def test_directory_contents(self):
        """Test that files inside an ignored directory are matched."""
        ignore = IgnoreFilter(patterns=["secrets/*"])
        assert ignore.matches("secrets/token.txt") is True
        assert ignore.matches("secrets/nested/key.pem") is True
        assert ignore.matches("public/token.txt") is False

    def test_directory_pattern(self):
        """Test a trailing-slash directory pattern."""
        ignore = IgnoreFilter(patterns=["raw/"])
        assert ignore.matches("templates/raw/chart.yaml") is True
        assert ignore.matches("raw", is_dir=True) is True
        assert ignore.matches("raw", is_dir=False) is False

    def test_anchored_pattern(self):
        """Test that a leading slash anchors to the root."""
        ignore = IgnoreFilter(patterns=["/build"])
        assert ignore.matches("build") is True
        assert ignore.matches("src/build") is False

    def test_negation(self):
        """Test that the last matching rule wins."""
        ignore = IgnoreFilter(patterns=["*.yaml", "!values.yaml"])
        assert ignore.matches("app.yaml") is True
        assert ignore.matches("values.yaml") is False

    def test_leading_slash_in_path(self):
        """Test that absolute-looking repository paths are accepted."""
        ignore = IgnoreFilter(patterns=["docs/*"])
        assert ignore.matches("/docs/index.md") is True

    def test_comments_and_blank_lines(self):
        """Test that comments and blank lines are not rules."""
        ignore = IgnoreFilter.from_lines("# comment\n\n*.bin\n")
        assert len(ignore) == 1
        assert ignore.matches("image.bin") is True
        assert ignore.matches("# comment") is False

    def test_from_file(self, temp_dir: Path):
        """Test compiling an ignore file from disk."""
        path = temp_dir / ".repoignore"
        path.write_text("*.tpl\n")
        assert IgnoreFilter.from_file(path).matches("x.tpl") is True

    def test_literal_paths(self):
        """Test exact path matching with glob characters in names."""
        ignore = IgnoreFilter.from_paths(["/app/[draft]*.yaml", "README.md"])
        assert ignore.active is True
        assert len(ignore) == 2
        assert ignore.matches("app/[draft]*.yaml") is True
        assert ignore.matches("app/d.yaml") is False
        assert ignore.matches("README.md") is True
        assert ignore.matches("docs/README.md") is False

    def test_root_never_matches(self):
        """Test that the repository root itself is never matched."""
        ignore = IgnoreFilter(patterns=["*"])
        assert ignore.matches("") is False
        assert ignore.matches("/") is False

    def test_literal_path_covers_children(self):
        """Test that a listed directory protects everything below it."""
        ignore = IgnoreFilter.from_paths(["conf"])
        assert ignore.matches("conf/a.txt") is True
        assert ignore.matches("conf/deep/b.txt") is True
        assert ignore.matches("config/a.txt") is False
