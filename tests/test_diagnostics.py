"""Tests for diagnostics accumulation."""

from awx_controller.diagnostics import Diagnostic, Diagnostics, ErrorKind, Severity


class TestDiagnostics:
    """Tests for the Diagnostics collection."""

    def test_empty(self) -> None:
        """Test an empty collection."""
        diagnostics = Diagnostics()

        assert not diagnostics
        assert not diagnostics.has_errors
        assert len(diagnostics) == 0

    def test_accumulates_multiple_errors(self) -> None:
        """Test that several independent problems are all kept."""
        diagnostics = Diagnostics()
        diagnostics.error("Invalid attribute value", kind=ErrorKind.VALIDATION, attribute="forks")
        diagnostics.error("Invalid attribute value", kind=ErrorKind.VALIDATION, attribute="limit")
        diagnostics.warning("Unrecognized job status")

        assert diagnostics.has_errors
        assert len(diagnostics.errors) == 2
        assert len(diagnostics.warnings) == 1
        assert [d.attribute for d in diagnostics.errors] == ["forks", "limit"]

    def test_warnings_are_not_errors(self) -> None:
        """Test that warnings alone do not make the collection failed."""
        diagnostics = Diagnostics()
        diagnostics.warning("Resource not found", kind=ErrorKind.NOT_FOUND)

        assert diagnostics
        assert not diagnostics.has_errors
        assert diagnostics.has_kind(ErrorKind.NOT_FOUND)

    def test_extend_keeps_order(self) -> None:
        """Test that extend appends in order and returns the collection."""
        first = Diagnostics()
        first.error("one", kind=ErrorKind.TRANSIENT)
        second = Diagnostics()
        second.error("two", kind=ErrorKind.TIMEOUT)

        combined = Diagnostics().extend(first).extend(second)

        assert [d.summary for d in combined] == ["one", "two"]
        assert combined.kinds() == [ErrorKind.TRANSIENT, ErrorKind.TIMEOUT]

    def test_str(self) -> None:
        """Test the printable form."""
        diagnostic = Diagnostic(Severity.ERROR, "Job failed", "exit code 2", attribute="job")

        assert str(diagnostic) == "error: Job failed [job]: exit code 2"
