import pytest

from conftest import NOW
from healthcheck.html_report import (
    DEFAULT_STYLE_RULES,
    ERROR,
    SUCCESS,
    WARNING,
    render_html,
    style_for,
)
from healthcheck.schemas import ReportRow, ReportSection


def section(key: str, title: str, rows: list[dict[str, object]], columns: tuple[str, ...]) -> ReportSection:
    return ReportSection(
        key,
        title,
        columns,
        tuple(ReportRow.from_pairs((column, row[column]) for column in columns) for row in rows),
    )


def render(*sections: ReportSection) -> str:
    return render_html(sections, DEFAULT_STYLE_RULES, host_name="vbr01.example.com", generated_at=NOW)


def test_free_percentage_thresholds_in_rendered_cells() -> None:
    repos = section(
        "repositories",
        "Backup Repositories",
        [{"Name": "a", "FreePercentage": 9.99}, {"Name": "b", "FreePercentage": 19.99}, {"Name": "c", "FreePercentage": 20.0}],
        ("Name", "FreePercentage"),
    )

    document = render(repos)

    assert '<td class="error">9.99</td>' in document
    assert '<td class="warning">19.99</td>' in document
    assert "<td>20.0</td>" in document


@pytest.mark.parametrize(
    ("column", "value", "expected"),
    [
        ("LicenseStatus", "Valid", SUCCESS),
        ("LicenseStatus", "Invalid", ERROR),
        ("LicenseStatus", "Expired", ERROR),
        ("LastResult", "Success", SUCCESS),
        ("LastResult", "Warning", WARNING),
        ("LastResult", "Failed", ERROR),
        ("LastResult", "Never Run", None),
        ("DaysRemaining", 29, ERROR),
        ("DaysRemaining", 30, WARNING),
        ("DaysRemaining", 59, WARNING),
        ("DaysRemaining", 60, None),
        ("DaysRemaining", "Perpetual", None),
        ("DaysRemaining", "soon", None),
        ("FreePercentage", "N/A", None),
        ("Installed", True, SUCCESS),
        ("Installed", "True", SUCCESS),
        ("Installed", False, ERROR),
        ("IsUnavailable", True, ERROR),
        ("IsUnavailable", False, None),
        ("IsDisabled", "True", ERROR),
        ("JobName", "Failed", None),
    ],
)
def test_builtin_style_rules(column: str, value: object, expected: str | None) -> None:
    assert style_for(column, value, DEFAULT_STYLE_RULES) == expected


def test_first_matching_rule_wins() -> None:
    def shout(column: str, value: object) -> str | None:
        return "shout" if column == "FreePercentage" else None

    assert style_for("FreePercentage", 5, (shout, *DEFAULT_STYLE_RULES)) == "shout"
    assert style_for("FreePercentage", 5, (*DEFAULT_STYLE_RULES, shout)) == ERROR


def test_empty_sections_are_omitted() -> None:
    jobs = section("jobs", "Backup Jobs", [{"JobName": "Daily VMs", "LastResult": "Success"}], ("JobName", "LastResult"))
    proxies = ReportSection("proxies", "Backup Proxies", ("Name", "Host"))

    document = render(jobs, proxies)

    assert "<h2>Backup Jobs</h2>" in document
    assert "Backup Proxies" not in document
    assert document.count("<table>") == 1


def test_sections_render_in_order() -> None:
    first = section("jobs", "Backup Jobs", [{"JobName": "a"}], ("JobName",))
    second = section("proxies", "Backup Proxies", [{"Name": "b"}], ("Name",))

    document = render(first, second)

    assert document.index("Backup Jobs") < document.index("Backup Proxies")


def test_document_shell_and_escaping() -> None:
    jobs = section("jobs", "Backup Jobs", [{"JobName": "<script>alert(1)</script>"}], ("JobName",))

    document = render(jobs)

    assert document.startswith("<!DOCTYPE html>")
    assert "Backup server: vbr01.example.com" in document
    assert "Generated: 2026-10-18 12:00:00 UTC" in document
    assert "<script>" not in document
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in document
